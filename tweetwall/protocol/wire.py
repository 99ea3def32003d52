"""JSON wire format: ``{"event": <type tag>, "data": <payload>}``."""

from __future__ import annotations

import datetime
import json
from decimal import Decimal
from typing import Any

from tweetwall.core.entities import EventPacket
from tweetwall.core.errors import WireFormatError

_PACKET_KEYS = {"event", "data"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    return str(value)


def encode_packet(packet: EventPacket) -> str:
    return json.dumps(
        {"event": packet.event, "data": packet.data},
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )


def decode_packet(raw: str | bytes) -> EventPacket:
    try:
        message = json.loads(raw)
    except ValueError as exc:
        raise WireFormatError(f"packet is not valid JSON: {exc}") from exc
    if not isinstance(message, dict) or set(message) != _PACKET_KEYS:
        raise WireFormatError("packet must be an object with exactly 'event' and 'data'")
    if not isinstance(message["event"], str):
        raise WireFormatError("packet 'event' must be a string")
    return EventPacket(event=message["event"], data=message["data"])
