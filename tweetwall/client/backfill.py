"""Seeds the buffer with recent history before the live stream is bound."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from tweetwall.client.twitter import UpstreamSource
from tweetwall.core.event_buffer import EventBuffer
from tweetwall.defaults.config import DEFAULT_EVENT_TYPE
from tweetwall.utils.tweets import tweet_payload

logger = logging.getLogger(__name__)


def _chronological(statuses: list[dict[str, Any]]) -> list[dict[str, Any]]:
    # The search API answers newest first. Timestamps have whole-second
    # resolution, so ties keep the reversed API order.
    oldest_first = list(reversed(statuses))
    try:
        return sorted(oldest_first, key=lambda s: int(s["timestamp_ms"]))
    except (KeyError, TypeError, ValueError):
        return oldest_first


async def backfill_buffer(
    source: UpstreamSource,
    buffer: EventBuffer,
    query: str,
    count: int | None = None,
    *,
    event: str = DEFAULT_EVENT_TYPE,
    transform: Callable[[dict[str, Any]], Any] = tweet_payload,
) -> int:
    """Push up to ``count`` recent statuses into ``buffer``, oldest first.

    Failures are logged and never raised: startup continues with whatever was
    pushed. Returns the number of packets pushed.
    """
    limit = buffer.capacity if count is None else min(count, buffer.capacity)
    if limit <= 0:
        return 0
    try:
        statuses = await source.search_recent(query, limit)
    except Exception:
        logger.exception("unable to fetch recent statuses for %r", query)
        return 0

    pushed = 0
    for status in _chronological(list(statuses)[:limit]):
        try:
            data = transform(status)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("skipping backfill status: %s", exc)
            continue
        buffer.push(event, data)
        pushed += 1
    logger.info("backfilled %d %s packet(s)", pushed, event)
    return pushed
