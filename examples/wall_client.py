# ruff: noqa: E402
"""Minimal wall client: connect to a running relay and print every packet.

Usage:
    python examples/wall_client.py [ws://127.0.0.1:1235]
"""

from __future__ import annotations

import asyncio
import contextlib
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from websockets.asyncio.client import connect

from tweetwall.core.errors import WireFormatError
from tweetwall.protocol.wire import decode_packet


async def main(url: str) -> None:
    async with connect(url) as ws:
        print(f"[wall] connected to {url}")
        async for raw in ws:
            try:
                packet = decode_packet(raw)
            except WireFormatError as exc:
                print(f"[wall] bad packet: {exc}")
                continue
            if packet.event == "tweet":
                user = packet.data.get("user") or {}
                print(f"@{user.get('screen_name')}: {packet.data.get('text')}")
            else:
                print(f"[{packet.event}] {packet.data}")


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else "ws://127.0.0.1:1235"
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main(target))
