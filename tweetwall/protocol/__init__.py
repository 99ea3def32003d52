"""Wire encoding for packets sent to subscribers."""

from .wire import decode_packet, encode_packet

__all__ = ["decode_packet", "encode_packet"]
