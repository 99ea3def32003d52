"""Exception hierarchy for tweetwall."""

from __future__ import annotations


class TweetwallError(Exception):
    """Base exception for tweetwall."""


class ConfigError(TweetwallError, ValueError):
    """Raised when configuration values are missing or malformed."""


class UpstreamError(TweetwallError):
    """Raised when the upstream event source cannot be reached or drops."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamAuthError(UpstreamError):
    """Raised when the upstream source rejects our credentials. Not retried."""


class TransportBindError(TweetwallError):
    """Raised when the subscriber-facing listening socket cannot be opened."""


class WireFormatError(TweetwallError, ValueError):
    """Raised when a wire message is not a valid event packet."""
