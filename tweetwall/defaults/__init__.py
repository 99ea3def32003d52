"""Default constants and configuration values for tweetwall."""

from .config import DEFAULT_BUFFER_CAPACITY, DEFAULT_RELAY_CONFIG, DEFAULT_RETRY_DELAY_S

__all__ = ["DEFAULT_BUFFER_CAPACITY", "DEFAULT_RELAY_CONFIG", "DEFAULT_RETRY_DELAY_S"]
