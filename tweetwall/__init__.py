"""Relay a filtered live tweet stream to websocket clients, with replayed history."""

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "EventBuffer",
    "EventPacket",
    "Relay",
    "RelayConfig",
    "TweetwallError",
    "UpstreamError",
    "config_from_env",
]


def __getattr__(name: str) -> object:
    """Lazy exports so importing the package does not pull in the network stack."""
    if name == "EventBuffer":
        from .core.event_buffer import EventBuffer

        return EventBuffer

    if name == "EventPacket":
        from .core.entities import EventPacket

        return EventPacket

    if name in {"TweetwallError", "ConfigError", "UpstreamError"}:
        from .core.errors import ConfigError, TweetwallError, UpstreamError

        return {
            "TweetwallError": TweetwallError,
            "ConfigError": ConfigError,
            "UpstreamError": UpstreamError,
        }[name]

    if name == "Relay":
        from .app.relay import Relay

        return Relay

    if name in {"RelayConfig", "config_from_env"}:
        from .utils.settings import RelayConfig, config_from_env

        return {"RelayConfig": RelayConfig, "config_from_env": config_from_env}[name]

    raise AttributeError(f"module 'tweetwall' has no attribute {name!r}")
