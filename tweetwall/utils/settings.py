"""Relay configuration loaded from the environment (and an optional ``.env``)."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from dotenv import load_dotenv

from tweetwall.core.errors import ConfigError
from tweetwall.defaults.config import DEFAULT_RELAY_CONFIG


@dataclass
class RelayConfig:
    host: str | None = DEFAULT_RELAY_CONFIG["host"]
    port: int = DEFAULT_RELAY_CONFIG["port"]
    track: str = DEFAULT_RELAY_CONFIG["track"]
    buffer_capacity: int = DEFAULT_RELAY_CONFIG["buffer_capacity"]
    backfill_enabled: bool = DEFAULT_RELAY_CONFIG["backfill_enabled"]
    backfill_count: int = DEFAULT_RELAY_CONFIG["backfill_count"]
    retry_delay_s: float = DEFAULT_RELAY_CONFIG["retry_delay_s"]
    twitter_bearer_token: str | None = None
    twitter_api_url: str = DEFAULT_RELAY_CONFIG["twitter_api_url"]
    http_timeout_s: float = DEFAULT_RELAY_CONFIG["http_timeout_s"]
    log_level: str = DEFAULT_RELAY_CONFIG["log_level"]

    @property
    def effective_backfill_count(self) -> int:
        return min(self.backfill_count, self.buffer_capacity)

    def validate(self) -> RelayConfig:
        if self.buffer_capacity < 1:
            raise ConfigError(f"buffer capacity must be positive, got {self.buffer_capacity}")
        if self.backfill_count < 0:
            raise ConfigError(f"backfill count cannot be negative, got {self.backfill_count}")
        if self.retry_delay_s < 0:
            raise ConfigError(f"retry delay cannot be negative, got {self.retry_delay_s}")
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"port out of range: {self.port}")
        if not self.track.strip():
            raise ConfigError("track filter must not be empty")
        return self


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc


def _flag(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


def config_from_env(environ: Mapping[str, str] | None = None, *, load_env_file: bool = True) -> RelayConfig:
    if load_env_file:
        load_dotenv()
    env = os.environ if environ is None else environ
    defaults = RelayConfig()
    retry_delay_ms = _int(env, "TWEETWALL_RETRY_DELAY_MS", int(defaults.retry_delay_s * 1000))
    return RelayConfig(
        host=env.get("HOST") or defaults.host,
        port=_int(env, "PORT", defaults.port),
        track=env.get("TWEETWALL_TRACK") or defaults.track,
        buffer_capacity=_int(env, "TWEETWALL_BUFFER_SIZE", defaults.buffer_capacity),
        backfill_enabled=_flag(env, "TWEETWALL_BACKFILL", defaults.backfill_enabled),
        backfill_count=_int(env, "TWEETWALL_BACKFILL_COUNT", defaults.backfill_count),
        retry_delay_s=retry_delay_ms / 1000.0,
        twitter_bearer_token=env.get("TWITTER_BEARER_TOKEN") or None,
        twitter_api_url=env.get("TWITTER_API_URL") or defaults.twitter_api_url,
        log_level=(env.get("TWEETWALL_LOG_LEVEL") or defaults.log_level).upper(),
    )
