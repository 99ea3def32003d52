"""Helpers for shaping Twitter API v2 objects into wall payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any


def _timestamp_ms(created_at: str | None) -> str | None:
    if not created_at:
        return None
    try:
        parsed = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    except ValueError:
        return None
    return str(int(parsed.timestamp() * 1000))


def normalize_status(tweet: dict[str, Any], includes: dict[str, Any] | None = None) -> dict[str, Any]:
    """Join a v2 tweet with its expanded author.

    Returns ``{"id", "text", "created_at", "timestamp_ms", "user"}`` where
    ``user`` is ``None`` when the author was not included in the response.
    """
    users = {str(u.get("id")): u for u in (includes or {}).get("users", []) if isinstance(u, dict)}
    author = users.get(str(tweet.get("author_id")))
    user = None
    if author is not None:
        user = {
            "screen_name": author.get("username"),
            "name": author.get("name"),
            "profile_image_url": author.get("profile_image_url"),
        }
    return {
        "id": tweet.get("id"),
        "text": tweet.get("text"),
        "created_at": tweet.get("created_at"),
        "timestamp_ms": _timestamp_ms(tweet.get("created_at")),
        "user": user,
    }


def tweet_payload(status: dict[str, Any]) -> dict[str, Any]:
    user = status.get("user")
    text = status.get("text")
    if not isinstance(user, dict) or not user.get("screen_name"):
        raise ValueError(f"status {status.get('id')!r} has no author")
    if not isinstance(text, str):
        raise ValueError(f"status {status.get('id')!r} has no text")
    return {
        "ts": status.get("timestamp_ms"),
        "text": text,
        "user": {
            "screen_name": user.get("screen_name"),
            "name": user.get("name"),
            "profile_image_url": user.get("profile_image_url"),
        },
    }
