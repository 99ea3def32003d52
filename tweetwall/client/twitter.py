"""Twitter API v2 client: filtered stream and recent search."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx

from tweetwall import __version__
from tweetwall.core.errors import UpstreamAuthError, UpstreamError
from tweetwall.defaults.config import (
    TWITTER_API_URL,
    TWITTER_RULE_TAG,
    TWITTER_SEARCH_MAX_RESULTS,
    TWITTER_SEARCH_MIN_RESULTS,
    TWITTER_TWEET_FIELDS,
    TWITTER_USER_FIELDS,
)
from tweetwall.utils.tweets import normalize_status

logger = logging.getLogger(__name__)

RULES_PATH = "/2/tweets/search/stream/rules"
STREAM_PATH = "/2/tweets/search/stream"
SEARCH_PATH = "/2/tweets/search/recent"

# Twitter sends a keep-alive newline every ~20s; three missed ones means a stalled stream.
STREAM_READ_TIMEOUT_S = 60.0

_EXPANSION_PARAMS = {
    "tweet.fields": TWITTER_TWEET_FIELDS,
    "expansions": "author_id",
    "user.fields": TWITTER_USER_FIELDS,
}


class UpstreamStream(Protocol):
    def __aiter__(self) -> AsyncIterator[dict[str, Any]]: ...

    async def aclose(self) -> None: ...


class UpstreamSource(Protocol):
    async def open_stream(self, track: str) -> UpstreamStream: ...

    async def search_recent(self, query: str, count: int) -> list[dict[str, Any]]: ...

    async def aclose(self) -> None: ...


def _raise_for_status(response: httpx.Response, what: str) -> None:
    code = response.status_code
    if code in (401, 403):
        raise UpstreamAuthError(f"{what} rejected credentials (HTTP {code})", status_code=code)
    if code >= 400:
        raise UpstreamError(f"{what} failed (HTTP {code})", status_code=code)


class TwitterStream:
    """Live filtered-stream response yielding normalized statuses."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._closed = False

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self._iter_statuses()

    async def _iter_statuses(self) -> AsyncIterator[dict[str, Any]]:
        try:
            async for line in self._response.aiter_lines():
                line = line.strip()
                if not line:
                    continue
                try:
                    message = json.loads(line)
                except ValueError:
                    logger.warning("skipping undecodable stream line (%d bytes)", len(line))
                    continue
                if not isinstance(message, dict):
                    logger.warning("skipping non-object stream message (%s)", type(message).__name__)
                    continue
                if not isinstance(message.get("data"), dict):
                    if message.get("errors"):
                        raise UpstreamError(f"stream reported errors: {message['errors']}")
                    continue
                includes = message.get("includes")
                yield normalize_status(message["data"], includes if isinstance(includes, dict) else None)
        except (httpx.HTTPError, httpx.StreamError) as exc:
            if self._closed:
                return
            raise UpstreamError(f"stream interrupted: {exc}") from exc

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class TwitterClient:
    """Bearer-token client for the endpoints the wall needs."""

    def __init__(
        self,
        bearer_token: str,
        *,
        base_url: str = TWITTER_API_URL,
        timeout: float = 30.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._headers = {
            "Authorization": f"Bearer {bearer_token}",
            "User-Agent": f"tweetwall/{__version__}",
        }
        self._timeout = timeout
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._http.request(method, path, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"{method} {path} failed: {exc}") from exc
        _raise_for_status(response, f"{method} {path}")
        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError(f"{method} {path} returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise UpstreamError(f"{method} {path} returned {type(body).__name__}, expected an object")
        return body

    async def sync_rules(self, track: str) -> None:
        """Keep exactly one tagged stream rule, matching ``track``."""
        body = await self._request_json("GET", RULES_PATH)
        ours = [rule for rule in body.get("data") or [] if rule.get("tag") == TWITTER_RULE_TAG]
        stale = [rule["id"] for rule in ours if rule.get("value") != track]
        if stale:
            await self._request_json("POST", RULES_PATH, json={"delete": {"ids": stale}})
            logger.info("deleted %d stale stream rule(s)", len(stale))
        if any(rule.get("value") == track for rule in ours):
            return
        added = await self._request_json(
            "POST", RULES_PATH, json={"add": [{"value": track, "tag": TWITTER_RULE_TAG}]}
        )
        summary = (added.get("meta") or {}).get("summary") or {}
        if summary.get("invalid"):
            raise UpstreamError(f"stream rule {track!r} rejected: {added.get('errors')}")
        logger.info("added stream rule %r", track)

    async def open_stream(self, track: str) -> TwitterStream:
        await self.sync_rules(track)
        request = self._http.build_request(
            "GET",
            STREAM_PATH,
            params=_EXPANSION_PARAMS,
            headers=self._headers,
            timeout=httpx.Timeout(self._timeout, read=STREAM_READ_TIMEOUT_S),
        )
        try:
            response = await self._http.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"cannot open stream: {exc}") from exc
        if response.status_code != 200:
            await response.aclose()
            _raise_for_status(response, "GET stream")
            raise UpstreamError(f"unexpected stream status {response.status_code}", status_code=response.status_code)
        return TwitterStream(response)

    async def search_recent(self, query: str, count: int) -> list[dict[str, Any]]:
        """Return up to ``count`` recent statuses matching ``query``, newest first."""
        if count <= 0:
            return []
        max_results = min(max(count, TWITTER_SEARCH_MIN_RESULTS), TWITTER_SEARCH_MAX_RESULTS)
        body = await self._request_json(
            "GET",
            SEARCH_PATH,
            params={"query": query, "max_results": max_results, **_EXPANSION_PARAMS},
        )
        includes = body.get("includes")
        return [normalize_status(tweet, includes) for tweet in body.get("data") or []][:count]

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
