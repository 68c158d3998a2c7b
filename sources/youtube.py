"""
YouTube trend source
Most-popular chart from the YouTube Data API v3, plus the API key probe.
API docs: https://developers.google.com/youtube/v3/docs/videos/list
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from core import TrendItem
from utils.exceptions import AuthenticationError, TrendSourceError


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.googleapis.com/youtube/v3"
PAGE_SIZE_LIMIT = 50
PROBE_VIDEO_ID = "dQw4w9WgXcQ"

_AUTH_REASONS = {"keyInvalid", "keyExpired", "forbidden", "accessNotConfigured", "ipRefererBlocked"}
_QUOTA_REASONS = {"quotaExceeded", "rateLimitExceeded", "userRateLimitExceeded", "dailyLimitExceeded"}


def _error_reason(response: httpx.Response) -> str:
    try:
        payload = dict(response.json() or {})
    except ValueError:
        return ""
    errors = list((payload.get("error") or {}).get("errors") or [])
    if errors and isinstance(errors[0], dict):
        return str(errors[0].get("reason") or "")
    return ""


def _raise_for_status(response: httpx.Response) -> None:
    status = response.status_code
    if status < 400:
        return
    reason = _error_reason(response)
    if reason in _QUOTA_REASONS or status == 429:
        raise TrendSourceError(f"youtube rate limited ({reason or status})", status_code=status)
    if status in {401, 403} or reason in _AUTH_REASONS or "API key not valid" in response.text:
        raise AuthenticationError(f"youtube rejected api key ({reason or status})", service="youtube")
    raise TrendSourceError(f"youtube http {status}: {response.text[:200]}", status_code=status)


class YouTubeTrendSource:
    """Key-authenticated client for the trending chart."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        base_url: Optional[str] = None,
        region_code: str = "US",
        timeout_s: float = 20.0,
        attempts: int = 3,
        retry_wait_s: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = str(api_key or "").strip()
        self.base_url = str(base_url or DEFAULT_BASE_URL).strip().rstrip("/")
        self.region_code = str(region_code or "US").strip().upper()
        self.timeout_s = float(timeout_s)
        self.attempts = max(1, int(attempts))
        self.retry_wait_s = max(0.0, float(retry_wait_s))
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def fetch_trending(self, max_results: int = 25) -> List[TrendItem]:
        """Current most-popular videos, at most ``max_results`` (capped at one page).

        Transient failures are retried with exponential backoff; an
        authentication failure is raised immediately.
        """
        if not self.is_configured():
            raise AuthenticationError("youtube api key missing", service="youtube")

        limit = max(1, min(PAGE_SIZE_LIMIT, int(max_results)))
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.retry_wait_s, max=10),
            retry=retry_if_exception_type(TrendSourceError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                items = await self._fetch_once(limit)
        logger.info("[YouTube] trending region=%s returned %s items", self.region_code, len(items))
        return items

    async def _fetch_once(self, limit: int) -> List[TrendItem]:
        params = {
            "part": "snippet,statistics",
            "chart": "mostPopular",
            "regionCode": self.region_code,
            "maxResults": limit,
            "key": self.api_key,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                response = await client.get(f"{self.base_url}/videos", params=params)
        except httpx.TimeoutException as exc:
            raise TrendSourceError("youtube timeout") from exc
        except httpx.RequestError as exc:
            raise TrendSourceError(f"youtube request failed: {exc}") from exc

        _raise_for_status(response)
        try:
            payload = dict(response.json() or {})
        except ValueError as exc:
            raise TrendSourceError("youtube returned non-JSON body") from exc

        items: List[TrendItem] = []
        for raw in list(payload.get("items") or [])[:limit]:
            item = self._to_item(raw)
            if item is not None:
                items.append(item)
        return items

    @staticmethod
    def _to_item(raw: Dict[str, Any]) -> Optional[TrendItem]:
        if not isinstance(raw, dict):
            return None
        snippet = dict(raw.get("snippet") or {})
        stats = dict(raw.get("statistics") or {})
        try:
            views = int(stats.get("viewCount") or 0)
        except (TypeError, ValueError):
            views = 0
        try:
            return TrendItem(
                source_id=raw.get("id"),
                title=snippet.get("title"),
                score=views,
                channel=snippet.get("channelTitle"),
                category=snippet.get("categoryId"),
            )
        except ValidationError as exc:
            logger.warning("[YouTube] skipping malformed item id=%r: %s", raw.get("id"), exc)
            return None


async def probe_youtube_key(
    api_key: Optional[str],
    *,
    base_url: Optional[str] = None,
    timeout_s: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """One lightweight request; True when the key is accepted."""
    key = str(api_key or "").strip()
    if not key:
        return False
    url = f"{str(base_url or DEFAULT_BASE_URL).rstrip('/')}/videos"
    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            response = await client.get(url, params={"part": "id", "id": PROBE_VIDEO_ID, "key": key})
        return response.is_success
    except httpx.HTTPError as exc:
        logger.info("[YouTube] probe failed: %s", exc)
        return False
