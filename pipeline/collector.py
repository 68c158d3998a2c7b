"""Trend collector: poll the trend source and enqueue one job per new trend."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Set

from config import CollectorSettings
from core import PipelineConfig, PollResult
from orchestrator.controller import PipelineController
from sources import YouTubeTrendSource
from storage import PipelineStore
from utils.exceptions import AuthenticationError, TransientError


logger = logging.getLogger(__name__)

SourceFactory = Callable[[str], YouTubeTrendSource]


class TrendCollector:
    """Periodic poller; the store's unique trend id makes re-discovery a no-op."""

    def __init__(
        self,
        store: PipelineStore,
        controller: PipelineController,
        settings: Optional[CollectorSettings] = None,
        *,
        source_factory: Optional[SourceFactory] = None,
    ) -> None:
        self._store = store
        self._controller = controller
        self.settings = settings or CollectorSettings()
        self._source_factory = source_factory or self._default_source
        self._halted_fingerprint: Optional[str] = None

    def _default_source(self, api_key: str) -> YouTubeTrendSource:
        return YouTubeTrendSource(
            api_key,
            base_url=self.settings.base_url,
            region_code=self.settings.region_code,
            timeout_s=self.settings.request_timeout_secs,
            attempts=self.settings.fetch_attempts,
        )

    @property
    def is_halted(self) -> bool:
        return self._halted_fingerprint is not None

    def effective_interval(self, config: PipelineConfig) -> float:
        return float(max(int(config.poll_interval_secs), int(self.settings.min_poll_interval_secs)))

    async def poll(self, config: Optional[PipelineConfig] = None) -> PollResult:
        """Fetch once and insert unseen trends, each with its pending job."""
        if config is None:
            config = await asyncio.to_thread(self._store.get_config)
        if not config.has_trend_source:
            raise AuthenticationError("trend source api key is not configured", service="youtube")

        limit = min(int(self.settings.max_trends_per_poll), 50)
        source = self._source_factory(config.youtube_api_key)
        items = list(await source.fetch_trending(limit))[:limit]

        result = PollResult(fetched=len(items))
        seen: Set[str] = set()
        for item in items:
            if item.source_id in seen:
                result.duplicates += 1
                continue
            seen.add(item.source_id)
            job_id = await asyncio.to_thread(self._store.insert_trend_with_job, item)
            if job_id is None:
                result.duplicates += 1
            else:
                result.inserted += 1
                logger.info("trend_enqueued trend_id=%s job_id=%s title=%r", item.source_id, job_id, item.title[:80])

        logger.info(
            "poll_done fetched=%s inserted=%s duplicates=%s",
            result.fetched,
            result.inserted,
            result.duplicates,
        )
        return result

    async def tick(self, config: Optional[PipelineConfig] = None) -> Optional[PollResult]:
        """One gated poll. None when paused, halted on credentials, or the source failed."""
        if not self._controller.is_running:
            return None
        if config is None:
            config = await asyncio.to_thread(self._store.get_config)

        fingerprint = config.fingerprint()
        if self._halted_fingerprint is not None:
            if self._halted_fingerprint == fingerprint:
                return None
            logger.info("collector_resumed reason=config changed")
            self._halted_fingerprint = None

        try:
            return await self.poll(config)
        except AuthenticationError as exc:
            self._halted_fingerprint = fingerprint
            logger.warning("collector_halted error=%s (waiting for config change)", exc)
        except TransientError as exc:
            logger.warning("poll_failed error=%s (retry next tick)", exc)
        return None

    async def run(self) -> None:
        logger.info("collector_loop_start")
        while True:
            if not await self._controller.wait_until_running():
                break
            config = await asyncio.to_thread(self._store.get_config)
            try:
                await self.tick(config)
            except Exception:
                logger.exception("collector_tick_crashed")
            if not await self._controller.sleep(self.effective_interval(config)):
                break
        logger.info("collector_loop_stop")
