"""Command surface for the settings collaborator: config, stats, probes and the running flag."""

from __future__ import annotations

from threading import Lock
from typing import List, Optional

import httpx

from config import Settings, get_settings
from core import DashboardStats, PipelineConfig, StageSummary
from intelligence.llm import probe_ollama_endpoint
from pipeline.metrics import MetricsRecorder
from pipeline.notification import probe_telegram_token
from sources import probe_youtube_key
from storage import PipelineStore

from .controller import PipelineController


class ShotAutoService:
    """Thin facade over the store and the controller.

    Probes never touch pipeline state and report False on any network error.
    """

    def __init__(
        self,
        *,
        store: PipelineStore,
        controller: PipelineController,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._store = store
        self._metrics = MetricsRecorder(store)
        self._controller = controller
        self._settings = settings or get_settings()
        self._transport = transport

    @property
    def store(self) -> PipelineStore:
        return self._store

    @property
    def controller(self) -> PipelineController:
        return self._controller

    def get_config(self) -> PipelineConfig:
        return self._store.get_config()

    def save_config(self, config: PipelineConfig) -> None:
        self._store.save_config(config)

    def get_stats(self) -> DashboardStats:
        return self._metrics.get_stats()

    def stage_summary(self) -> List[StageSummary]:
        return self._metrics.stage_summary()

    async def test_trend_source(self, api_key: Optional[str] = None) -> bool:
        """Probe a key; None probes the stored one."""
        if api_key is None:
            api_key = self.get_config().youtube_api_key
        return await probe_youtube_key(
            api_key,
            base_url=self._settings.collector.base_url,
            timeout_s=self._settings.general.probe_timeout_secs,
            transport=self._transport,
        )

    async def test_messaging_bot(self, token: Optional[str] = None) -> bool:
        if token is None:
            token = self.get_config().telegram_bot_token
        return await probe_telegram_token(
            token,
            base_url=self._settings.notifier.base_url,
            timeout_s=self._settings.general.probe_timeout_secs,
            transport=self._transport,
        )

    async def test_inference_endpoint(self, endpoint: Optional[str] = None) -> bool:
        if endpoint is None:
            endpoint = self.get_config().ollama_endpoint
        return await probe_ollama_endpoint(
            endpoint,
            timeout_s=self._settings.general.probe_timeout_secs,
            transport=self._transport,
        )

    def set_running(self, running: bool) -> None:
        self._controller.set_running(bool(running))

    def is_running(self) -> bool:
        return self._controller.is_running


_DEFAULT_SERVICE: Optional[ShotAutoService] = None
_DEFAULT_LOCK = Lock()


def get_default_service() -> ShotAutoService:
    global _DEFAULT_SERVICE
    with _DEFAULT_LOCK:
        if _DEFAULT_SERVICE is None:
            settings = get_settings()
            store = PipelineStore.from_url(
                settings.storage.database_url,
                busy_timeout_secs=settings.storage.busy_timeout_secs,
            )
            _DEFAULT_SERVICE = ShotAutoService(store=store, controller=PipelineController(), settings=settings)
        return _DEFAULT_SERVICE


def set_default_service(service: Optional[ShotAutoService]) -> None:
    """Bind the module-level helpers to ``service`` (None resets to lazy default)."""
    global _DEFAULT_SERVICE
    with _DEFAULT_LOCK:
        _DEFAULT_SERVICE = service


def get_config() -> PipelineConfig:
    return get_default_service().get_config()


def save_config(config: PipelineConfig) -> None:
    get_default_service().save_config(config)


def get_stats() -> DashboardStats:
    return get_default_service().get_stats()


async def test_trend_source(api_key: Optional[str] = None) -> bool:
    return await get_default_service().test_trend_source(api_key)


async def test_messaging_bot(token: Optional[str] = None) -> bool:
    return await get_default_service().test_messaging_bot(token)


async def test_inference_endpoint(endpoint: Optional[str] = None) -> bool:
    return await get_default_service().test_inference_endpoint(endpoint)


def set_running(running: bool) -> None:
    get_default_service().set_running(running)


def is_running() -> bool:
    return get_default_service().is_running()
