"""Wires store, controller and the four pipeline loops into one asyncio runtime."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from config import Settings, get_settings
from orchestrator.controller import PipelineController
from orchestrator.scheduler import JobScheduler
from render import ShortAssembler
from render.adapters import BaseRendererAdapter, FfmpegAdapter
from storage import PipelineStore

from .collector import SourceFactory, TrendCollector
from .metrics import MetricsRecorder
from .notification import ClientFactory, Notifier
from .script_generator import ScriptGenerator
from .worker import GenerationWorkerPool


logger = logging.getLogger(__name__)


class PipelineRuntime:
    """Collector, worker pool, notifier and watchdog sharing one controller.

    Components talk only through the store; the controller is the one piece
    of shared memory.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store: Optional[PipelineStore] = None,
        controller: Optional[PipelineController] = None,
        script_generator: Optional[ScriptGenerator] = None,
        renderer_adapter: Optional[BaseRendererAdapter] = None,
        source_factory: Optional[SourceFactory] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or PipelineStore.from_url(
            self.settings.storage.database_url,
            busy_timeout_secs=self.settings.storage.busy_timeout_secs,
        )
        self.controller = controller or PipelineController()
        self.scheduler = JobScheduler(self.store, self.settings.scheduler)
        self.metrics = MetricsRecorder(self.store)

        worker = self.settings.worker
        self.collector = TrendCollector(
            self.store,
            self.controller,
            self.settings.collector,
            source_factory=source_factory,
        )
        self.assembler = ShortAssembler(
            asset_dir=Path(self.settings.storage.asset_dir),
            renderer_adapter=renderer_adapter
            or FfmpegAdapter(
                width=worker.video_width,
                height=worker.video_height,
                fps=worker.fps,
                timeout_s=worker.assembly_timeout_secs,
            ),
            words_per_second=worker.words_per_second,
            max_duration_sec=worker.max_duration_secs,
        )
        self.workers = GenerationWorkerPool(
            self.store,
            self.scheduler,
            self.controller,
            script_generator=script_generator
            or ScriptGenerator(
                model=worker.ollama_model,
                temperature=worker.temperature,
                timeout_s=worker.inference_timeout_secs,
            ),
            assembler=self.assembler,
            metrics=self.metrics,
            settings=worker,
        )
        self.notifier = Notifier(
            self.store,
            self.controller,
            self.settings.notifier,
            metrics=self.metrics,
            client_factory=client_factory,
        )
        self._task: Optional[asyncio.Task] = None

    async def recover(self) -> int:
        """Crash recovery: reclaim jobs left in flight by a previous process."""
        reclaimed = await asyncio.to_thread(self.scheduler.reclaim_stale)
        if reclaimed:
            logger.warning("startup_recovery reclaimed=%s", reclaimed)
        return reclaimed

    async def watchdog(self) -> None:
        interval = float(self.settings.scheduler.watchdog_interval_secs)
        logger.info("watchdog_loop_start interval_s=%.0f", interval)
        while await self.controller.sleep(interval):
            try:
                await asyncio.to_thread(self.scheduler.reclaim_stale)
            except Exception:
                logger.exception("watchdog_pass_crashed")
        logger.info("watchdog_loop_stop")

    async def run(self) -> None:
        await self.recover()
        await asyncio.gather(
            self.collector.run(),
            self.workers.run(),
            self.notifier.run(),
            self.watchdog(),
        )

    def start_background(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="shotauto-pipeline")
        return self._task

    async def shutdown(self, *, grace_s: float = 30.0) -> None:
        """Stop every loop; in-flight stages get ``grace_s`` to finish."""
        self.controller.shutdown()
        task = self._task
        if task is not None and not task.done():
            try:
                await asyncio.wait_for(task, timeout=grace_s)
            except asyncio.TimeoutError:
                logger.warning("shutdown_grace_expired grace_s=%.0f (in-flight jobs left to the watchdog)", grace_s)
            except asyncio.CancelledError:
                pass
        self._task = None
