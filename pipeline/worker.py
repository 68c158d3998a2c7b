"""Generation worker pool: claim a job, run script and assembly stages, record the transition."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from config import WorkerSettings
from core import ClaimedJob, Job, JobOutcome, JobState, PipelineConfig, StageName, StageOutcome
from orchestrator.controller import PipelineController
from orchestrator.scheduler import JobScheduler
from render import ShortAssembler
from storage import PipelineStore
from utils.exceptions import AuthenticationError, PermanentContentError, StorageError, TransientError

from .metrics import MetricsRecorder, elapsed_ms
from .script_generator import ScriptGenerator


logger = logging.getLogger(__name__)


def _error_text(exc: BaseException) -> str:
    message = str(exc).strip() or "no message"
    return f"{type(exc).__name__}: {message}"


class GenerationWorkerPool:
    """Fixed number of asyncio workers; each holds at most one claim at a time."""

    def __init__(
        self,
        store: PipelineStore,
        scheduler: JobScheduler,
        controller: PipelineController,
        *,
        script_generator: ScriptGenerator,
        assembler: ShortAssembler,
        metrics: Optional[MetricsRecorder] = None,
        settings: Optional[WorkerSettings] = None,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._controller = controller
        self._scripts = script_generator
        self._assembler = assembler
        self._metrics = metrics or MetricsRecorder(store)
        self.settings = settings or WorkerSettings()
        self._halted_fingerprint: Optional[str] = None

    @property
    def is_halted(self) -> bool:
        return self._halted_fingerprint is not None

    def _check_halt(self, config: PipelineConfig) -> bool:
        if self._halted_fingerprint is None:
            return False
        if self._halted_fingerprint == config.fingerprint():
            return True
        logger.info("workers_resumed reason=config changed")
        self._halted_fingerprint = None
        return False

    async def _record(self, job_id: int, stage: StageName, started: float, outcome: StageOutcome) -> None:
        await asyncio.to_thread(self._metrics.record, job_id, stage, elapsed_ms(started), outcome)

    async def run_once(self, worker_id: int = 0) -> Optional[JobOutcome]:
        """Process at most one job. None when nothing was claimable."""
        config = await asyncio.to_thread(self._store.get_config)
        if self._check_halt(config):
            return None

        claimed = await asyncio.to_thread(self._scheduler.claim_next)
        if claimed is None:
            return None
        logger.info("worker_took_job worker=%s job_id=%s", worker_id, claimed.job.id)
        return await self._process(worker_id, claimed, config)

    async def _process(self, worker_id: int, claimed: ClaimedJob, config: PipelineConfig) -> JobOutcome:
        job = await asyncio.to_thread(self._scheduler.begin_generation, claimed.job)
        if job is None:
            return JobOutcome(job_id=claimed.job.id, error="claim lost before generation")

        # stage 1: script synthesis, always retryable
        started = time.perf_counter()
        try:
            script = await self._scripts.generate(claimed.trend, config)
        except AuthenticationError as exc:
            await self._record(job.id, StageName.SCRIPT, started, StageOutcome.FAILURE)
            self._halted_fingerprint = config.fingerprint()
            logger.warning("workers_halted worker=%s job_id=%s error=%s", worker_id, job.id, exc)
            return await self._fail(job, exc, permanent=False, stage=StageName.SCRIPT)
        except TransientError as exc:
            await self._record(job.id, StageName.SCRIPT, started, StageOutcome.FAILURE)
            return await self._fail(job, exc, permanent=False, stage=StageName.SCRIPT)
        except Exception as exc:
            logger.exception("stage_crashed worker=%s job_id=%s stage=script", worker_id, job.id)
            await self._record(job.id, StageName.SCRIPT, started, StageOutcome.FAILURE)
            return await self._fail(job, exc, permanent=False, stage=StageName.SCRIPT)
        await self._record(job.id, StageName.SCRIPT, started, StageOutcome.SUCCESS)

        # stage 2: assembly; permanent content errors skip the retry budget
        started = time.perf_counter()
        try:
            assembled = await asyncio.to_thread(
                self._assembler.assemble,
                job.id,
                script,
                attempt=job.attempt_count,
                title=claimed.trend.title,
            )
        except PermanentContentError as exc:
            await self._record(job.id, StageName.ASSEMBLE, started, StageOutcome.FAILURE)
            return await self._fail(job, exc, permanent=True, stage=StageName.ASSEMBLE)
        except Exception as exc:
            if not isinstance(exc, TransientError):
                logger.warning("stage_error worker=%s job_id=%s stage=assemble error=%s", worker_id, job.id, exc)
            await self._record(job.id, StageName.ASSEMBLE, started, StageOutcome.FAILURE)
            return await self._fail(job, exc, permanent=False, stage=StageName.ASSEMBLE)
        await self._record(job.id, StageName.ASSEMBLE, started, StageOutcome.SUCCESS)

        short = await asyncio.to_thread(
            self._scheduler.complete,
            job,
            asset_path=assembled.asset_path,
            script_text=assembled.script_text,
            duration_sec=assembled.duration_sec,
        )
        if short is None:
            # reclaimed by the watchdog, possibly re-begun by another worker; result dropped
            return JobOutcome(
                job_id=job.id,
                attempt_count=job.attempt_count,
                error="ownership lost before completion",
            )
        return JobOutcome(
            job_id=job.id,
            state=JobState.COMPLETED,
            attempt_count=job.attempt_count,
            asset_path=short.asset_path,
            details={"short_id": short.id, "duration_sec": short.duration_sec},
        )

    async def _fail(self, job: Job, exc: BaseException, *, permanent: bool, stage: StageName) -> JobOutcome:
        text = _error_text(exc)
        state = await asyncio.to_thread(self._scheduler.record_failure, job, text, permanent=permanent)
        return JobOutcome(
            job_id=job.id,
            state=state,
            attempt_count=job.attempt_count,
            error=text,
            details={"stage": stage.value, "permanent": permanent},
        )

    async def _worker_loop(self, worker_id: int) -> None:
        base = float(self.settings.idle_backoff_secs)
        cap = float(self.settings.idle_backoff_max_secs)
        idle = base
        logger.info("worker_start worker=%s", worker_id)
        while True:
            if not await self._controller.wait_until_running():
                break
            try:
                outcome = await self.run_once(worker_id)
            except StorageError as exc:
                logger.warning("worker_store_unavailable worker=%s error=%s", worker_id, exc)
                outcome = None
            except Exception:
                logger.exception("worker_iteration_crashed worker=%s", worker_id)
                outcome = None
            if outcome is not None:
                idle = base
                continue
            if not await self._controller.sleep(idle):
                break
            idle = min(cap, idle * 2)
        logger.info("worker_stop worker=%s", worker_id)

    async def run(self) -> None:
        size = max(1, int(self.settings.pool_size))
        await asyncio.gather(*(self._worker_loop(worker_id) for worker_id in range(size)))
