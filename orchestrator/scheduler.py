"""Job state machine: claim, retry with exponential backoff, terminal failure, watchdog."""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Callable, Optional

from config import SchedulerSettings
from core import ClaimedJob, Job, JobState, Short
from storage import PipelineStore, utcnow


logger = logging.getLogger(__name__)


class JobScheduler:
    """Owns transition policy; the store owns transition atomicity."""

    def __init__(
        self,
        store: PipelineStore,
        settings: Optional[SchedulerSettings] = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self.settings = settings or SchedulerSettings()
        self._clock = clock

    @property
    def max_retries(self) -> int:
        return int(self.settings.max_retries)

    def backoff_delay(self, attempt: int) -> float:
        """Seconds before a job that failed ``attempt`` times may be claimed again."""
        base = float(self.settings.backoff_base_secs)
        cap = float(self.settings.backoff_cap_secs)
        exponent = max(0, int(attempt))
        # 2**exponent overflows float for absurd attempt counts
        if exponent > 62:
            return cap
        return min(cap, base * (2 ** exponent))

    def claim_next(self) -> Optional[ClaimedJob]:
        claimed = self._store.claim_next(now=self._clock(), candidates=self.settings.claim_candidates)
        if claimed:
            logger.info("job_claimed job_id=%s trend_id=%s", claimed.job.id, claimed.trend.id)
        return claimed

    def begin_generation(self, claimed: Job) -> Optional[Job]:
        job = self._store.begin_generation(claimed.id, expected_attempts=claimed.attempt_count, now=self._clock())
        if job is None:
            logger.warning("job_begin_lost job_id=%s reason=no longer claimed", claimed.id)
        else:
            logger.info("job_generating job_id=%s attempt=%s", job.id, job.attempt_count)
        return job

    def complete(self, job: Job, *, asset_path: str, script_text: str, duration_sec: float = 0.0) -> Optional[Short]:
        """Returns None when the attempt ``job`` describes no longer owns the row."""
        short = self._store.complete_job(
            job.id,
            expected_attempts=job.attempt_count,
            asset_path=asset_path,
            script_text=script_text,
            duration_sec=duration_sec,
            now=self._clock(),
        )
        if short is None:
            logger.warning("job_complete_lost job_id=%s attempt=%s reason=no longer owned", job.id, job.attempt_count)
        else:
            logger.info("job_completed job_id=%s asset=%s", job.id, short.asset_path)
        return short

    def record_failure(self, job: Job, error: str, *, permanent: bool = False) -> Optional[JobState]:
        """Apply the failure branch for a job in ``generating``.

        Returns the new state, or None when the job was no longer ours.
        """
        now = self._clock()
        text = str(error or "unknown error").strip()[:2000]

        if permanent or job.attempt_count >= self.max_retries:
            ok = self._store.fail_job(
                job.id,
                error=text,
                now=now,
                from_states=(JobState.GENERATING,),
                expected_attempts=job.attempt_count,
            )
            if ok:
                logger.warning(
                    "job_failed job_id=%s attempt=%s permanent=%s error=%s",
                    job.id,
                    job.attempt_count,
                    permanent,
                    text,
                )
                return JobState.FAILED
            logger.warning("job_fail_lost job_id=%s", job.id)
            return None

        delay = self.backoff_delay(job.attempt_count)
        ok = self._store.requeue_job(
            job.id,
            expected_attempts=job.attempt_count,
            error=text,
            next_attempt_at=now + timedelta(seconds=delay),
            now=now,
        )
        if ok:
            logger.info(
                "job_retry_scheduled job_id=%s attempt=%s delay_s=%.1f error=%s",
                job.id,
                job.attempt_count,
                delay,
                text,
            )
            return JobState.PENDING
        logger.warning("job_requeue_lost job_id=%s", job.id)
        return None

    def reclaim_stale(self) -> int:
        """Watchdog pass: return jobs stuck in claimed/generating to pending."""
        now = self._clock()
        threshold = float(self.settings.stale_after_secs)
        cutoff = now - timedelta(seconds=threshold)
        reclaimed = 0

        for job in self._store.find_stale_jobs(cutoff):
            # entering generating already charged this attempt
            charge = job.state == JobState.CLAIMED
            charged_attempts = job.attempt_count + (1 if charge else 0)
            give_up = charged_attempts >= self.max_retries
            error = f"stale: no progress in {job.state.value} for over {int(threshold)}s"
            if self._store.reclaim_job(job, charge_attempt=charge, give_up=give_up, error=error, now=now):
                reclaimed += 1
                logger.warning(
                    "job_reclaimed job_id=%s from=%s attempts=%s to=%s",
                    job.id,
                    job.state.value,
                    charged_attempts,
                    JobState.FAILED.value if give_up else JobState.PENDING.value,
                )
        return reclaimed
