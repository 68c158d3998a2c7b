"""Append-only per-stage metrics and the dashboard aggregates."""

from __future__ import annotations

import logging
import time
from typing import List

from core import DashboardStats, StageName, StageOutcome, StageSummary
from storage import PipelineStore


logger = logging.getLogger(__name__)


def elapsed_ms(started: float) -> int:
    """Milliseconds since a ``time.perf_counter()`` reading."""
    return max(0, int(round((time.perf_counter() - started) * 1000)))


class MetricsRecorder:
    def __init__(self, store: PipelineStore) -> None:
        self._store = store

    def record(self, job_id: int, stage: StageName, duration_ms: int, outcome: StageOutcome) -> None:
        self._store.append_metric(job_id, stage, duration_ms, outcome)
        logger.debug(
            "metric job_id=%s stage=%s duration_ms=%s outcome=%s",
            job_id,
            StageName(stage).value,
            duration_ms,
            StageOutcome(outcome).value,
        )

    def get_stats(self) -> DashboardStats:
        return self._store.get_stats()

    def stage_summary(self) -> List[StageSummary]:
        return self._store.stage_summary()
