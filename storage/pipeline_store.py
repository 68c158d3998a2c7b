"""Durable pipeline store: the single arbiter of job state across workers and restarts.

Every cross-component state change is a single conditional UPDATE whose WHERE
clause names the state the caller believes the row is in. A rowcount of zero
means another actor got there first, and the caller backs off.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Iterable, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from core import (
    ClaimedJob,
    DashboardStats,
    IN_FLIGHT_STATES,
    Job,
    JobState,
    MetricRecord,
    NotifyStatus,
    PipelineConfig,
    Short,
    StageName,
    StageOutcome,
    StageSummary,
    TERMINAL_STATES,
    Trend,
    TrendItem,
)

from utils.exceptions import InvariantViolation

from .database import Database
from .models import ConfigRow, JobRow, MetricRow, ShortRow, TrendRow


logger = logging.getLogger(__name__)

_NO_SYNC = {"synchronize_session": False}
_TERMINAL_VALUES = tuple(state.value for state in TERMINAL_STATES)


def utcnow() -> datetime:
    """Naive UTC timestamp, the storage convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _state_values(states: Iterable[JobState]) -> Tuple[str, ...]:
    return tuple(JobState(state).value for state in states)


class PipelineStore:
    """Tables for config, trends, jobs, shorts and metrics behind one API."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @classmethod
    def from_url(cls, database_url: str, *, busy_timeout_secs: float = 30.0, init_schema: bool = True) -> "PipelineStore":
        store = cls(Database(database_url, busy_timeout_secs=busy_timeout_secs))
        if init_schema:
            store.init_schema()
        return store

    @property
    def database(self) -> Database:
        return self._db

    def init_schema(self) -> None:
        self._db.init_schema()

    def close(self) -> None:
        self._db.dispose()

    # ------------------------------------------------------------------ config

    def get_config(self) -> PipelineConfig:
        with self._db.session_scope() as session:
            row = session.get(ConfigRow, 1)
            if row is None:
                return PipelineConfig()
            return PipelineConfig.model_validate(row)

    def save_config(self, config: PipelineConfig) -> None:
        """Replace the singleton record."""
        cfg = PipelineConfig.model_validate(config.model_dump())
        with self._db.session_scope() as session:
            row = session.get(ConfigRow, 1)
            if row is None:
                row = ConfigRow(id=1)
                session.add(row)
            row.youtube_api_key = cfg.youtube_api_key
            row.telegram_bot_token = cfg.telegram_bot_token
            row.telegram_chat_id = cfg.telegram_chat_id
            row.ollama_endpoint = cfg.ollama_endpoint
            row.poll_interval_secs = int(cfg.poll_interval_secs)
            row.updated_at = utcnow()

    # ------------------------------------------------------------------ trends

    def get_trend(self, source_id: str) -> Optional[Trend]:
        with self._db.session_scope() as session:
            row = session.get(TrendRow, str(source_id))
            return Trend.model_validate(row) if row else None

    def insert_trend_with_job(self, item: TrendItem, *, now: Optional[datetime] = None) -> Optional[int]:
        """Insert a trend and its pending job in one transaction.

        Returns the new job id, or None when the trend is already known.
        """
        now = now or utcnow()
        try:
            with self._db.session_scope() as session:
                if session.get(TrendRow, item.source_id) is not None:
                    return None
                session.add(
                    TrendRow(
                        id=item.source_id,
                        title=item.title,
                        channel=item.channel,
                        category=item.category,
                        score=int(item.score or 0),
                        discovered_at=now,
                    )
                )
                session.flush()
                job = JobRow(
                    trend_id=item.source_id,
                    state=JobState.PENDING.value,
                    attempt_count=0,
                    created_at=now,
                    updated_at=now,
                )
                session.add(job)
                session.flush()
                return int(job.id)
        except IntegrityError:
            # lost an insert race against another collector
            logger.info("trend_duplicate source_id=%s", item.source_id)
            return None

    def count_trends(self) -> int:
        with self._db.session_scope() as session:
            return int(session.scalar(select(func.count()).select_from(TrendRow)) or 0)

    # ------------------------------------------------------------------ jobs

    @staticmethod
    def _to_job(row: JobRow) -> Job:
        try:
            return Job.model_validate(row)
        except ValidationError as exc:
            raise InvariantViolation(
                f"job row {row.id} is unreadable",
                {"job_id": row.id, "state": row.state},
            ) from exc

    @classmethod
    def _readable_jobs(cls, rows: Iterable[JobRow]) -> List[Job]:
        """Skip rows the state machine cannot represent; the rest stay usable."""
        jobs: List[Job] = []
        for row in rows:
            try:
                jobs.append(cls._to_job(row))
            except InvariantViolation as exc:
                logger.error("invariant_violation job_id=%s state=%r error=%s", row.id, row.state, exc)
        return jobs

    def get_job(self, job_id: int) -> Optional[Job]:
        with self._db.session_scope() as session:
            row = session.get(JobRow, int(job_id))
            jobs = self._readable_jobs([row] if row is not None else [])
        return jobs[0] if jobs else None

    def get_job_for_trend(self, source_id: str) -> Optional[Job]:
        with self._db.session_scope() as session:
            rows = session.scalars(select(JobRow).where(JobRow.trend_id == str(source_id))).all()
            jobs = self._readable_jobs(rows)
        return jobs[0] if jobs else None

    def list_jobs(self, state: Optional[JobState] = None) -> List[Job]:
        stmt = select(JobRow).order_by(JobRow.created_at, JobRow.id)
        if state is not None:
            stmt = stmt.where(JobRow.state == JobState(state).value)
        with self._db.session_scope() as session:
            return self._readable_jobs(session.scalars(stmt))

    def _load_claimed(self, session, job_id: int) -> ClaimedJob:
        job_row = session.get(JobRow, job_id)
        trend_row = session.get(TrendRow, job_row.trend_id) if job_row is not None else None
        if job_row is None or trend_row is None:
            raise InvariantViolation(f"claimed job {job_id} has no trend", {"job_id": job_id})
        try:
            trend = Trend.model_validate(trend_row)
        except ValidationError as exc:
            raise InvariantViolation(f"trend of job {job_id} is unreadable", {"job_id": job_id}) from exc
        return ClaimedJob(job=self._to_job(job_row), trend=trend)

    def claim_next(self, *, now: Optional[datetime] = None, candidates: int = 5) -> Optional[ClaimedJob]:
        """Atomically move the oldest eligible pending job to ``claimed``.

        Eligible means pending with no backoff deadline or a deadline in the
        past. Each candidate is claimed with its own conditional UPDATE; a
        candidate taken by another worker in the meantime is skipped. A
        claimed row that cannot be loaded is failed and skipped.
        """
        now = now or utcnow()
        eligible = or_(JobRow.next_attempt_at.is_(None), JobRow.next_attempt_at <= now)

        with self._db.session_scope() as session:
            ids = list(
                session.scalars(
                    select(JobRow.id)
                    .where(JobRow.state == JobState.PENDING.value, eligible)
                    .order_by(JobRow.created_at, JobRow.id)
                    .limit(max(1, int(candidates)))
                )
            )

        for job_id in ids:
            violation: Optional[InvariantViolation] = None
            with self._db.session_scope() as session:
                result = session.execute(
                    update(JobRow)
                    .where(JobRow.id == job_id, JobRow.state == JobState.PENDING.value, eligible)
                    .values(state=JobState.CLAIMED.value, updated_at=now)
                    .execution_options(**_NO_SYNC)
                )
                if result.rowcount != 1:
                    continue
                # the claim commits even when the row cannot be loaded
                try:
                    claimed = self._load_claimed(session, job_id)
                except InvariantViolation as exc:
                    violation = exc

            if violation is not None:
                logger.error("invariant_violation job_id=%s error=%s", job_id, violation)
                self.fail_job(
                    job_id,
                    error=f"invariant: {violation}",
                    now=now,
                    from_states=(JobState.CLAIMED,),
                )
                continue
            return claimed

        return None

    def begin_generation(self, job_id: int, *, expected_attempts: int, now: Optional[datetime] = None) -> Optional[Job]:
        """claimed -> generating, charging one attempt.

        ``expected_attempts`` is the count the claim observed; a claim the
        watchdog has since reclaimed (and charged) no longer matches.
        """
        now = now or utcnow()
        with self._db.session_scope() as session:
            result = session.execute(
                update(JobRow)
                .where(
                    JobRow.id == int(job_id),
                    JobRow.state == JobState.CLAIMED.value,
                    JobRow.attempt_count == int(expected_attempts),
                )
                .values(
                    state=JobState.GENERATING.value,
                    attempt_count=JobRow.attempt_count + 1,
                    started_at=now,
                    updated_at=now,
                )
                .execution_options(**_NO_SYNC)
            )
            if result.rowcount != 1:
                return None
            return self._to_job(session.get(JobRow, int(job_id)))

    def complete_job(
        self,
        job_id: int,
        *,
        expected_attempts: int,
        asset_path: str,
        script_text: str,
        duration_sec: float = 0.0,
        now: Optional[datetime] = None,
    ) -> Optional[Short]:
        """generating -> completed and insert the Short in the same transaction.

        Conditional on the attempt that produced the asset, so a worker whose
        job was reclaimed and re-begun by another worker writes nothing.
        """
        now = now or utcnow()
        with self._db.session_scope() as session:
            result = session.execute(
                update(JobRow)
                .where(
                    JobRow.id == int(job_id),
                    JobRow.state == JobState.GENERATING.value,
                    JobRow.attempt_count == int(expected_attempts),
                )
                .values(
                    state=JobState.COMPLETED.value,
                    last_error=None,
                    next_attempt_at=None,
                    finished_at=now,
                    updated_at=now,
                )
                .execution_options(**_NO_SYNC)
            )
            if result.rowcount != 1:
                return None
            short = ShortRow(
                job_id=int(job_id),
                asset_path=str(asset_path),
                script_text=str(script_text),
                duration_sec=float(duration_sec or 0.0),
                created_at=now,
            )
            session.add(short)
            session.flush()
            return Short.model_validate(short)

    def requeue_job(
        self,
        job_id: int,
        *,
        expected_attempts: int,
        error: str,
        next_attempt_at: datetime,
        now: Optional[datetime] = None,
    ) -> bool:
        """generating -> pending with a backoff deadline."""
        now = now or utcnow()
        with self._db.session_scope() as session:
            result = session.execute(
                update(JobRow)
                .where(
                    JobRow.id == int(job_id),
                    JobRow.state == JobState.GENERATING.value,
                    JobRow.attempt_count == int(expected_attempts),
                )
                .values(
                    state=JobState.PENDING.value,
                    last_error=str(error),
                    next_attempt_at=next_attempt_at,
                    updated_at=now,
                )
                .execution_options(**_NO_SYNC)
            )
            return result.rowcount == 1

    def fail_job(
        self,
        job_id: int,
        *,
        error: str,
        now: Optional[datetime] = None,
        from_states: Iterable[JobState] = (JobState.GENERATING,),
        expected_attempts: Optional[int] = None,
    ) -> bool:
        """Terminal failure from one of ``from_states``."""
        now = now or utcnow()
        conditions = [JobRow.id == int(job_id), JobRow.state.in_(_state_values(from_states))]
        if expected_attempts is not None:
            conditions.append(JobRow.attempt_count == int(expected_attempts))
        with self._db.session_scope() as session:
            result = session.execute(
                update(JobRow)
                .where(*conditions)
                .values(
                    state=JobState.FAILED.value,
                    last_error=str(error),
                    next_attempt_at=None,
                    finished_at=now,
                    updated_at=now,
                )
                .execution_options(**_NO_SYNC)
            )
            return result.rowcount == 1

    def find_stale_jobs(self, cutoff: datetime, *, limit: int = 100) -> List[Job]:
        in_flight = _state_values(IN_FLIGHT_STATES)
        stmt = (
            select(JobRow)
            .where(JobRow.state.in_(in_flight), JobRow.updated_at < cutoff)
            .order_by(JobRow.updated_at, JobRow.id)
            .limit(max(1, int(limit)))
        )
        with self._db.session_scope() as session:
            return self._readable_jobs(session.scalars(stmt))

    def reclaim_job(
        self,
        job: Job,
        *,
        charge_attempt: bool,
        give_up: bool,
        error: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Return a stale in-flight job to pending (or failed when out of attempts).

        Conditional on both state and ``updated_at`` so a worker that made
        progress after the staleness scan is never overridden.
        """
        now = now or utcnow()
        values = {
            "attempt_count": JobRow.attempt_count + (1 if charge_attempt else 0),
            "last_error": str(error),
            "next_attempt_at": None,
            "updated_at": now,
        }
        if give_up:
            values.update(state=JobState.FAILED.value, finished_at=now)
        else:
            values.update(state=JobState.PENDING.value)

        with self._db.session_scope() as session:
            result = session.execute(
                update(JobRow)
                .where(
                    JobRow.id == job.id,
                    JobRow.state == job.state.value,
                    JobRow.updated_at == job.updated_at,
                )
                .values(**values)
                .execution_options(**_NO_SYNC)
            )
            return result.rowcount == 1

    # ------------------------------------------------------------------ shorts

    def get_short_for_job(self, job_id: int) -> Optional[Short]:
        with self._db.session_scope() as session:
            row = session.scalars(select(ShortRow).where(ShortRow.job_id == int(job_id))).first()
            return Short.model_validate(row) if row else None

    def count_shorts(self, job_id: Optional[int] = None) -> int:
        stmt = select(func.count()).select_from(ShortRow)
        if job_id is not None:
            stmt = stmt.where(ShortRow.job_id == int(job_id))
        with self._db.session_scope() as session:
            return int(session.scalar(stmt) or 0)

    # ------------------------------------------------------------------ notifications

    def list_unannounced(self, *, limit: int = 20) -> List[Tuple[Job, Trend, Optional[Short]]]:
        """Terminal jobs whose outcome has not been announced yet, oldest first."""
        stmt = (
            select(JobRow, TrendRow, ShortRow)
            .join(TrendRow, TrendRow.id == JobRow.trend_id)
            .outerjoin(ShortRow, ShortRow.job_id == JobRow.id)
            .where(JobRow.state.in_(_TERMINAL_VALUES), JobRow.notified_at.is_(None))
            .order_by(JobRow.updated_at, JobRow.id)
            .limit(max(1, int(limit)))
        )
        out: List[Tuple[Job, Trend, Optional[Short]]] = []
        with self._db.session_scope() as session:
            for job_row, trend_row, short_row in session.execute(stmt).all():
                try:
                    job = self._to_job(job_row)
                except InvariantViolation as exc:
                    logger.error("invariant_violation job_id=%s error=%s", job_row.id, exc)
                    continue
                out.append(
                    (
                        job,
                        Trend.model_validate(trend_row),
                        Short.model_validate(short_row) if short_row else None,
                    )
                )
        return out

    def mark_notified(self, job_id: int, status: NotifyStatus, *, now: Optional[datetime] = None) -> bool:
        """Set the announced marker once; False when another notifier already did."""
        now = now or utcnow()
        with self._db.session_scope() as session:
            result = session.execute(
                update(JobRow)
                .where(
                    JobRow.id == int(job_id),
                    JobRow.notified_at.is_(None),
                    JobRow.state.in_(_TERMINAL_VALUES),
                )
                .values(notified_at=now, notify_status=NotifyStatus(status).value)
                .execution_options(**_NO_SYNC)
            )
            return result.rowcount == 1

    # ------------------------------------------------------------------ metrics

    def append_metric(
        self,
        job_id: int,
        stage: StageName,
        duration_ms: int,
        outcome: StageOutcome,
        *,
        now: Optional[datetime] = None,
    ) -> None:
        with self._db.session_scope() as session:
            session.add(
                MetricRow(
                    job_id=int(job_id),
                    stage=StageName(stage).value,
                    duration_ms=max(0, int(duration_ms)),
                    outcome=StageOutcome(outcome).value,
                    recorded_at=now or utcnow(),
                )
            )

    def list_metrics(self, job_id: Optional[int] = None) -> List[MetricRecord]:
        stmt = select(MetricRow).order_by(MetricRow.id)
        if job_id is not None:
            stmt = stmt.where(MetricRow.job_id == int(job_id))
        with self._db.session_scope() as session:
            return [MetricRecord.model_validate(row) for row in session.scalars(stmt)]

    def stage_summary(self) -> List[StageSummary]:
        failures = func.sum(case((MetricRow.outcome == StageOutcome.FAILURE.value, 1), else_=0))
        stmt = (
            select(MetricRow.stage, func.count(MetricRow.id), failures, func.avg(MetricRow.duration_ms))
            .group_by(MetricRow.stage)
            .order_by(MetricRow.stage)
        )
        with self._db.session_scope() as session:
            rows = session.execute(stmt).all()
        return [
            StageSummary(
                stage=StageName(stage),
                attempts=int(attempts or 0),
                failures=int(failed or 0),
                avg_duration_ms=round(float(avg or 0.0), 1),
            )
            for stage, attempts, failed, avg in rows
        ]

    def get_stats(self) -> DashboardStats:
        with self._db.session_scope() as session:
            total_trends = int(session.scalar(select(func.count()).select_from(TrendRow)) or 0)
            counts = {
                str(state): int(count)
                for state, count in session.execute(
                    select(JobRow.state, func.count(JobRow.id)).group_by(JobRow.state)
                ).all()
            }
        return DashboardStats(
            total_trends=total_trends,
            pending_jobs=counts.get(JobState.PENDING.value, 0),
            completed_jobs=counts.get(JobState.COMPLETED.value, 0),
            failed_jobs=counts.get(JobState.FAILED.value, 0),
        )
