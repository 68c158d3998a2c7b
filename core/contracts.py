"""Canonical data contracts for the trend-to-short pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"
DEFAULT_POLL_INTERVAL_SECS = 300


class JobState(str, Enum):
    """Lifecycle state of a generation job."""

    PENDING = "pending"
    CLAIMED = "claimed"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED})
IN_FLIGHT_STATES = frozenset({JobState.CLAIMED, JobState.GENERATING})


class StageName(str, Enum):
    """Metric stage names."""

    SCRIPT = "script"
    ASSEMBLE = "assemble"
    NOTIFY = "notify"


class StageOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class NotifyStatus(str, Enum):
    SENT = "sent"
    GAVE_UP = "gave_up"


def _optional_text(value: Any) -> Optional[str]:
    text = str(value or "").strip()
    return text or None


class PipelineConfig(BaseModel):
    """User-editable configuration record (singleton row)."""

    model_config = ConfigDict(from_attributes=True)

    youtube_api_key: Optional[str] = None
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    ollama_endpoint: str = DEFAULT_OLLAMA_ENDPOINT
    poll_interval_secs: int = Field(default=DEFAULT_POLL_INTERVAL_SECS, gt=0)

    @field_validator("youtube_api_key", "telegram_bot_token", "telegram_chat_id", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Optional[str]:
        return _optional_text(value)

    @field_validator("ollama_endpoint", mode="before")
    @classmethod
    def _endpoint_or_default(cls, value: Any) -> str:
        text = str(value or "").strip().rstrip("/")
        return text or DEFAULT_OLLAMA_ENDPOINT

    @property
    def has_trend_source(self) -> bool:
        return self.youtube_api_key is not None

    @property
    def has_messaging(self) -> bool:
        return self.telegram_bot_token is not None and self.telegram_chat_id is not None

    def fingerprint(self) -> str:
        """Stable identity of the record, used to detect edits between cycles."""
        return self.model_dump_json()


class TrendItem(BaseModel):
    """One trending entry as returned by the trend source."""

    source_id: str
    title: str
    score: int = 0
    channel: Optional[str] = None
    category: Optional[str] = None

    @field_validator("source_id", "title", mode="before")
    @classmethod
    def _non_empty_text(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("value is required")
        return text

    @field_validator("channel", "category", mode="before")
    @classmethod
    def _optional(cls, value: Any) -> Optional[str]:
        return _optional_text(value)


class Trend(BaseModel):
    """Stored trend row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    score: int = 0
    channel: Optional[str] = None
    category: Optional[str] = None
    discovered_at: datetime


class Job(BaseModel):
    """Stored job row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    trend_id: str
    state: JobState
    attempt_count: int = 0
    last_error: Optional[str] = None
    next_attempt_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    notified_at: Optional[datetime] = None
    notify_status: Optional[NotifyStatus] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class Short(BaseModel):
    """Stored short row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int
    asset_path: str
    script_text: str
    duration_sec: float = 0.0
    created_at: datetime


class MetricRecord(BaseModel):
    """Append-only per-stage timing record."""

    model_config = ConfigDict(from_attributes=True)

    job_id: int
    stage: StageName
    duration_ms: int
    outcome: StageOutcome
    recorded_at: datetime


class ClaimedJob(BaseModel):
    """A job owned by a worker, with the trend it was created for."""

    job: Job
    trend: Trend


class DashboardStats(BaseModel):
    """Aggregate counts for the statistics readout."""

    total_trends: int = 0
    pending_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0


class StageSummary(BaseModel):
    """Per-stage metric aggregate."""

    stage: StageName
    attempts: int = 0
    failures: int = 0
    avg_duration_ms: float = 0.0


class PollResult(BaseModel):
    """Outcome of one collector poll."""

    fetched: int = 0
    inserted: int = 0
    duplicates: int = 0


class JobOutcome(BaseModel):
    """Result of one worker iteration over a claimed job."""

    job_id: int
    state: Optional[JobState] = None
    attempt_count: int = 0
    error: Optional[str] = None
    asset_path: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
