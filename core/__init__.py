"""Core contracts and shared types for the trend-to-short pipeline."""

from .contracts import (
    DEFAULT_OLLAMA_ENDPOINT,
    DEFAULT_POLL_INTERVAL_SECS,
    IN_FLIGHT_STATES,
    TERMINAL_STATES,
    ClaimedJob,
    DashboardStats,
    Job,
    JobOutcome,
    JobState,
    MetricRecord,
    NotifyStatus,
    PipelineConfig,
    PollResult,
    Short,
    StageName,
    StageOutcome,
    StageSummary,
    Trend,
    TrendItem,
)

__all__ = [
    "DEFAULT_OLLAMA_ENDPOINT",
    "DEFAULT_POLL_INTERVAL_SECS",
    "IN_FLIGHT_STATES",
    "TERMINAL_STATES",
    "ClaimedJob",
    "DashboardStats",
    "Job",
    "JobOutcome",
    "JobState",
    "MetricRecord",
    "NotifyStatus",
    "PipelineConfig",
    "PollResult",
    "Short",
    "StageName",
    "StageOutcome",
    "StageSummary",
    "Trend",
    "TrendItem",
]
