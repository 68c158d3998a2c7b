"""
SQLAlchemy tables for config, trends, jobs, shorts and metrics.

Timestamps are stored as naive UTC.
"""
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ConfigRow(Base):
    __tablename__ = "config"
    id = Column(Integer, primary_key=True)  # always 1
    youtube_api_key = Column(String, nullable=True)
    telegram_bot_token = Column(String, nullable=True)
    telegram_chat_id = Column(String, nullable=True)
    ollama_endpoint = Column(String, nullable=False)
    poll_interval_secs = Column(Integer, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (CheckConstraint("id = 1", name="ck_config_singleton"),)


class TrendRow(Base):
    __tablename__ = "trends"
    id = Column(String, primary_key=True)  # source key (YouTube video id)
    title = Column(Text, nullable=False)
    channel = Column(String, nullable=True)
    category = Column(String, nullable=True)
    score = Column(Integer, nullable=False, default=0)
    discovered_at = Column(DateTime, nullable=False)


class JobRow(Base):
    __tablename__ = "jobs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    trend_id = Column(String, ForeignKey("trends.id"), nullable=False, unique=True)
    state = Column(String(16), nullable=False, default="pending")
    attempt_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    next_attempt_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    notified_at = Column(DateTime, nullable=True)
    notify_status = Column(String(16), nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "state IN ('pending','claimed','generating','completed','failed')",
            name="ck_jobs_state",
        ),
        Index("ix_jobs_state_created", "state", "created_at"),
        Index("ix_jobs_notified", "notified_at", "state"),
    )


class ShortRow(Base):
    __tablename__ = "shorts"
    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, unique=True)
    asset_path = Column(String, nullable=False)
    script_text = Column(Text, nullable=False)
    duration_sec = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False)


class MetricRow(Base):
    __tablename__ = "metrics"
    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    stage = Column(String(16), nullable=False)
    duration_ms = Column(Integer, nullable=False)
    outcome = Column(String(16), nullable=False)
    recorded_at = Column(DateTime, nullable=False)
