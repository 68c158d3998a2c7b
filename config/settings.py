"""
Settings Configuration
Pipeline policy constants validated with Pydantic.

User-editable values (API keys, endpoints, poll interval) live in the
``config`` table and are read through the store; the settings here are the
operator-level constants that shape retries, timeouts and concurrency.
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class StorageSettings(BaseSettings):
    """Persistent store"""
    database_url: str = Field(default="sqlite:///./data/shotauto.db", description="SQLAlchemy database URL")
    asset_dir: str = Field(default="./data/shorts", description="Directory for rendered shorts")
    busy_timeout_secs: float = Field(default=30.0, description="SQLite busy timeout")

    class Config:
        env_prefix = "SHOTAUTO_STORAGE_"


class SchedulerSettings(BaseSettings):
    """Job state machine policy"""
    max_retries: int = Field(default=3, ge=1, description="Attempts before a job is marked failed")
    backoff_base_secs: float = Field(default=30.0, ge=0.0, description="Retry delay base (base * 2^attempt)")
    backoff_cap_secs: float = Field(default=900.0, ge=0.0, description="Retry delay cap")
    stale_after_secs: float = Field(default=900.0, gt=0.0, description="Watchdog staleness threshold")
    watchdog_interval_secs: float = Field(default=60.0, gt=0.0, description="Watchdog period")
    claim_candidates: int = Field(default=5, ge=1, description="Pending rows tried per claim attempt")

    class Config:
        env_prefix = "SHOTAUTO_SCHEDULER_"


class CollectorSettings(BaseSettings):
    """Trend source (YouTube Data API)"""
    base_url: str = Field(default="https://www.googleapis.com/youtube/v3", description="YouTube Data API base URL")
    region_code: str = Field(default="US", description="Region for the most-popular chart")
    max_trends_per_poll: int = Field(default=25, ge=1, le=50, description="Items requested per poll")
    min_poll_interval_secs: int = Field(default=60, ge=1, description="Poll interval floor")
    request_timeout_secs: float = Field(default=20.0, description="HTTP timeout")
    fetch_attempts: int = Field(default=3, ge=1, description="Transient retries inside one poll")

    class Config:
        env_prefix = "SHOTAUTO_COLLECTOR_"


class WorkerSettings(BaseSettings):
    """Generation worker pool"""
    pool_size: int = Field(default=2, ge=1, description="Concurrent workers")
    idle_backoff_secs: float = Field(default=2.0, gt=0.0, description="Initial idle sleep")
    idle_backoff_max_secs: float = Field(default=30.0, gt=0.0, description="Idle sleep cap")
    ollama_model: str = Field(default="llama3.2", description="Model used for script synthesis")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    inference_timeout_secs: float = Field(default=120.0, gt=0.0, description="Inference request timeout")
    assembly_timeout_secs: float = Field(default=300.0, gt=0.0, description="ffmpeg render timeout")
    video_width: int = Field(default=1080, description="Output width")
    video_height: int = Field(default=1920, description="Output height")
    fps: int = Field(default=30, description="Output frame rate")
    words_per_second: float = Field(default=2.5, gt=0.0, description="Caption pacing")
    max_duration_secs: float = Field(default=59.0, gt=0.0, description="Shorts length limit")

    class Config:
        env_prefix = "SHOTAUTO_WORKER_"


class NotifierSettings(BaseSettings):
    """Messaging bot (Telegram)"""
    base_url: str = Field(default="https://api.telegram.org", description="Telegram Bot API base URL")
    max_attempts: int = Field(default=3, ge=1, description="Delivery attempts per message")
    backoff_base_secs: float = Field(default=2.0, ge=0.0, description="Delivery retry base")
    backoff_cap_secs: float = Field(default=30.0, ge=0.0, description="Delivery retry cap")
    poll_interval_secs: float = Field(default=10.0, gt=0.0, description="Unannounced-job poll period")
    batch_size: int = Field(default=20, ge=1, description="Jobs announced per cycle")
    request_timeout_secs: float = Field(default=15.0, description="HTTP timeout")

    class Config:
        env_prefix = "SHOTAUTO_NOTIFIER_"


class GeneralSettings(BaseSettings):
    """General"""
    probe_timeout_secs: float = Field(default=10.0, description="Credential probe timeout")
    log_level: str = Field(default="INFO", description="Root log level")
    log_file: Optional[str] = Field(default=None, description="Optional log file name under logs/")

    class Config:
        env_prefix = "SHOTAUTO_"


class Settings(BaseSettings):
    """Aggregated settings"""

    storage: StorageSettings = Field(default_factory=StorageSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    collector: CollectorSettings = Field(default_factory=CollectorSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    notifier: NotifierSettings = Field(default_factory=NotifierSettings)
    general: GeneralSettings = Field(default_factory=GeneralSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings after pulling an optional .env file into the environment."""
        if env_path is None:
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            storage=StorageSettings(),
            scheduler=SchedulerSettings(),
            collector=CollectorSettings(),
            worker=WorkerSettings(),
            notifier=NotifierSettings(),
            general=GeneralSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings singleton"""
    return Settings.load_from_env_file()

