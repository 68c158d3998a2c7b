from __future__ import annotations

from pathlib import Path

import pytest

from config import (
    CollectorSettings,
    GeneralSettings,
    NotifierSettings,
    SchedulerSettings,
    Settings,
    StorageSettings,
    WorkerSettings,
)
from storage import PipelineStore


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        storage=StorageSettings(
            database_url=f"sqlite:///{tmp_path / 'shotauto.db'}",
            asset_dir=str(tmp_path / "shorts"),
        ),
        scheduler=SchedulerSettings(backoff_base_secs=0.0, backoff_cap_secs=0.0),
        collector=CollectorSettings(fetch_attempts=1),
        worker=WorkerSettings(idle_backoff_secs=0.05, idle_backoff_max_secs=0.1),
        notifier=NotifierSettings(backoff_base_secs=0.0, backoff_cap_secs=0.0, poll_interval_secs=0.05),
        general=GeneralSettings(),
    )


@pytest.fixture
def store(settings: Settings):
    pipeline_store = PipelineStore.from_url(settings.storage.database_url)
    yield pipeline_store
    pipeline_store.close()
