"""
Configuration Management Module
Operator-level policy constants for the trend-to-short pipeline.
"""
from .settings import (
    CollectorSettings,
    GeneralSettings,
    NotifierSettings,
    SchedulerSettings,
    Settings,
    StorageSettings,
    WorkerSettings,
    get_settings,
)

__all__ = [
    "CollectorSettings",
    "GeneralSettings",
    "NotifierSettings",
    "SchedulerSettings",
    "Settings",
    "StorageSettings",
    "WorkerSettings",
    "get_settings",
]
