"""Trend-to-short pipeline: collector, workers, notifier and their runtime."""

from .collector import TrendCollector
from .metrics import MetricsRecorder
from .notification import Notifier, NotifyReport, TelegramClient, probe_telegram_token
from .runtime import PipelineRuntime
from .script_generator import ScriptGenerator, build_prompt
from .worker import GenerationWorkerPool

__all__ = [
    "GenerationWorkerPool",
    "MetricsRecorder",
    "Notifier",
    "NotifyReport",
    "PipelineRuntime",
    "ScriptGenerator",
    "TelegramClient",
    "TrendCollector",
    "build_prompt",
    "probe_telegram_token",
]
