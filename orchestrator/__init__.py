"""Job state machine, running-flag controller and the command surface."""

from .controller import PipelineController, PipelineState
from .scheduler import JobScheduler
from .service import (
    ShotAutoService,
    get_config,
    get_default_service,
    get_stats,
    is_running,
    save_config,
    set_default_service,
    set_running,
    test_inference_endpoint,
    test_messaging_bot,
    test_trend_source,
)

__all__ = [
    "JobScheduler",
    "PipelineController",
    "PipelineState",
    "ShotAutoService",
    "get_config",
    "get_default_service",
    "get_stats",
    "is_running",
    "save_config",
    "set_default_service",
    "set_running",
    "test_inference_endpoint",
    "test_messaging_bot",
    "test_trend_source",
]
