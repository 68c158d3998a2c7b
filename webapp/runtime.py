"""Shared runtime singletons for the web and CLI entrypoints."""

from __future__ import annotations

from threading import Lock
from typing import Optional

import httpx

from orchestrator.service import ShotAutoService, set_default_service
from pipeline.runtime import PipelineRuntime


_LOCK = Lock()
_RUNTIME: Optional[PipelineRuntime] = None
_SERVICE: Optional[ShotAutoService] = None


def configure_runtime(
    runtime: PipelineRuntime,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ShotAutoService:
    """Install ``runtime`` and a service bound to its store and controller."""
    global _RUNTIME, _SERVICE
    service = ShotAutoService(
        store=runtime.store,
        controller=runtime.controller,
        settings=runtime.settings,
        transport=transport,
    )
    with _LOCK:
        _RUNTIME = runtime
        _SERVICE = service
    set_default_service(service)
    return service


def get_runtime() -> PipelineRuntime:
    if _RUNTIME is None:
        configure_runtime(PipelineRuntime())
    return _RUNTIME


def get_service() -> ShotAutoService:
    if _SERVICE is None:
        get_runtime()
    return _SERVICE


def reset_runtime() -> None:
    global _RUNTIME, _SERVICE
    with _LOCK:
        _RUNTIME = None
        _SERVICE = None
    set_default_service(None)
