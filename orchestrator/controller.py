"""Explicit start/stop controller for the pipeline loops."""

from __future__ import annotations

import asyncio
from enum import Enum
import logging
from threading import Lock


logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    SHUTDOWN = "shutdown"


class PipelineController:
    """Process-wide running flag with defined transition points.

    Loops consult it only at their boundaries (before a collector tick, before
    a worker claim), so toggling it never interrupts a stage in flight.
    ``shutdown`` is terminal and makes every loop return.
    """

    def __init__(self, *, running: bool = False) -> None:
        self._lock = Lock()
        self._state = PipelineState.RUNNING if running else PipelineState.STOPPED

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state == PipelineState.RUNNING

    @property
    def is_shutdown(self) -> bool:
        return self.state == PipelineState.SHUTDOWN

    def start(self) -> bool:
        return self._transition(PipelineState.RUNNING)

    def stop(self) -> bool:
        return self._transition(PipelineState.STOPPED)

    def set_running(self, running: bool) -> PipelineState:
        if running:
            self.start()
        else:
            self.stop()
        return self.state

    def shutdown(self) -> None:
        with self._lock:
            self._state = PipelineState.SHUTDOWN
        logger.info("pipeline_shutdown")

    def _transition(self, target: PipelineState) -> bool:
        with self._lock:
            if self._state == PipelineState.SHUTDOWN or self._state == target:
                return False
            previous = self._state
            self._state = target
        logger.info("pipeline_state from=%s to=%s", previous.value, target.value)
        return True

    async def wait_until_running(self, poll_interval: float = 0.5) -> bool:
        """Block until running (True) or shut down (False)."""
        while True:
            state = self.state
            if state == PipelineState.RUNNING:
                return True
            if state == PipelineState.SHUTDOWN:
                return False
            await asyncio.sleep(poll_interval)

    async def sleep(self, seconds: float, *, chunk: float = 1.0) -> bool:
        """Sleep in chunks so shutdown is prompt. False when shut down meanwhile."""
        remaining = max(0.0, float(seconds))
        while remaining > 0:
            if self.is_shutdown:
                return False
            step = min(chunk, remaining)
            await asyncio.sleep(step)
            remaining -= step
        return not self.is_shutdown
