from __future__ import annotations

import asyncio

import pytest

from orchestrator.controller import PipelineController, PipelineState


def test_start_stop_transitions() -> None:
    controller = PipelineController()
    assert controller.state == PipelineState.STOPPED

    assert controller.start() is True
    assert controller.start() is False
    assert controller.is_running

    assert controller.set_running(False) == PipelineState.STOPPED
    assert not controller.is_running


def test_shutdown_is_terminal() -> None:
    controller = PipelineController(running=True)
    controller.shutdown()

    assert controller.start() is False
    assert controller.state == PipelineState.SHUTDOWN
    assert controller.is_shutdown


@pytest.mark.asyncio
async def test_wait_until_running_wakes_on_start_and_returns_false_on_shutdown() -> None:
    controller = PipelineController()
    waiter = asyncio.create_task(controller.wait_until_running(poll_interval=0.01))
    await asyncio.sleep(0.05)
    assert not waiter.done()

    controller.start()
    assert await asyncio.wait_for(waiter, timeout=1.0) is True

    controller.shutdown()
    assert await controller.wait_until_running(poll_interval=0.01) is False


@pytest.mark.asyncio
async def test_sleep_returns_early_on_shutdown() -> None:
    controller = PipelineController(running=True)
    sleeper = asyncio.create_task(controller.sleep(30.0, chunk=0.01))
    await asyncio.sleep(0.05)
    controller.shutdown()

    assert await asyncio.wait_for(sleeper, timeout=1.0) is False
    assert await controller.sleep(0) is False
