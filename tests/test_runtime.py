from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from core import JobState, NotifyStatus, PipelineConfig
from helpers import GOOD_SCRIPT, FakeAdapter, FakeSource, FakeTelegram, ScriptedGenerator, trend_item
from pipeline.runtime import PipelineRuntime
from storage import utcnow
from utils.exceptions import InferenceError


async def _wait_for(predicate, timeout: float = 10.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.05)


@pytest.mark.asyncio
async def test_pipeline_turns_trends_into_announced_shorts(store, settings) -> None:
    store.save_config(PipelineConfig(youtube_api_key="yt", telegram_bot_token="t", telegram_chat_id="42"))
    source = FakeSource([trend_item(n) for n in range(3)])
    telegram = FakeTelegram()
    runtime = PipelineRuntime(
        settings,
        store=store,
        script_generator=ScriptedGenerator(InferenceError("warming up"), GOOD_SCRIPT),
        renderer_adapter=FakeAdapter(),
        source_factory=lambda _key: source,
        client_factory=lambda _token: telegram,
    )
    runtime.controller.start()
    runtime.start_background()
    try:
        await _wait_for(lambda: store.get_stats().completed_jobs == 3 and len(telegram.sent) == 3)
    finally:
        await runtime.shutdown(grace_s=5.0)

    jobs = store.list_jobs()
    assert {job.state for job in jobs} == {JobState.COMPLETED}
    assert sorted(job.attempt_count for job in jobs) == [1, 1, 2]
    assert {job.notify_status for job in jobs} == {NotifyStatus.SENT}
    assert store.count_shorts() == 3
    assert source.calls == 1


@pytest.mark.asyncio
async def test_startup_recovery_reclaims_orphaned_claims(store, settings) -> None:
    long_ago = utcnow() - timedelta(hours=2)
    job_id = store.insert_trend_with_job(trend_item(1), now=long_ago)
    store.claim_next(now=long_ago)

    runtime = PipelineRuntime(settings, store=store, renderer_adapter=FakeAdapter())
    assert await runtime.recover() == 1

    job = store.get_job(job_id)
    assert job.state == JobState.PENDING
    assert job.attempt_count == 1


@pytest.mark.asyncio
async def test_shutdown_stops_loops_while_paused(store, settings) -> None:
    runtime = PipelineRuntime(settings, store=store, renderer_adapter=FakeAdapter())
    task = runtime.start_background()
    await asyncio.sleep(0.1)

    await runtime.shutdown(grace_s=5.0)
    assert task.done()
    assert runtime.controller.is_shutdown
