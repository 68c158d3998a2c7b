from __future__ import annotations

from pathlib import Path

import pytest

from core import JobState, PipelineConfig, StageName, StageOutcome, Trend
from helpers import GOOD_SCRIPT, FakeAdapter, ScriptedGenerator, trend_item
from intelligence.llm import BaseLLM, LLMResponse
from orchestrator.controller import PipelineController
from orchestrator.scheduler import JobScheduler
from pipeline.script_generator import ScriptGenerator, build_prompt
from pipeline.worker import GenerationWorkerPool
from render import ShortAssembler
from utils.exceptions import AuthenticationError, InferenceError


def _pool(store, settings, generator, adapter=None) -> GenerationWorkerPool:
    return GenerationWorkerPool(
        store,
        JobScheduler(store, settings.scheduler),
        PipelineController(running=True),
        script_generator=generator,
        assembler=ShortAssembler(asset_dir=Path(settings.storage.asset_dir), renderer_adapter=adapter or FakeAdapter()),
        settings=settings.worker,
    )


def _assert_completion_invariant(store) -> None:
    for job in store.list_jobs():
        has_short = store.count_shorts(job.id) == 1
        assert has_short == (job.state == JobState.COMPLETED)


@pytest.mark.asyncio
async def test_idle_when_nothing_pending(store, settings) -> None:
    pool = _pool(store, settings, ScriptedGenerator())
    assert await pool.run_once() is None


@pytest.mark.asyncio
async def test_success_creates_exactly_one_short(store, settings) -> None:
    job_id = store.insert_trend_with_job(trend_item(1))
    pool = _pool(store, settings, ScriptedGenerator(GOOD_SCRIPT))

    outcome = await pool.run_once()

    assert outcome.state == JobState.COMPLETED
    assert outcome.attempt_count == 1
    assert outcome.asset_path.endswith("short_000001_a1.mp4")
    assert store.get_job(job_id).state == JobState.COMPLETED
    assert store.get_short_for_job(job_id).script_text.startswith("This clip is everywhere today.")
    stages = [(m.stage, m.outcome) for m in store.list_metrics(job_id)]
    assert stages == [(StageName.SCRIPT, StageOutcome.SUCCESS), (StageName.ASSEMBLE, StageOutcome.SUCCESS)]
    _assert_completion_invariant(store)


@pytest.mark.asyncio
async def test_transient_twice_then_success(store, settings) -> None:
    job_id = store.insert_trend_with_job(trend_item(1))
    generator = ScriptedGenerator(InferenceError("timeout"), InferenceError("503"), GOOD_SCRIPT)
    pool = _pool(store, settings, generator)

    states = [(await pool.run_once()).state for _ in range(3)]

    assert states == [JobState.PENDING, JobState.PENDING, JobState.COMPLETED]
    job = store.get_job(job_id)
    assert job.state == JobState.COMPLETED
    assert job.attempt_count == 3
    assert store.count_shorts(job_id) == 1
    assert await pool.run_once() is None

    summary = {row.stage: row for row in store.stage_summary()}
    assert summary[StageName.SCRIPT].attempts == 3
    assert summary[StageName.SCRIPT].failures == 2
    assert summary[StageName.ASSEMBLE].attempts == 1


@pytest.mark.asyncio
async def test_permanent_content_error_fails_on_first_attempt(store, settings) -> None:
    job_id = store.insert_trend_with_job(trend_item(1))
    pool = _pool(store, settings, ScriptedGenerator("I'm sorry, but I can't help with that request."))

    outcome = await pool.run_once()

    assert outcome.state == JobState.FAILED
    assert outcome.details == {"stage": "assemble", "permanent": True}
    job = store.get_job(job_id)
    assert job.state == JobState.FAILED
    assert job.attempt_count == 1
    assert "PermanentContentError" in job.last_error
    assert await pool.run_once() is None
    _assert_completion_invariant(store)


@pytest.mark.asyncio
async def test_retries_stop_at_max_retries(store, settings) -> None:
    job_id = store.insert_trend_with_job(trend_item(1))
    generator = ScriptedGenerator(InferenceError("down"))
    pool = _pool(store, settings, generator)

    outcomes = [await pool.run_once() for _ in range(5)]

    assert [o.state if o else None for o in outcomes] == [
        JobState.PENDING,
        JobState.PENDING,
        JobState.FAILED,
        None,
        None,
    ]
    job = store.get_job(job_id)
    assert job.attempt_count == settings.scheduler.max_retries
    assert generator.calls == 3
    _assert_completion_invariant(store)


@pytest.mark.asyncio
async def test_assembly_failure_is_retryable(store, settings) -> None:
    job_id = store.insert_trend_with_job(trend_item(1))
    pool = _pool(store, settings, ScriptedGenerator(GOOD_SCRIPT), adapter=FakeAdapter(fail_times=1))

    first = await pool.run_once()
    second = await pool.run_once()

    assert first.state == JobState.PENDING
    assert first.details["stage"] == "assemble"
    assert "AssemblyError" in first.error
    assert second.state == JobState.COMPLETED
    assert store.get_job(job_id).attempt_count == 2


@pytest.mark.asyncio
async def test_unexpected_exception_is_a_retryable_failure(store, settings) -> None:
    job_id = store.insert_trend_with_job(trend_item(1))
    pool = _pool(store, settings, ScriptedGenerator(RuntimeError("bug in prompt code"), GOOD_SCRIPT))

    first = await pool.run_once()
    assert first.state == JobState.PENDING
    assert store.get_job(job_id).last_error == "RuntimeError: bug in prompt code"
    assert (await pool.run_once()).state == JobState.COMPLETED


@pytest.mark.asyncio
async def test_auth_failure_halts_claims_until_config_changes(store, settings) -> None:
    store.insert_trend_with_job(trend_item(1))
    store.insert_trend_with_job(trend_item(2))
    generator = ScriptedGenerator(AuthenticationError("rejected", service="ollama"), GOOD_SCRIPT)
    pool = _pool(store, settings, generator)

    first = await pool.run_once()
    assert first.state == JobState.PENDING
    assert pool.is_halted
    assert await pool.run_once() is None
    assert generator.calls == 1

    store.save_config(PipelineConfig(ollama_endpoint="http://other-host:11434"))
    resumed = await pool.run_once()
    assert resumed.state == JobState.COMPLETED
    assert not pool.is_halted


class _TakenOverGenerator:
    """While generating, the job is reclaimed and re-begun by a second worker."""

    def __init__(self, store) -> None:
        self.store = store
        self.successor = None

    async def generate(self, trend: Trend, config: PipelineConfig) -> str:
        job = self.store.get_job_for_trend(trend.id)
        assert self.store.reclaim_job(job, charge_attempt=False, give_up=False, error="stale: test")
        claimed = self.store.claim_next()
        self.successor = self.store.begin_generation(claimed.job.id, expected_attempts=claimed.job.attempt_count)
        return GOOD_SCRIPT


@pytest.mark.asyncio
async def test_worker_taken_over_mid_flight_writes_no_short(store, settings) -> None:
    job_id = store.insert_trend_with_job(trend_item(1))
    generator = _TakenOverGenerator(store)
    pool = _pool(store, settings, generator)

    outcome = await pool.run_once()

    assert outcome.state is None
    assert outcome.error == "ownership lost before completion"
    assert generator.successor.attempt_count == 2
    assert store.count_shorts(job_id) == 0
    job = store.get_job(job_id)
    assert job.state == JobState.GENERATING
    assert job.attempt_count == 2
    _assert_completion_invariant(store)


class _EchoLLM(BaseLLM):
    def __init__(self, reply: str) -> None:
        super().__init__("fake")
        self.reply = reply
        self.prompts = []

    @property
    def provider(self) -> str:
        return "fake"

    async def acomplete(self, messages, **kwargs) -> LLMResponse:
        self.prompts.append([m.content for m in messages])
        return LLMResponse(content=self.reply, model=self.model)


@pytest.mark.asyncio
async def test_script_generator_builds_prompt_and_cleans_reply() -> None:
    llm = _EchoLLM("<think>plan the hook</think>\n```\nScript: Big news from the kitchen.\n```")
    endpoints = []

    def factory(config: PipelineConfig) -> BaseLLM:
        endpoints.append(config.ollama_endpoint)
        return llm

    trend = Trend(id="abc", title="Chef drops cake", channel="Bakes", discovered_at="2026-01-01T00:00:00")
    script = await ScriptGenerator(llm_factory=factory).generate(trend, PipelineConfig())

    assert script == "Big news from the kitchen."
    assert endpoints == ["http://localhost:11434"]
    assert "Chef drops cake" in llm.prompts[0][1]
    assert "Channel: Bakes" in build_prompt(trend)
