from __future__ import annotations

from config import SchedulerSettings
from core import JobState
from helpers import Clock, trend_item
from orchestrator.scheduler import JobScheduler


def _scheduler(store, clock: Clock, **overrides) -> JobScheduler:
    params = {"max_retries": 3, "backoff_base_secs": 30.0, "backoff_cap_secs": 900.0, "stale_after_secs": 900.0}
    params.update(overrides)
    return JobScheduler(store, SchedulerSettings(**params), clock=clock)


def _generating(store, scheduler: JobScheduler, clock: Clock, n: int = 1):
    store.insert_trend_with_job(trend_item(n), now=clock())
    claimed = scheduler.claim_next()
    return scheduler.begin_generation(claimed.job)


def test_backoff_is_monotonic_and_capped(store) -> None:
    scheduler = _scheduler(store, Clock())
    delays = [scheduler.backoff_delay(attempt) for attempt in range(0, 80)]

    assert delays[:3] == [30.0, 60.0, 120.0]
    assert all(later >= earlier for earlier, later in zip(delays, delays[1:]))
    assert max(delays) == 900.0


def test_retry_then_terminal_failure_after_max_retries(store) -> None:
    clock = Clock()
    scheduler = _scheduler(store, clock)
    job = _generating(store, scheduler, clock)

    assert scheduler.record_failure(job, "InferenceError: timeout") == JobState.PENDING
    requeued = store.get_job(job.id)
    assert requeued.state == JobState.PENDING
    assert requeued.last_error == "InferenceError: timeout"
    assert (requeued.next_attempt_at - clock()).total_seconds() == 60.0

    # not eligible before the deadline
    assert scheduler.claim_next() is None
    clock.advance(60)
    job = scheduler.begin_generation(scheduler.claim_next().job)
    assert job.attempt_count == 2
    assert scheduler.record_failure(job, "again") == JobState.PENDING

    clock.advance(120)
    job = scheduler.begin_generation(scheduler.claim_next().job)
    assert job.attempt_count == 3
    assert scheduler.record_failure(job, "third") == JobState.FAILED

    final = store.get_job(job.id)
    assert final.state == JobState.FAILED
    assert final.attempt_count == 3
    clock.advance(10_000)
    assert scheduler.claim_next() is None


def test_permanent_failure_skips_remaining_budget(store) -> None:
    clock = Clock()
    scheduler = _scheduler(store, clock)
    job = _generating(store, scheduler, clock)

    assert scheduler.record_failure(job, "empty script", permanent=True) == JobState.FAILED
    assert store.get_job(job.id).attempt_count == 1


def test_watchdog_charges_lost_claim_but_not_generating_twice(store) -> None:
    clock = Clock()
    scheduler = _scheduler(store, clock)

    store.insert_trend_with_job(trend_item(1), now=clock())
    store.insert_trend_with_job(trend_item(2), now=clock())
    claimed_only = scheduler.claim_next()
    generating = scheduler.begin_generation(scheduler.claim_next().job)

    clock.advance(899)
    assert scheduler.reclaim_stale() == 0

    clock.advance(2)
    assert scheduler.reclaim_stale() == 2

    lost_claim = store.get_job(claimed_only.job.id)
    assert lost_claim.state == JobState.PENDING
    assert lost_claim.attempt_count == 1
    assert lost_claim.last_error.startswith("stale:")

    stalled = store.get_job(generating.id)
    assert stalled.state == JobState.PENDING
    assert stalled.attempt_count == 1


def test_watchdog_fails_job_out_of_attempts(store) -> None:
    clock = Clock()
    scheduler = _scheduler(store, clock, max_retries=1)
    job = _generating(store, scheduler, clock)

    clock.advance(1000)
    assert scheduler.reclaim_stale() == 1
    reclaimed = store.get_job(job.id)
    assert reclaimed.state == JobState.FAILED
    assert reclaimed.attempt_count == 1


def test_reclaimed_worker_cannot_complete_or_fail(store) -> None:
    clock = Clock()
    scheduler = _scheduler(store, clock)
    job = _generating(store, scheduler, clock)

    clock.advance(1000)
    scheduler.reclaim_stale()

    assert scheduler.complete(job, asset_path="/late.mp4", script_text="late") is None
    assert scheduler.record_failure(job, "late failure") is None
    assert store.count_shorts(job.id) == 0
    assert store.get_job(job.id).state == JobState.PENDING


def test_late_worker_cannot_complete_after_reclaim_and_second_claim(store) -> None:
    clock = Clock()
    scheduler = _scheduler(store, clock)
    stale = _generating(store, scheduler, clock)
    assert stale.attempt_count == 1

    clock.advance(1000)
    assert scheduler.reclaim_stale() == 1
    current = scheduler.begin_generation(scheduler.claim_next().job)
    assert current.attempt_count == 2

    # the first worker finishes late, while the second is still rendering
    assert scheduler.complete(stale, asset_path="/late.mp4", script_text="from worker A") is None
    assert scheduler.record_failure(stale, "late failure") is None
    assert store.count_shorts(stale.id) == 0
    assert store.get_job(stale.id).state == JobState.GENERATING

    short = scheduler.complete(current, asset_path="/current.mp4", script_text="from worker B")
    assert short.script_text == "from worker B"
    assert store.get_job(stale.id).state == JobState.COMPLETED
    assert store.count_shorts(stale.id) == 1


def test_stale_claim_holder_cannot_begin_after_second_claim(store) -> None:
    clock = Clock()
    scheduler = _scheduler(store, clock)
    store.insert_trend_with_job(trend_item(1), now=clock())
    first = scheduler.claim_next()

    clock.advance(1000)
    assert scheduler.reclaim_stale() == 1
    second = scheduler.claim_next()
    assert second.job.attempt_count == 1

    assert scheduler.begin_generation(first.job) is None
    assert store.get_job(first.job.id).state == JobState.CLAIMED

    job = scheduler.begin_generation(second.job)
    assert job.state == JobState.GENERATING
    assert job.attempt_count == 2
