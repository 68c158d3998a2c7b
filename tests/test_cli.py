from __future__ import annotations

import json

import pytest

import main
from helpers import FakeAdapter, FakeSource, ScriptedGenerator, trend_item
from pipeline.runtime import PipelineRuntime
from webapp.runtime import configure_runtime, reset_runtime


@pytest.fixture
def runtime(store, settings):
    pipeline = PipelineRuntime(
        settings,
        store=store,
        script_generator=ScriptedGenerator(),
        renderer_adapter=FakeAdapter(),
        source_factory=lambda _key: FakeSource([trend_item(1), trend_item(2)]),
    )
    configure_runtime(pipeline)
    yield pipeline
    reset_runtime()


def _output(capsys) -> dict:
    return json.loads(capsys.readouterr().out)


def test_save_config_merges_given_flags(runtime, store, capsys) -> None:
    assert main.main(["save-config", "--youtube-api-key", "yt", "--poll-interval-secs", "90"]) == 0
    assert _output(capsys)["youtube_api_key"] == "yt"

    assert main.main(["save-config", "--telegram-chat-id", "42"]) == 0
    config = store.get_config()
    assert (config.youtube_api_key, config.telegram_chat_id, config.poll_interval_secs) == ("yt", "42", 90)

    assert main.main(["save-config", "--youtube-api-key", ""]) == 0
    assert store.get_config().youtube_api_key is None


def test_poll_then_work_once_then_stats(runtime, store, capsys) -> None:
    assert main.main(["poll-once"]) == 1
    assert "not configured" in _output(capsys)["error"]

    store.save_config(store.get_config().model_copy(update={"youtube_api_key": "yt"}))
    assert main.main(["poll-once"]) == 0
    assert _output(capsys)["inserted"] == 2

    assert main.main(["work-once"]) == 0
    assert _output(capsys)["state"] == "completed"

    assert main.main(["stats"]) == 0
    assert _output(capsys) == {"total_trends": 2, "pending_jobs": 1, "completed_jobs": 1, "failed_jobs": 0}
