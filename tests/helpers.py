"""Fakes shared by the test modules."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, List, Optional

from core import PipelineConfig, Trend, TrendItem
from render.adapters import BaseRendererAdapter, VideoRenderResult
from utils.exceptions import AssemblyError

GOOD_SCRIPT = (
    "This clip is everywhere today. A creator turned a kitchen mishap into the funniest two minutes "
    "on the internet, and millions are rewatching the ending. Here is why it landed. "
    "Follow for the next big trend."
)


class Clock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def trend_item(n: int, **overrides) -> TrendItem:
    data = {"source_id": f"vid{n:04d}", "title": f"Trending video {n}", "score": 1000 - n, "channel": "chan"}
    data.update(overrides)
    return TrendItem(**data)


class FakeSource:
    def __init__(self, items: Iterable[TrendItem] = (), error: Optional[BaseException] = None) -> None:
        self.items = list(items)
        self.error = error
        self.calls = 0
        self.keys: List[str] = []

    async def fetch_trending(self, max_results: int = 25) -> List[TrendItem]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.items[:max_results]


class ScriptedGenerator:
    """Replays steps in order; the last step repeats. An exception step is raised."""

    def __init__(self, *steps) -> None:
        self.steps = list(steps) or [GOOD_SCRIPT]
        self.calls = 0

    async def generate(self, trend: Trend, config: PipelineConfig) -> str:
        self.calls += 1
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, BaseException):
            raise step
        return step


class FakeAdapter(BaseRendererAdapter):
    provider = "fake"

    def __init__(self, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.calls = 0

    def render(self, *, subtitle_path: Path, duration_sec: float, output_path: Path, title: str = "") -> VideoRenderResult:
        self.calls += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise AssemblyError("encoder crashed")
        target = Path(output_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"fake-mp4:" + Path(subtitle_path).read_bytes()[:32])
        return VideoRenderResult(output_path=str(target), duration_sec=duration_sec, size_bytes=target.stat().st_size)


class FakeTelegram:
    def __init__(self, failures: int = 0, error: Optional[BaseException] = None) -> None:
        self.failures = failures
        self.error = error
        self.calls = 0
        self.sent: List[tuple] = []

    async def send_message(self, chat_id: str, text: str) -> None:
        self.calls += 1
        if self.failures != 0:
            self.failures -= 1
            raise self.error
        self.sent.append((chat_id, text))
