"""Renderer adapter abstractions."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass
class VideoRenderResult:
    """Result of one rendered short."""

    output_path: str
    duration_sec: float
    size_bytes: int = 0


class BaseRendererAdapter:
    """Base adapter that can be replaced by ffmpeg or test doubles.

    ``render`` is blocking; callers run it in a worker thread. Failures are
    raised as ``AssemblyError``.
    """

    provider = "base"

    def render(
        self,
        *,
        subtitle_path: Path,
        duration_sec: float,
        output_path: Path,
        title: str = "",
    ) -> VideoRenderResult:
        raise NotImplementedError
