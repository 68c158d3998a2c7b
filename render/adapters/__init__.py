"""Render adapters package."""

from .base import BaseRendererAdapter, VideoRenderResult
from .ffmpeg import FfmpegAdapter

__all__ = [
    "BaseRendererAdapter",
    "FfmpegAdapter",
    "VideoRenderResult",
]
