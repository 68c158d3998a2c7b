"""Local ffmpeg renderer: solid vertical background with burned-in captions and a silent track."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import shutil
import subprocess
from typing import List, Optional
from uuid import uuid4

from utils.exceptions import AssemblyError

from .base import BaseRendererAdapter, VideoRenderResult


logger = logging.getLogger(__name__)

CAPTION_STYLE = "FontName=DejaVu Sans,FontSize=16,Alignment=10,Outline=2,Shadow=0,MarginV=40"


class FfmpegAdapter(BaseRendererAdapter):
    """Deterministic local render; same inputs always produce the same layout."""

    provider = "ffmpeg"

    def __init__(
        self,
        *,
        width: int = 1080,
        height: int = 1920,
        fps: int = 30,
        background: str = "0x111827",
        timeout_s: float = 300.0,
        ffmpeg_bin: Optional[str] = None,
    ) -> None:
        self.width = int(width)
        self.height = int(height)
        self.fps = int(fps)
        self.background = background
        self.timeout_s = float(timeout_s)
        self._ffmpeg_bin = ffmpeg_bin

    def _resolve_binary(self) -> str:
        binary = self._ffmpeg_bin or shutil.which("ffmpeg")
        if not binary:
            raise AssemblyError("ffmpeg not found on PATH")
        return binary

    def build_command(self, *, binary: str, subtitle_name: str, duration_sec: float, target: Path) -> List[str]:
        duration = f"{max(0.5, float(duration_sec)):.3f}"
        return [
            binary,
            "-y",
            "-loglevel",
            "error",
            "-f",
            "lavfi",
            "-i",
            f"color=c={self.background}:s={self.width}x{self.height}:r={self.fps}:d={duration}",
            "-f",
            "lavfi",
            "-i",
            "anullsrc=channel_layout=stereo:sample_rate=44100",
            "-vf",
            f"subtitles={subtitle_name}:force_style='{CAPTION_STYLE}'",
            "-c:v",
            "libx264",
            "-pix_fmt",
            "yuv420p",
            "-c:a",
            "aac",
            "-t",
            duration,
            "-movflags",
            "+faststart",
            "-f",
            "mp4",
            str(target),
        ]

    def render(
        self,
        *,
        subtitle_path: Path,
        duration_sec: float,
        output_path: Path,
        title: str = "",
    ) -> VideoRenderResult:
        binary = self._resolve_binary()
        subtitle_path = Path(subtitle_path).resolve()
        target = Path(output_path).resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_target = target.parent / f".{target.name}.{uuid4().hex}.tmp"

        # subtitles= is resolved relative to cwd; a bare file name needs no filter escaping
        cmd = self.build_command(
            binary=binary,
            subtitle_name=subtitle_path.name,
            duration_sec=duration_sec,
            target=tmp_target,
        )
        logger.info("render_start output=%s duration_s=%.2f title=%r", target, duration_sec, title[:60])
        try:
            process = subprocess.run(
                cmd,
                cwd=str(subtitle_path.parent),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout_s,
            )
        except subprocess.TimeoutExpired as exc:
            tmp_target.unlink(missing_ok=True)
            raise AssemblyError(f"ffmpeg timed out after {self.timeout_s:.0f}s") from exc
        except OSError as exc:
            tmp_target.unlink(missing_ok=True)
            raise AssemblyError(f"ffmpeg could not start: {exc}") from exc

        if process.returncode != 0 or not tmp_target.exists() or tmp_target.stat().st_size <= 0:
            tmp_target.unlink(missing_ok=True)
            tail = "\n".join((process.stderr or "").strip().splitlines()[-20:])
            raise AssemblyError(f"ffmpeg failed (exit {process.returncode}): {tail or 'no output'}")

        os.replace(tmp_target, target)
        size = target.stat().st_size
        logger.info("render_done output=%s bytes=%s", target, size)
        return VideoRenderResult(output_path=str(target), duration_sec=float(duration_sec), size_bytes=size)
