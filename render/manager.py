"""Short assembly: script validation, caption timeline, and render into the asset directory."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import re
from typing import Optional

from utils.exceptions import AssemblyError, PermanentContentError

from .adapters import BaseRendererAdapter, FfmpegAdapter
from .subtitles import build_timeline, clean_text, word_count, write_srt


logger = logging.getLogger(__name__)

MIN_SCRIPT_WORDS = 5

_REFUSAL_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^(i['’]?m|i am) (sorry|unable|not able)",
        r"^i (can(no|['’])?t|won['’]?t|will not) (help|assist|create|write|provide|comply)",
        r"^(sorry|unfortunately),? (but )?i (can(no|['’])?t|am unable)",
        r"^as an ai( language model)?,? i",
        r"\b(violates|against) (my|our|the) (content )?(policy|policies|guidelines)\b",
    )
]


@dataclass
class AssembledShort:
    """Stage 2 output."""

    job_id: int
    asset_path: str
    subtitle_path: str
    script_text: str
    duration_sec: float


def validate_script(script_text: Optional[str]) -> str:
    """Normalized script text, or PermanentContentError when it can never become a short."""
    text = clean_text(script_text or "")
    if not text:
        raise PermanentContentError("model returned an empty script")
    head = text[:240]
    if any(pattern.search(head) for pattern in _REFUSAL_PATTERNS):
        raise PermanentContentError("model refused the request", {"excerpt": head[:120]})
    if word_count(text) < MIN_SCRIPT_WORDS:
        raise PermanentContentError("script too short to narrate", {"words": word_count(text)})
    return text


class ShortAssembler:
    """Blocking; the worker runs ``assemble`` in a thread."""

    def __init__(
        self,
        *,
        asset_dir: Path,
        renderer_adapter: Optional[BaseRendererAdapter] = None,
        words_per_second: float = 2.5,
        max_duration_sec: float = 59.0,
    ) -> None:
        self._asset_dir = Path(asset_dir)
        self._adapter = renderer_adapter or FfmpegAdapter()
        self.words_per_second = float(words_per_second)
        self.max_duration_sec = float(max_duration_sec)

    @property
    def asset_dir(self) -> Path:
        return self._asset_dir

    def output_path(self, job_id: int, attempt: int = 1) -> Path:
        """Deterministic per job attempt; a reclaimed attempt never writes over its successor."""
        return self._asset_dir / f"short_{int(job_id):06d}_a{int(attempt)}.mp4"

    def assemble(self, job_id: int, script_text: str, *, attempt: int = 1, title: str = "") -> AssembledShort:
        script = validate_script(script_text)
        cues, duration = build_timeline(
            script,
            words_per_second=self.words_per_second,
            max_duration_sec=self.max_duration_sec,
        )
        if not cues or duration <= 0:
            raise PermanentContentError("script produced no captions")

        target = self.output_path(job_id, attempt)
        subtitle_path = write_srt(cues, target.with_suffix(".srt"))
        result = self._adapter.render(
            subtitle_path=Path(subtitle_path),
            duration_sec=duration,
            output_path=target,
            title=title,
        )
        if not result.output_path or not Path(result.output_path).exists():
            raise AssemblyError("renderer reported success without an output file")

        logger.info(
            "short_assembled job_id=%s output=%s duration_s=%.2f cues=%s",
            job_id,
            result.output_path,
            duration,
            len(cues),
        )
        return AssembledShort(
            job_id=int(job_id),
            asset_path=str(result.output_path),
            subtitle_path=subtitle_path,
            script_text=script,
            duration_sec=round(float(duration), 3),
        )
