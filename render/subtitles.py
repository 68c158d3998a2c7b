"""Caption timeline and SRT output for generated scripts."""

from __future__ import annotations

import os
from pathlib import Path
import re
from typing import Dict, List, Tuple
from uuid import uuid4


MIN_CUE_SEC = 0.35


def clean_text(value: str) -> str:
    text = re.sub(r"[*_#`>]+", " ", str(value or ""))
    text = re.sub(r"\s+", " ", text).strip()
    return text


def word_count(text: str) -> int:
    return len(re.findall(r"\S+", clean_text(text)))


def format_srt_timestamp(seconds: float) -> str:
    value = max(0.0, float(seconds))
    hours = int(value // 3600)
    minutes = int((value % 3600) // 60)
    secs = int(value % 60)
    millis = int(round((value - int(value)) * 1000))
    if millis >= 1000:
        millis -= 1000
        secs += 1
        if secs >= 60:
            secs = 0
            minutes += 1
            if minutes >= 60:
                minutes = 0
                hours += 1
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def split_caption_lines(script_text: str, *, max_words: int = 7) -> List[str]:
    """Sentence-aware chunks of at most ``max_words`` words."""
    text = clean_text(script_text)
    if not text:
        return []
    sentences = [s.strip() for s in re.split(r"(?<=[.!?])\s+", text) if s.strip()]
    lines: List[str] = []
    for sentence in sentences:
        words = sentence.split()
        for start in range(0, len(words), max_words):
            lines.append(" ".join(words[start:start + max_words]))
    return lines


def build_timeline(
    script_text: str,
    *,
    words_per_second: float,
    max_duration_sec: float,
) -> Tuple[List[Dict[str, object]], float]:
    """Caption cues paced by word count, squeezed into ``max_duration_sec``.

    Returns (cues, total_duration). Cues are contiguous and monotonic; the
    last one ends exactly at the total.
    """
    lines = split_caption_lines(script_text)
    if not lines:
        return [], 0.0

    rate = max(0.1, float(words_per_second))
    natural = [max(MIN_CUE_SEC, len(line.split()) / rate) for line in lines]
    natural_total = sum(natural)
    total = min(float(max_duration_sec), natural_total)
    scale = total / natural_total if natural_total > 0 else 1.0

    cues: List[Dict[str, object]] = []
    cursor = 0.0
    for idx, (line, length) in enumerate(zip(lines, natural), start=1):
        end = cursor + length * scale
        cues.append({"idx": idx, "start_sec": cursor, "end_sec": end, "text": line})
        cursor = end

    cues[-1]["end_sec"] = total
    return cues, total


def write_srt(cues: List[Dict[str, object]], path: Path) -> str:
    """Write cues as SRT; tmp file then rename so readers never see a partial file."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    chunks: List[str] = []
    for cue in cues:
        start = float(cue["start_sec"])
        end = max(start + 0.01, float(cue["end_sec"]))
        chunks.append(
            "\n".join(
                [
                    str(cue["idx"]),
                    f"{format_srt_timestamp(start)} --> {format_srt_timestamp(end)}",
                    str(cue["text"]),
                    "",
                ]
            )
        )

    tmp = target.parent / f".{target.name}.{uuid4().hex}.tmp"
    tmp.write_text("\n".join(chunks), encoding="utf-8")
    os.replace(tmp, target)
    return str(target)
