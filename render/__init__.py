"""Short assembly: captions and video render."""

from .manager import AssembledShort, ShortAssembler, validate_script
from .subtitles import build_timeline, format_srt_timestamp, write_srt

__all__ = [
    "AssembledShort",
    "ShortAssembler",
    "build_timeline",
    "format_srt_timestamp",
    "validate_script",
    "write_srt",
]
