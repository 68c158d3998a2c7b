"""Trend source connectors."""

from .youtube import DEFAULT_BASE_URL, YouTubeTrendSource, probe_youtube_key

__all__ = [
    "DEFAULT_BASE_URL",
    "YouTubeTrendSource",
    "probe_youtube_key",
]
