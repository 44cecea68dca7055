"""
Media Processing Layer.

This package is responsible for everything that touches a part on disk:
segment files and their planning, concurrent ranged fetching, merging
segments back together and muxing multi-part videos with ffmpeg.
"""

from .downloader import PartDownloader, SegmentedDownloader
from .fetcher import SegmentFetcher
from .merger import SegmentMerger
from .muxer import Muxer
from .planner import SegmentPlan, SegmentPlanner
from .segment_store import SegmentStore
from .single_stream import SingleStreamDownloader

__all__ = [
    "Muxer",
    "PartDownloader",
    "SegmentFetcher",
    "SegmentMerger",
    "SegmentPlan",
    "SegmentPlanner",
    "SegmentStore",
    "SegmentedDownloader",
    "SingleStreamDownloader",
]
