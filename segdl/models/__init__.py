"""
Data Models Layer.

This package contains the models that define the core data structures
used throughout the application: configuration, resolver output,
segment progress records and session statistics.
"""

from .config import DownloadConfig
from .media import CaptionPart, DataType, MediaData, Part, Stream
from .segment import SegmentMeta
from .stats import DownloadStats

__all__ = [
    "CaptionPart",
    "DataType",
    "DownloadConfig",
    "DownloadStats",
    "MediaData",
    "Part",
    "SegmentMeta",
    "Stream",
]
