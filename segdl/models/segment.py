"""
Progress record for one byte range of a part, as persisted in a segment file header.
"""

import struct
from dataclasses import dataclass

# Gap-patch segments sort just before the segment that follows the gap
INDEX_EPSILON = 1e-6


def as_float32(value: float) -> float:
    """Rounds an index to the precision the on-disk header can hold."""
    return struct.unpack("<f", struct.pack("<f", value))[0]


@dataclass
class SegmentMeta:
    """
    A contiguous byte range ``[start, end]`` of a part and its download cursor.

    ``cursor`` is the next byte to fetch; ``cursor == end + 1`` means the
    segment is complete. ``index`` is a fractional sort key: fresh segments get
    0, 1, 2... and segments inserted later to patch a gap get a value between
    their neighbours, so no existing file ever has to be renamed.
    """

    index: float
    start: int
    end: int
    cursor: int

    def __post_init__(self):
        self.index = as_float32(self.index)

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def saved(self) -> int:
        """Bytes of this range already on disk."""
        return self.cursor - self.start

    @property
    def remaining(self) -> int:
        return self.end + 1 - self.cursor

    @property
    def is_complete(self) -> bool:
        return self.cursor == self.end + 1

    @property
    def is_overshot(self) -> bool:
        """True when the file holds more bytes than the range allows."""
        return self.cursor > self.end + 1
