"""
Counters and transfer speed of one download session.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field

SPEED_SAMPLE_INTERVAL = 0.5
SPEED_WINDOW = 10


@dataclass
class DownloadStats:
    """
    Item outcomes, finished parts and bytes written during a session.

    The speed is a moving average over the last ``SPEED_WINDOW`` samples, one
    sample at most every ``SPEED_SAMPLE_INTERVAL`` seconds. Bytes already on
    disk from an earlier run are counted as well when a part resumes.
    """

    items_downloaded: int = 0
    items_skipped_exists: int = 0
    items_delegated: int = 0
    items_failed: int = 0
    parts_downloaded: int = 0
    total_size_downloaded: int = 0

    current_speed_bps: float = 0.0
    peak_speed_bps: float = 0.0
    _samples: deque = field(default_factory=lambda: deque(maxlen=SPEED_WINDOW), repr=False)
    _sampled_at: float = field(default_factory=time.monotonic, repr=False)
    _sampled_bytes: int = field(default=0, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def add_bytes(self, count: int, progress_manager=None) -> None:
        async with self._lock:
            self.total_size_downloaded += count
            self._sample_speed(progress_manager)

    def _sample_speed(self, progress_manager=None) -> None:
        now = time.monotonic()
        elapsed = now - self._sampled_at
        if elapsed <= SPEED_SAMPLE_INTERVAL:
            return

        delta = self.total_size_downloaded - self._sampled_bytes
        self._sampled_at = now
        self._sampled_bytes = self.total_size_downloaded
        if delta <= 0:
            return

        self._samples.append(delta / elapsed)
        self.current_speed_bps = sum(self._samples) / len(self._samples)
        self.peak_speed_bps = max(self.peak_speed_bps, self.current_speed_bps)
        if progress_manager:
            progress_manager.update_speed_stats(self.current_speed_bps, self.peak_speed_bps)
