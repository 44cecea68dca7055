"""
Computes which byte ranges of a part still have to be fetched, reconciling a
fresh split against the segment files left behind by an earlier run.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from segdl.exceptions import PlannerError
from segdl.models.segment import INDEX_EPSILON, SegmentMeta, as_float32
from segdl.utils.cancellation import CancellationToken
from segdl.utils.formatting import format_byte_range, format_size
from segdl.utils.structured_logger import DownloadLogger

from .segment_store import SegmentStore

log = logging.getLogger(__name__)


@dataclass
class SegmentPlan:
    """Ordered segments covering the whole part, and the subset still to fetch."""

    segments: list[SegmentMeta] = field(default_factory=list)
    unfinished: list[SegmentMeta] = field(default_factory=list)
    saved_bytes: int = 0
    total_size: int = 0

    @property
    def complete(self) -> bool:
        return self.total_size > 0 and self.saved_bytes == self.total_size


def split_ranges(total_size: int, thread_number: int) -> list[SegmentMeta]:
    """
    Splits ``[0, total_size - 1]`` into ``thread_number`` near-equal segments.

    The last segment absorbs the remainder. Parts smaller than the thread count
    get one single-byte segment per byte instead of empty ranges.
    """
    if total_size <= 0:
        return []
    count = max(1, min(thread_number, total_size))
    part_size = total_size // count

    segments = []
    start = 0
    for i in range(count):
        end = total_size - 1 if i == count - 1 else start + part_size - 1
        segments.append(SegmentMeta(index=float(i), start=start, end=end, cursor=start))
        start = end + 1
    return segments


def _gap_index(
    store: SegmentStore, previous: SegmentMeta | None, following: SegmentMeta
) -> float:
    """
    Index for a segment inserted right before ``following``.

    Raises:
        PlannerError: If no index between the neighbours maps to a file name
            of its own.
    """
    lower = previous.index if previous is not None else following.index - 1
    taken = {store.segment_path(following)}
    if previous is not None:
        taken.add(store.segment_path(previous))

    # float32 may run out of room one epsilon below the neighbour
    for candidate in (following.index - INDEX_EPSILON, (lower + following.index) / 2):
        index = as_float32(candidate)
        if lower < index < following.index and store.index_path(index) not in taken:
            return index
    raise PlannerError(
        f"No free segment index before {following.index:f} of '{store.file_path}'; "
        "delete all its .part files and download again."
    )


class SegmentPlanner:
    """Produces the authoritative segment list for one part."""

    def __init__(
        self,
        thread_number: int,
        events: DownloadLogger | None = None,
        cancel_token: CancellationToken | None = None,
    ):
        self.thread_number = thread_number
        self.events = events
        self.cancel_token = cancel_token

    async def plan(self, file_path: Path, total_size: int) -> SegmentPlan:
        """
        Returns the segment plan for the part saved as ``file_path``, which is
        ``total_size`` bytes long.

        Raises:
            PlannerError: If existing segment files cannot be read or removed.
        """
        if self.cancel_token:
            self.cancel_token.raise_if_cancelled("planning")

        store = SegmentStore(file_path)
        existing = await asyncio.to_thread(store.scan)
        if not existing:
            segments = split_ranges(total_size, self.thread_number)
            plan = SegmentPlan(
                segments=segments, unfinished=list(segments), total_size=total_size
            )
        else:
            plan = await asyncio.to_thread(self._reconcile, store, existing, total_size)

        log.debug(
            f"Planned '{store.file_path.name}': {len(plan.segments)} segments, "
            f"{len(plan.unfinished)} unfinished, {plan.saved_bytes} bytes on disk"
        )
        if self.events:
            self.events.part_planned(
                store.file_path.name,
                total_size,
                len(plan.segments),
                len(plan.unfinished),
                plan.saved_bytes,
            )
        return plan

    def _reconcile(
        self, store: SegmentStore, existing: list[SegmentMeta], total_size: int
    ) -> SegmentPlan:
        plan = SegmentPlan(total_size=total_size)
        previous: SegmentMeta | None = None
        previous_end = -1
        name = store.file_path.name

        for meta in existing:
            if meta.end > total_size - 1 or meta.start <= previous_end or meta.end < meta.start:
                # Left over from a differently sized part, or overlapping its neighbour
                log.warning(
                    f"Segment {meta.index:f} of '{name}' covers "
                    f"{meta.start}-{meta.end}, which does not fit a "
                    f"{format_size(total_size)} part; discarding it"
                )
                if self.events:
                    self.events.segment_reset(name, meta.index, meta.cursor, meta.end)
                self._remove(store, meta)
                continue

            if meta.start != previous_end + 1:
                # Lost segment file: re-insert a segment covering the hole
                patch = SegmentMeta(
                    index=_gap_index(store, previous, meta),
                    start=previous_end + 1,
                    end=meta.start - 1,
                    cursor=previous_end + 1,
                )
                plan.segments.append(patch)
                plan.unfinished.append(patch)
                log.info(
                    f"Missing bytes {format_byte_range(patch.start, patch.end)} of "
                    f"'{name}', adding segment {patch.index:f}"
                )
                if self.events:
                    self.events.segment_gap_patched(name, patch.index, patch.start, patch.end)

            if meta.is_overshot:
                # More bytes on disk than the range allows: stale or corrupted
                log.warning(
                    f"Segment {meta.index:f} of '{name}' holds "
                    f"{meta.saved} bytes for a {meta.length}-byte range; re-downloading it"
                )
                if self.events:
                    self.events.segment_reset(name, meta.index, meta.cursor, meta.end)
                self._remove(store, meta)
                meta.cursor = meta.start
                plan.unfinished.append(meta)
            else:
                plan.saved_bytes += meta.saved
                if not meta.is_complete:
                    plan.unfinished.append(meta)

            plan.segments.append(meta)
            previous = meta
            previous_end = meta.end

        if previous is None:
            # Nothing on disk was usable
            segments = split_ranges(total_size, self.thread_number)
            return SegmentPlan(segments=segments, unfinished=list(segments), total_size=total_size)

        if previous_end != total_size - 1:
            tail = SegmentMeta(
                index=previous.index + 1,
                start=previous_end + 1,
                end=total_size - 1,
                cursor=previous_end + 1,
            )
            plan.segments.append(tail)
            plan.unfinished.append(tail)

        return plan

    @staticmethod
    def _remove(store: SegmentStore, meta: SegmentMeta) -> None:
        try:
            store.remove_sync(meta)
        except OSError as e:
            raise PlannerError(
                f"Cannot remove corrupted segment {meta.index:f} of '{store.file_path}': {e}"
            ) from e
