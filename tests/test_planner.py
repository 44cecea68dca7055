"""Tests for fresh and resumed segment plans."""

import asyncio

import pytest

from segdl.exceptions import PlannerError
from segdl.media.planner import SegmentPlanner, _gap_index, split_ranges
from segdl.media.segment_store import SegmentStore, encode_header
from segdl.models.segment import SegmentMeta


def write_segment(store: SegmentStore, meta: SegmentMeta, saved: int) -> None:
    with open(store.segment_path(meta), "wb") as f:
        f.write(encode_header(meta))
        f.write(b"\0" * saved)


def plan(tmp_path, total_size, threads=4):
    planner = SegmentPlanner(threads)
    return asyncio.run(planner.plan(tmp_path / "movie.mp4", total_size))


def test_fresh_ranges_cover_the_part_without_overlap():
    segments = split_ranges(10_000_000, 4)

    assert [(s.start, s.end) for s in segments] == [
        (0, 2_499_999),
        (2_500_000, 4_999_999),
        (5_000_000, 7_499_999),
        (7_500_000, 9_999_999),
    ]
    assert all(s.cursor == s.start for s in segments)
    assert [s.index for s in segments] == [0.0, 1.0, 2.0, 3.0]


def test_last_range_absorbs_the_remainder():
    segments = split_ranges(10, 3)
    assert [(s.start, s.end) for s in segments] == [(0, 2), (3, 5), (6, 9)]


def test_tiny_parts_never_get_empty_ranges():
    segments = split_ranges(2, 8)
    assert [(s.start, s.end) for s in segments] == [(0, 0), (1, 1)]


def test_fresh_plan_has_everything_unfinished(tmp_path):
    result = plan(tmp_path, 1000)
    assert len(result.segments) == 4
    assert result.unfinished == result.segments
    assert result.saved_bytes == 0
    assert not result.complete


def test_resume_keeps_each_segment_cursor(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    for meta, saved in zip(split_ranges(400, 4), (100, 40, 0, 100)):
        write_segment(store, meta, saved)

    result = plan(tmp_path, 400)

    assert [s.cursor for s in result.segments] == [100, 140, 200, 400]
    assert [s.index for s in result.unfinished] == [1.0, 2.0]
    assert result.saved_bytes == 240


def test_missing_segment_is_patched_between_its_neighbours(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    segments = split_ranges(400, 4)
    for meta in segments:
        if meta.index != 2.0:
            write_segment(store, meta, 0)

    result = plan(tmp_path, 400)

    patch = [s for s in result.segments if s.index not in (0.0, 1.0, 3.0)]
    assert len(patch) == 1
    assert (patch[0].start, patch[0].end, patch[0].cursor) == (200, 299, 200)
    assert 1.0 < patch[0].index < 3.0
    assert patch[0] in result.unfinished
    assert [s.index for s in result.segments] == sorted(s.index for s in result.segments)


def test_gap_index_falls_back_to_the_midpoint(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    # four float32 steps apart; one epsilon below rounds back to the neighbour
    previous = SegmentMeta(index=32.0, start=0, end=9, cursor=0)
    following = SegmentMeta(index=32.0 + 4 * 2**-18, start=20, end=29, cursor=20)

    index = _gap_index(store, previous, following)

    assert previous.index < index < following.index
    assert store.index_path(index) not in (
        store.segment_path(previous),
        store.segment_path(following),
    )


def test_gap_index_never_reuses_a_neighbour_file_name(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    previous = SegmentMeta(index=1.0, start=0, end=9, cursor=0)
    following = SegmentMeta(index=1.000001, start=20, end=29, cursor=20)

    with pytest.raises(PlannerError):
        _gap_index(store, previous, following)


def test_overshot_segment_is_deleted_and_restarted(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    first, second = split_ranges(200, 2)
    write_segment(store, first, 100)
    write_segment(store, second, 150)

    result = plan(tmp_path, 200, threads=2)

    reset = result.segments[1]
    assert reset.cursor == reset.start == 100
    assert reset in result.unfinished
    assert not store.segment_path(second).exists()
    assert result.saved_bytes == 100


def test_tail_gap_is_appended_after_the_last_segment(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    for meta in split_ranges(400, 4)[:3]:
        write_segment(store, meta, 100)

    result = plan(tmp_path, 400)

    tail = result.segments[-1]
    assert (tail.index, tail.start, tail.end, tail.cursor) == (3.0, 300, 399, 300)
    assert result.unfinished == [tail]


def test_fully_downloaded_segments_short_circuit(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    for meta in split_ranges(400, 4):
        write_segment(store, meta, 100)

    result = plan(tmp_path, 400)

    assert result.complete
    assert result.unfinished == []
    assert result.saved_bytes == 400


def test_segments_past_the_part_size_are_discarded(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    segments = split_ranges(400, 4)
    for meta in segments:
        write_segment(store, meta, 100)

    result = plan(tmp_path, 300)

    assert [(s.index, s.start, s.end) for s in result.segments] == [
        (0.0, 0, 99),
        (1.0, 100, 199),
        (2.0, 200, 299),
    ]
    assert result.complete
    assert not store.segment_path(segments[3]).exists()


def test_straddling_segment_is_discarded_and_the_tail_refetched(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    for meta in split_ranges(400, 4):
        write_segment(store, meta, 100)

    result = plan(tmp_path, 250)

    assert all(s.start <= s.cursor <= s.end + 1 for s in result.segments)
    tail = result.segments[-1]
    assert (tail.index, tail.start, tail.end, tail.cursor) == (2.0, 200, 249, 200)
    assert result.unfinished == [tail]
    assert result.saved_bytes == 200


def test_overlapping_segment_is_discarded(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    first = split_ranges(200, 2)[0]
    overlap = SegmentMeta(index=1.5, start=150, end=199, cursor=150)
    write_segment(store, first, 100)
    write_segment(store, SegmentMeta(index=1.0, start=100, end=159, cursor=100), 60)
    write_segment(store, overlap, 50)

    result = plan(tmp_path, 200, threads=2)

    assert not store.segment_path(overlap).exists()
    assert [(s.start, s.end) for s in result.segments] == [(0, 99), (100, 159), (160, 199)]
    assert [s.start for s in result.unfinished] == [160]


def test_nothing_usable_on_disk_starts_over(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    for meta in split_ranges(400, 2):
        write_segment(store, meta, 10)

    result = plan(tmp_path, 100, threads=2)

    assert [(s.start, s.end) for s in result.segments] == [(0, 49), (50, 99)]
    assert result.unfinished == result.segments
    assert list(tmp_path.glob("movie.mp4.part*")) == []
