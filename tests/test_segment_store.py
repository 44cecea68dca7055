"""Tests for the on-disk segment file format."""

import asyncio

import pytest

from segdl.exceptions import PlannerError
from segdl.media.segment_store import (
    HEADER_SIZE,
    SegmentStore,
    decode_header,
    encode_header,
)
from segdl.models.segment import SegmentMeta


def write_segment(store: SegmentStore, meta: SegmentMeta, payload: bytes = b"") -> None:
    with open(store.segment_path(meta), "wb") as f:
        f.write(encode_header(meta))
        f.write(payload)


def test_header_is_28_bytes_little_endian():
    meta = SegmentMeta(index=1.5, start=10, end=19, cursor=10)
    header = encode_header(meta)
    assert HEADER_SIZE == 28
    assert len(header) == 28
    assert header[4:12] == (10).to_bytes(8, "little")
    assert decode_header(header) == meta


def test_segment_path_uses_six_decimal_index(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    meta = SegmentMeta(index=2, start=0, end=9, cursor=0)
    assert store.segment_path(meta).name == "movie.mp4.part2.000000"


def test_read_meta_derives_cursor_from_file_size(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    meta = SegmentMeta(index=0, start=100, end=199, cursor=100)
    write_segment(store, meta, b"x" * 30)

    recovered = store.read_meta(store.segment_path(meta))
    assert recovered.start == 100
    assert recovered.end == 199
    assert recovered.cursor == 130


def test_scan_sorts_by_index_and_ignores_other_files(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    for index in (3.0, 0.0, 1.0):
        start = int(index) * 10
        write_segment(store, SegmentMeta(index=index, start=start, end=start + 9, cursor=start))
    (tmp_path / "movie.mp4.download").write_bytes(b"")
    (tmp_path / "other.mp4.part0.000000").write_bytes(b"\0" * HEADER_SIZE)

    assert [m.index for m in store.scan()] == [0.0, 1.0, 3.0]


def test_broken_header_is_a_planner_error(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    (tmp_path / "movie.mp4.part0.000000").write_bytes(b"short")

    with pytest.raises(PlannerError):
        store.scan()


def test_open_for_append_writes_header_only_for_fresh_segments(tmp_path):
    store = SegmentStore(tmp_path / "movie.mp4")
    meta = SegmentMeta(index=0, start=0, end=99, cursor=0)

    async def scenario():
        f = await store.open_for_append(meta)
        await f.write(b"abc")
        await f.close()
        meta.cursor = 3
        f = await store.open_for_append(meta)
        await f.write(b"def")
        await f.close()

    asyncio.run(scenario())
    data = store.segment_path(meta).read_bytes()
    assert len(data) == HEADER_SIZE + 6
    assert data[HEADER_SIZE:] == b"abcdef"
    assert store.read_meta(store.segment_path(meta)).cursor == 6
