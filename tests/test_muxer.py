"""Tests for the ffmpeg muxer, with the subprocess faked out."""

import asyncio
from pathlib import Path

import pytest

from segdl.exceptions import MergeError
from segdl.media.muxer import Muxer


class FakeProcess:
    def __init__(self, returncode, stderr=b""):
        self.returncode = returncode
        self._stderr = stderr

    async def communicate(self):
        return b"", self._stderr


class CallLog(list):
    """Recorded commands, plus the outcome the next run should have."""


@pytest.fixture
def ffmpeg_calls(monkeypatch):
    """Records ffmpeg invocations; a successful run writes the output file."""
    calls = CallLog()
    outcome = {"returncode": 0, "stderr": b""}

    async def fake_exec(*cmd, **kwargs):
        calls.append(list(cmd))
        if outcome["returncode"] == 0:
            Path(cmd[-1]).write_bytes(b"muxed")
        return FakeProcess(outcome["returncode"], outcome["stderr"])

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    calls.outcome = outcome
    return calls


@pytest.fixture
def parts(tmp_path):
    paths = [tmp_path / "clip[0].flv", tmp_path / "clip[1].flv"]
    for path in paths:
        path.write_bytes(b"part")
    return paths


def test_same_extension_merge_stream_copies(tmp_path, parts, ffmpeg_calls):
    output = tmp_path / "clip.mp4"

    asyncio.run(Muxer("ffmpeg").merge(parts, output, "flv", need_mux=False))

    (cmd,) = ffmpeg_calls
    assert cmd[:2] == ["ffmpeg", "-y"]
    assert cmd[2:6] == ["-i", str(parts[0]), "-i", str(parts[1])]
    assert cmd[-1] == str(tmp_path / "clip.download.mp4")
    assert output.read_bytes() == b"muxed"
    assert not any(p.exists() for p in parts)


def test_mp4_parts_use_the_concat_list(tmp_path, ffmpeg_calls):
    parts = [tmp_path / "clip[0].mp4", tmp_path / "clip[1].mp4"]
    for path in parts:
        path.write_bytes(b"part")
    output = tmp_path / "clip.mp4"

    asyncio.run(Muxer("ffmpeg").merge(parts, output, "mp4", need_mux=False))

    (cmd,) = ffmpeg_calls
    assert "concat" in cmd
    assert cmd[cmd.index("-i") + 1] == str(tmp_path / "clip.txt")
    assert output.exists()
    assert not (tmp_path / "clip.txt").exists()


def test_ffmpeg_failure_keeps_inputs(tmp_path, parts, ffmpeg_calls):
    ffmpeg_calls.outcome.update(returncode=1, stderr=b"Invalid data found")
    output = tmp_path / "clip.mp4"

    with pytest.raises(MergeError, match="Invalid data found"):
        asyncio.run(Muxer("ffmpeg").merge(parts, output, "flv", need_mux=True))

    assert all(p.exists() for p in parts)
    assert not output.exists()


def test_missing_ffmpeg_is_a_merge_error(tmp_path, parts, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("segdl.media.muxer.shutil.which", lambda name: None)

    with pytest.raises(MergeError, match="ffmpeg was not found"):
        asyncio.run(Muxer().merge(parts, tmp_path / "clip.mp4", "flv", need_mux=False))
