"""Shared fakes for the download engine tests."""

import re
from typing import Optional

import pytest

from segdl.exceptions import RequestError, TransferError

RANGE_RE = re.compile(r"bytes=(\d+)-(\d*)")


class FakeClient:
    """
    Stands in for :class:`segdl.net.client.HttpClient`, serving ``payload``
    and honouring Range headers.

    ``failing_starts`` makes every request whose range begins at one of those
    offsets fail before writing anything. ``interrupt_at`` maps a range start to
    a byte count: the first request from that offset writes that many bytes and
    then fails.
    """

    def __init__(
        self,
        payload: bytes = b"",
        failing_starts: Optional[set[int]] = None,
        interrupt_at: Optional[dict[int, int]] = None,
        bodies: Optional[dict[str, bytes]] = None,
        response_headers: Optional[dict[str, str]] = None,
    ):
        self.payload = payload
        self.failing_starts = failing_starts or set()
        self.interrupt_at = dict(interrupt_at or {})
        self.bodies = bodies or {}
        self.response_headers = response_headers or {}
        self.requests: list[dict[str, str]] = []

    async def stream_into(
        self, url, sink, headers=None, on_bytes=None, cancel_token=None, limit=None
    ):
        headers = dict(headers or {})
        self.requests.append(headers)
        start, end = 0, len(self.payload) - 1
        if "Range" in headers:
            match = RANGE_RE.fullmatch(headers["Range"])
            start = int(match.group(1))
            if match.group(2):
                end = int(match.group(2))

        if start in self.failing_starts:
            raise TransferError(url, 0, "connection reset")

        data = self.payload[start : end + 1]
        cut = self.interrupt_at.pop(start, None)
        if cut is not None:
            data = data[:cut]

        if cancel_token:
            cancel_token.raise_if_cancelled(f"transfer of {url}")
        await sink.write(data)
        await sink.flush()
        if on_bytes:
            await on_bytes(len(data))
        if cut is not None:
            raise TransferError(url, len(data), "connection reset")
        return len(data)

    async def get_bytes(self, url, refer="", headers=None):
        self.requests.append({"url": url})
        if url not in self.bodies:
            raise RequestError(url, "HTTP 404")
        return self.bodies[url]

    async def headers(self, url, refer=""):
        self.requests.append({"url": url})
        return self.response_headers


@pytest.fixture
def payload() -> bytes:
    return bytes(range(256)) * 40
