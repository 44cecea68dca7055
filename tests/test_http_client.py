"""Tests for the aiohttp-based request collaborator."""

import asyncio
import io

import pytest
from aiohttp import test_utils, web

from segdl.exceptions import HttpStatusError, RequestError, TransferError
from segdl.media.fetcher import SegmentFetcher
from segdl.media.planner import split_ranges
from segdl.media.segment_store import HEADER_SIZE, SegmentStore
from segdl.media.single_stream import SingleStreamDownloader
from segdl.models.media import Part
from segdl.net.client import HttpClient, _cookie_header

BODY = bytes(range(256)) * 16


class MemorySink:
    """Async stand-in for an aiofiles handle."""

    def __init__(self):
        self.buffer = io.BytesIO()

    async def write(self, data):
        self.buffer.write(data)

    async def flush(self):
        pass


def make_app(calls):
    async def flaky(request):
        calls.append(dict(request.headers))
        if len(calls) == 1:
            return web.Response(status=500)
        return web.Response(body=b"ok")

    async def ranged(request):
        calls.append(dict(request.headers))
        start, end = request.http_range.start, request.http_range.stop
        return web.Response(
            status=206,
            body=BODY[start:end],
            headers={"Content-Range": f"bytes {start}-{end - 1}/{len(BODY)}"},
        )

    async def overlong(request):
        calls.append(dict(request.headers))
        start = request.http_range.start
        return web.Response(
            status=206,
            body=BODY[start:],
            headers={"Content-Range": f"bytes {start}-{len(BODY) - 1}/{len(BODY)}"},
        )

    async def no_range(request):
        calls.append(dict(request.headers))
        return web.Response(body=BODY)

    async def probe(request):
        return web.Response(
            body=BODY, headers={"Content-Type": "video/mp4; charset=binary"}
        )

    async def chunked(request):
        response = web.StreamResponse()
        response.enable_chunked_encoding()
        await response.prepare(request)
        await response.write(BODY)
        await response.write_eof()
        return response

    async def missing(request):
        calls.append(dict(request.headers))
        return web.Response(status=404)

    app = web.Application()
    app.router.add_get("/flaky", flaky)
    app.router.add_get("/ranged", ranged)
    app.router.add_get("/overlong", overlong)
    app.router.add_get("/no-range", no_range)
    app.router.add_get("/probe", probe)
    app.router.add_get("/chunked", chunked)
    app.router.add_get("/missing", missing)
    return app


def run_with_server(scenario, calls=None, **client_options):
    """Runs ``scenario(client, base_url)`` against a local test server."""
    calls = [] if calls is None else calls

    async def main():
        server = test_utils.TestServer(make_app(calls))
        await server.start_server()
        client = HttpClient(retry_delay=0, **client_options)
        try:
            return await scenario(client, f"http://{server.host}:{server.port}")
        finally:
            await client.close()
            await server.close()

    return asyncio.run(main())


def test_server_error_is_retried():
    calls = []

    async def scenario(client, base):
        return await client.get_bytes(f"{base}/flaky")

    assert run_with_server(scenario, calls) == b"ok"
    assert len(calls) == 2


def test_error_status_after_last_attempt():
    calls = []

    async def scenario(client, base):
        await client.get_bytes(f"{base}/missing")

    with pytest.raises(HttpStatusError) as exc_info:
        run_with_server(scenario, calls, retry_times=2)
    assert exc_info.value.status == 404
    assert len(calls) == 2


def test_referer_and_cookie_are_injected():
    calls = []

    async def scenario(client, base):
        await client.get_bytes(f"{base}/flaky")

    run_with_server(scenario, calls, cookie="sid=abc; lang=en", refer="https://site/")
    assert calls[0]["Referer"] == "https://site/"
    assert calls[0]["Cookie"] == "sid=abc; lang=en"


def test_range_request_is_streamed_into_sink():
    calls = []
    sink = MemorySink()
    seen = []

    async def on_bytes(count):
        seen.append(count)

    async def scenario(client, base):
        return await client.stream_into(
            f"{base}/ranged", sink, {"Range": "bytes=100-1099"}, on_bytes=on_bytes
        )

    assert run_with_server(scenario, calls) == 1000
    assert sink.buffer.getvalue() == BODY[100:1100]
    assert sum(seen) == 1000


def test_ignored_range_header_is_a_transfer_error():
    calls = []

    async def scenario(client, base):
        await client.stream_into(f"{base}/no-range", MemorySink(), {"Range": "bytes=10-20"})

    with pytest.raises(TransferError) as exc_info:
        run_with_server(scenario, calls)
    assert exc_info.value.written == 0
    # one attempt only; retries belong to the caller
    assert len(calls) == 1


def test_body_longer_than_limit_is_cut_off():
    calls = []
    sink = MemorySink()

    async def scenario(client, base):
        await client.stream_into(
            f"{base}/overlong", sink, {"Range": "bytes=0-99"}, limit=100
        )

    with pytest.raises(TransferError) as exc_info:
        run_with_server(scenario, calls)
    assert exc_info.value.written == 100
    assert sink.buffer.getvalue() == BODY[:100]


def test_segment_never_grows_past_its_range(tmp_path):
    file_path = tmp_path / "movie.mp4"
    (meta,) = split_ranges(1024, 1)

    async def scenario(client, base):
        fetcher = SegmentFetcher(client, retry_delay=0, chunk_size=100)
        await fetcher.fetch_all(f"{base}/overlong", file_path, [meta])

    calls = []
    run_with_server(scenario, calls)

    assert meta.is_complete
    data = SegmentStore(file_path).segment_path(meta).read_bytes()[HEADER_SIZE:]
    assert data == BODY[:1024]
    assert len(calls) == 11


def test_chunked_single_stream_keeps_only_requested_bytes(tmp_path):
    file_path = tmp_path / "clip.mp4"

    async def scenario(client, base):
        downloader = SingleStreamDownloader(client, retry_delay=0, chunk_size=1000)
        await downloader.save(Part(url=f"{base}/overlong", size=len(BODY)), file_path)

    run_with_server(scenario)

    assert file_path.read_bytes() == BODY


def test_failed_stream_is_reported_as_transfer_error():
    calls = []

    async def scenario(client, base):
        await client.stream_into(f"{base}/missing", MemorySink())

    with pytest.raises(TransferError):
        run_with_server(scenario, calls, retry_times=3)
    assert len(calls) == 1


def test_size_and_content_type_probes():
    async def scenario(client, base):
        return await client.size(f"{base}/probe"), await client.content_type(f"{base}/probe")

    assert run_with_server(scenario) == (len(BODY), "video/mp4")


def test_missing_content_length_is_a_request_error():
    async def scenario(client, base):
        await client.size(f"{base}/chunked")

    with pytest.raises(RequestError):
        run_with_server(scenario, retry_times=1)


def test_cookie_header_normalisation():
    assert _cookie_header("a=1; b=2") == "a=1; b=2"
    assert _cookie_header("not a cookie") == "not a cookie"
