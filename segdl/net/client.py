"""
HTTP request collaborator: header injection, fixed-delay retry, transparent
decompression and size / content-type probing on top of one aiohttp session.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from http.cookies import CookieError, SimpleCookie
from typing import AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional

import aiohttp

from segdl.exceptions import HttpStatusError, RequestError, TransferError
from segdl.models.config import DEFAULT_USER_AGENT, DownloadConfig
from segdl.utils.cancellation import CancellationToken

log = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Charset": "UTF-8,*;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Accept-Language": "en-US,en;q=0.8",
}

READ_CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[int], Awaitable[None]]


class HttpClient:
    """
    Async HTTP client shared read-only by every task of a download session.

    One instance is built from the :class:`DownloadConfig` at startup and passed
    to the components that need it; it owns a single ``aiohttp.ClientSession``
    that is created lazily and closed with :meth:`close`.
    """

    def __init__(
        self,
        retry_times: int = 3,
        retry_delay: float = 1.0,
        cookie: str = "",
        user_agent: str = DEFAULT_USER_AGENT,
        refer: str = "",
        timeout: int = 900,
        max_connections: int = 16,
    ):
        self.retry_times = max(retry_times, 1)
        self.retry_delay = retry_delay
        self.cookie = cookie
        self.user_agent = user_agent
        self.refer = refer
        self.timeout = timeout
        self.max_connections = max_connections
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: DownloadConfig) -> "HttpClient":
        return cls(
            retry_times=config.retry_times,
            retry_delay=config.retry_delay,
            cookie=config.cookie,
            user_agent=config.user_agent,
            refer=config.refer,
            timeout=config.request_timeout,
            max_connections=config.max_workers * config.thread_number,
        )

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_connections,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={**DEFAULT_HEADERS, "User-Agent": self.user_agent},
                timeout=aiohttp.ClientTimeout(
                    total=self.timeout, sock_connect=15, sock_read=90
                ),
            )
            log.debug(f"Created HTTP session with limit={self.max_connections}")
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _build_headers(self, url: str, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        final = dict(headers or {})
        if "Referer" not in final:
            final["Referer"] = url
        if self.refer:
            final["Referer"] = self.refer
        if self.cookie:
            final["Cookie"] = _cookie_header(self.cookie)
        return final

    @asynccontextmanager
    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        attempts: Optional[int] = None,
        **kwargs,
    ) -> AsyncIterator[aiohttp.ClientResponse]:
        """
        Sends a request, retrying up to ``retry_times`` attempts with a fixed delay.

        A response with status >= 400 counts as a failed attempt. ``attempts``
        overrides the retry budget for callers that retry on their own.

        Raises:
            HttpStatusError: If the last attempt returned an HTTP error status.
            RequestError: If the last attempt failed at the transport level.
        """
        session = await self._initialize_session()
        final_headers = self._build_headers(url, headers)

        attempts = attempts or self.retry_times
        response = None
        for attempt in range(1, attempts + 1):
            error: RequestError
            try:
                response = await session.request(
                    method, url, headers=final_headers, **kwargs
                )
                if response.status < 400:
                    break
                error = HttpStatusError(url, response.status)
                response.release()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                error = RequestError(url, str(e) or type(e).__name__)

            response = None
            if attempt >= attempts:
                raise error
            log.debug(
                f"Request attempt {attempt}/{attempts} for {url} failed: "
                f"{error}. Retrying in {self.retry_delay}s..."
            )
            await asyncio.sleep(self.retry_delay)

        try:
            yield response
        finally:
            response.release()

    async def get_bytes(
        self, url: str, refer: str = "", headers: Optional[Dict[str, str]] = None
    ) -> bytes:
        """Returns the (decompressed) body of a GET request."""
        headers = dict(headers or {})
        if refer:
            headers["Referer"] = refer
        async with self.request("GET", url, headers) as response:
            try:
                return await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise RequestError(url, f"reading body failed: {e}") from e

    async def headers(self, url: str, refer: str = "") -> Mapping[str, str]:
        """Returns the response headers of ``url`` without reading its body."""
        async with self.request("GET", url, {"Referer": refer or url}) as response:
            return response.headers

    async def size(self, url: str, refer: str = "") -> int:
        """
        Returns the Content-Length of ``url``.

        Raises:
            RequestError: If the header is missing or not a number.
        """
        headers = await self.headers(url, refer)
        value = headers.get("Content-Length")
        if not value:
            raise RequestError(url, "Content-Length does not exist")
        try:
            return int(value)
        except ValueError as e:
            raise RequestError(url, f"invalid Content-Length {value!r}") from e

    async def content_type(self, url: str, refer: str = "") -> str:
        """Returns the media type of ``url`` without parameters, e.g. 'image/jpeg'."""
        headers = await self.headers(url, refer)
        value = headers.get("Content-Type")
        if not value:
            raise RequestError(url, "Content-Type does not exist")
        return value.split(";")[0].strip()

    async def stream_into(
        self,
        url: str,
        sink,
        headers: Optional[Dict[str, str]] = None,
        on_bytes: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        limit: Optional[int] = None,
    ) -> int:
        """
        Copies the body of a GET request into ``sink`` (an aiofiles handle).

        Every network read is written and flushed before the next one, so a
        crash loses at most the read in flight. With ``limit`` set, no more than
        that many bytes are written; a longer body is cut off there.

        Returns:
            Number of bytes written.

        Raises:
            TransferError: If the request or the copy failed, or the body ran
                past ``limit``; ``written`` tells how many bytes reached
                ``sink`` before the failure.
            DownloadCancelledError: If ``cancel_token`` was cancelled mid-copy.
        """
        written = 0
        try:
            async with self.request("GET", url, headers, attempts=1) as response:
                if "Range" in (headers or {}) and response.status != 206:
                    raise TransferError(
                        url, 0, f"server ignored the Range header (HTTP {response.status})"
                    )
                async for chunk in response.content.iter_chunked(READ_CHUNK_SIZE):
                    if cancel_token:
                        cancel_token.raise_if_cancelled(f"transfer of {url}")
                    overflow = limit is not None and written + len(chunk) > limit
                    if overflow:
                        chunk = chunk[: limit - written]
                    await sink.write(chunk)
                    await sink.flush()
                    written += len(chunk)
                    if on_bytes:
                        await on_bytes(len(chunk))
                    if overflow:
                        raise TransferError(
                            url, written, f"response body is longer than {limit} bytes"
                        )
        except RequestError as e:
            raise TransferError(url, written, str(e)) from e
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            raise TransferError(url, written, str(e) or type(e).__name__) from e
        return written


def _cookie_header(cookie: str) -> str:
    """Normalises a cookie string (``a=b; c=d`` or Set-Cookie style) to a header value."""
    parsed = SimpleCookie()
    try:
        parsed.load(cookie)
    except CookieError:
        return cookie
    if not parsed:
        return cookie
    return "; ".join(f"{key}={morsel.value}" for key, morsel in parsed.items())
