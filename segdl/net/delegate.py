"""
Hands streams over to a running aria2 daemon through its JSON-RPC interface
instead of downloading them in-process.
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from segdl.exceptions import DelegateError
from segdl.models.config import DownloadConfig
from segdl.models.media import Stream

log = logging.getLogger(__name__)

RPC_TIMEOUT_SECONDS = 30


def build_payload(
    rpc_id: str, token: str, url: str, out: str, refer: str
) -> dict[str, Any]:
    """Builds one ``aria2.addUri`` call for a single URL."""
    return {
        "jsonrpc": "2.0",
        "id": rpc_id,
        "method": "aria2.addUri",
        "params": [
            f"token:{token}",
            [url],
            {"out": out, "header": [f"Referer: {refer}"]},
        ],
    }


class Aria2Delegate:
    """Queues every part of a stream on an aria2 instance, one RPC per part."""

    def __init__(
        self,
        addr: str,
        token: str = "",
        method: str = "http",
        rpc_id: str = "segdl",
        refer: str = "",
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.addr = addr
        self.token = token
        self.method = method
        self.rpc_id = rpc_id
        self.refer = refer
        self._session = session

    @classmethod
    def from_config(cls, config: DownloadConfig) -> "Aria2Delegate":
        return cls(
            addr=config.aria2_addr,
            token=config.aria2_token,
            method=config.aria2_method,
            rpc_id=config.aria2_rpc_id,
            refer=config.refer,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.method}://{self.addr}/jsonrpc"

    async def add_stream(self, title: str, stream: Stream) -> int:
        """
        Submits every part URL of ``stream``; returns how many were queued.

        Files are named ``<title>[<i>].<ext of the first part>`` on the daemon side.

        Raises:
            DelegateError: If the daemon cannot be reached.
        """
        if not stream.parts:
            return 0
        ext = stream.parts[0].ext
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=RPC_TIMEOUT_SECONDS)
        )
        try:
            for i, part in enumerate(stream.parts):
                payload = build_payload(
                    self.rpc_id, self.token, part.url, f"{title}[{i}].{ext}", self.refer
                )
                await self._post(session, payload)
                log.debug(f"Queued part {i} of '{title}' on aria2 at {self.addr}")
        finally:
            if owns_session:
                await session.close()
        return len(stream.parts)

    async def ping(self) -> str:
        """Returns the daemon version, for diagnostics."""
        payload = {
            "jsonrpc": "2.0",
            "id": self.rpc_id,
            "method": "aria2.getVersion",
            "params": [f"token:{self.token}"],
        }
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=RPC_TIMEOUT_SECONDS)
        ) as session:
            try:
                async with session.post(self.endpoint, json=payload) as response:
                    data = await response.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                raise DelegateError(f"aria2 at {self.endpoint} is not reachable: {e}") from e
        if "error" in data:
            raise DelegateError(f"aria2 rejected the request: {data['error']}")
        return data.get("result", {}).get("version", "unknown")

    async def _post(self, session: aiohttp.ClientSession, payload: dict[str, Any]) -> None:
        try:
            async with session.post(self.endpoint, json=payload) as response:
                # The daemon's answer is not inspected
                await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DelegateError(f"failed to send aria2 request to {self.endpoint}: {e}") from e
