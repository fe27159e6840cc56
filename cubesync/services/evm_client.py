"""
JSON-RPC over HTTP transport.

One request to one endpoint per call. Retries and endpoint rotation live in
the remote reader; this layer only turns every failure into a classified
remote error.
"""

import asyncio
import itertools
from typing import Any, List, Optional

import aiohttp
import structlog

from cubesync.core.errors import classify_http_status, classify_rpc_error
from cubesync.core.exceptions import PermanentRemoteError, TransientRemoteError


logger = structlog.get_logger(__name__)


class EvmRpcClient:
    """Thin aiohttp JSON-RPC client shared by all endpoints."""

    def __init__(self, timeout: float = 25.0, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = timeout
        self.logger = logger.bind(service="evm_rpc_client")
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Content-Type": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def request(self, url: str, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Send one JSON-RPC request.

        Raises:
            TransientRemoteError: network failure, timeout, 429/5xx, retryable RPC codes
            PermanentRemoteError: reverts, invalid params, other 4xx
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        session = await self._get_session()

        try:
            async with session.post(url, json=payload) as response:
                if response.status != 200:
                    body = await response.text()
                    raise classify_http_status(response.status, body)
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise TransientRemoteError(
                        f"Invalid JSON from {url}: {e}",
                        {"url": url, "method": method}
                    )
        except asyncio.TimeoutError:
            raise TransientRemoteError(
                f"Request timed out after {self.timeout}s",
                {"url": url, "method": method}
            )
        except aiohttp.ClientError as e:
            raise TransientRemoteError(
                f"Network error: {e}",
                {"url": url, "method": method}
            )

        if not isinstance(body, dict):
            raise PermanentRemoteError(f"Unexpected JSON-RPC response: {body!r}", {"url": url})

        error = body.get("error")
        if error:
            raise classify_rpc_error(
                error.get("code"),
                error.get("message", ""),
                error.get("data"),
            )
        return body.get("result")

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
            self.logger.debug("HTTP session closed")
        self._session = None
