"""Etherscan V2 log client.

Used by the stats report to enumerate ReferrerSet logs over the full
contract history, which public RPC endpoints refuse to serve in one query.
"""

from __future__ import annotations

from typing import Any

import bittensor as bt
import httpx

from ponyref.worker.errors import ExplorerError, NetworkError
from ponyref.worker.retry import RetryExecutor

ETHERSCAN_V2_URL = "https://api.etherscan.io/v2/api"
BASE_CHAIN_ID = 8453

_NO_RECORDS = "no records found"


class ExplorerClient:
    """Minimal getLogs client for the Etherscan V2 multichain API."""

    def __init__(
        self,
        api_key: str,
        chain_id: int = BASE_CHAIN_ID,
        base_url: str = ETHERSCAN_V2_URL,
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
        retry: RetryExecutor | None = None,
    ):
        self.api_key = api_key
        self.chain_id = chain_id
        self.base_url = base_url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.retry = retry or RetryExecutor(max_retries=max_retries)

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, params: dict[str, Any]) -> dict[str, Any]:
        """GET with retry on NetworkError."""
        return await self.retry.execute(lambda: self._get_once(params))

    async def _get_once(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self._client.get(self.base_url, params=params)
        except httpx.TransportError as e:
            raise NetworkError(f"explorer request failed: {type(e).__name__}: {e}") from e

        # Rate limits and server errors are transient; other 4xx are not.
        if resp.status_code == 429 or resp.status_code >= 500:
            raise NetworkError(f"explorer returned HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise ExplorerError(f"explorer returned HTTP {resp.status_code}: {resp.text[:200]}")

        try:
            return resp.json()
        except ValueError as e:
            raise ExplorerError(f"explorer returned invalid JSON: {e}") from e

    async def get_logs(
        self,
        address: str,
        topic0: str,
        from_block: int,
        to_block: int | str = "latest",
    ) -> list[dict[str, Any]]:
        """Raw log records for ``address`` with ``topic0`` in the block range."""
        data = await self._get({
            "chainid": self.chain_id,
            "module": "logs",
            "action": "getLogs",
            "fromBlock": from_block,
            "toBlock": to_block,
            "address": address,
            "topic0": topic0,
            "apikey": self.api_key,
        })

        if str(data.get("status")) != "1":
            message = str(data.get("message") or "")
            if _NO_RECORDS in message.lower():
                return []
            bt.logging.error({"explorer_client": {"response": data}})
            raise ExplorerError(f"Etherscan API error: {message or data.get('result')}")

        return list(data.get("result") or [])


__all__ = ["BASE_CHAIN_ID", "ETHERSCAN_V2_URL", "ExplorerClient"]
