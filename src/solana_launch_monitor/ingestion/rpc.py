"""Async JSON-RPC client for the Solana endpoint."""

from __future__ import annotations

import itertools
from typing import Any, Dict, List, Optional, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import RPCConfig
from ..monitoring.logger import get_logger

DEFAULT_HEADERS = {"Content-Type": "application/json", "User-Agent": "solana-launch-monitor/1.0"}


class RpcError(RuntimeError):
    """The endpoint answered with an error object or an unusable envelope."""

    def __init__(self, method: str, message: str, code: Optional[int] = None) -> None:
        super().__init__(f"{method}: {message}")
        self.method = method
        self.code = code


class SolanaRpcClient:
    """Thin wrapper over ``getSignaturesForAddress`` and ``getTransaction``.

    Transport failures are retried with exponential backoff up to
    ``rpc.max_attempts``; RPC-level errors are raised immediately.
    """

    def __init__(self, config: RPCConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self._config = config
        self._url = str(config.url)
        self._client = client or httpx.AsyncClient(timeout=config.request_timeout, headers=DEFAULT_HEADERS)
        self._ids = itertools.count(1)
        self._logger = get_logger(__name__)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, payload: Any) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._config.max_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                response = await self._client.post(self._url, json=payload)
                response.raise_for_status()
                return response.json()
        raise AssertionError("unreachable")  # pragma: no cover

    @staticmethod
    def _unwrap(method: str, envelope: Any) -> Any:
        if not isinstance(envelope, dict):
            raise RpcError(method, "response is not a JSON-RPC object")
        error = envelope.get("error")
        if error:
            if isinstance(error, dict):
                raise RpcError(method, str(error.get("message", error)), error.get("code"))
            raise RpcError(method, str(error))
        if "result" not in envelope:
            raise RpcError(method, "response has no result")
        return envelope["result"]

    async def call(self, method: str, params: Sequence[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": list(params)}
        envelope = await self._post(payload)
        return self._unwrap(method, envelope)

    def _transaction_options(self) -> Dict[str, Any]:
        return {
            "encoding": "jsonParsed",
            "maxSupportedTransactionVersion": 0,
            "commitment": self._config.commitment,
        }

    async def get_signatures_for_address(self, address: str, limit: Optional[int] = None) -> Optional[List[Dict[str, Any]]]:
        options = {"limit": limit or self._config.signature_limit}
        return await self.call("getSignaturesForAddress", [address, options])

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        return await self.call("getTransaction", [signature, self._transaction_options()])

    async def get_transactions(self, signatures: Sequence[str]) -> List[Optional[Dict[str, Any]]]:
        """Fetch several transactions in one JSON-RPC batch, preserving order."""

        if not signatures:
            return []
        requests = [
            {
                "jsonrpc": "2.0",
                "id": next(self._ids),
                "method": "getTransaction",
                "params": [signature, self._transaction_options()],
            }
            for signature in signatures
        ]
        envelopes = await self._post(requests)
        if not isinstance(envelopes, list):
            raise RpcError("getTransaction", "batch response is not a list")
        by_id = {envelope.get("id"): envelope for envelope in envelopes if isinstance(envelope, dict)}
        results: List[Optional[Dict[str, Any]]] = []
        for request in requests:
            envelope = by_id.get(request["id"])
            if envelope is None:
                raise RpcError("getTransaction", f"batch response missing id {request['id']}")
            results.append(self._unwrap("getTransaction", envelope))
        self._logger.debug("Fetched %d transactions in one batch", len(results))
        return results


__all__ = ["RpcError", "SolanaRpcClient"]
