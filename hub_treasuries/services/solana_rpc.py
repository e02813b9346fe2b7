"""Solana JSON-RPC client used to broadcast webhook-completed transactions."""

import base64
import itertools
import time
from typing import Any, Dict, List, Optional

import httpx
import structlog

from hub_treasuries.core.config import Settings, get_settings
from hub_treasuries.core.metrics import get_metrics

logger = structlog.get_logger()


class SolanaRpcError(Exception):
    """RPC transport failure or JSON-RPC error response."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class SolanaRpcClient:
    def __init__(
        self,
        endpoint: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._ids = itertools.count(1)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "SolanaRpcClient":
        settings = settings or get_settings()
        return cls(
            settings.solana_rpc_endpoint,
            timeout=settings.solana_rpc_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, params: List[Any]) -> Any:
        """Single JSON-RPC request; returns ``result``.

        Raises:
            SolanaRpcError: HTTP error, invalid JSON or an ``error`` member
        """
        metrics = get_metrics()
        start_time = time.monotonic()
        body: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        try:
            response = await self._client.post(self.endpoint, json=body)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            latency_ms = (time.monotonic() - start_time) * 1000
            await metrics.record_api_call(
                endpoint=f"solana:{method}",
                latency_ms=latency_ms,
                success=False,
                error_message=str(e),
            )
            logger.error("Solana RPC request failed", method=method, error=str(e))
            raise SolanaRpcError(f"{method} failed: {e}") from e

        latency_ms = (time.monotonic() - start_time) * 1000
        error = data.get("error") if isinstance(data, dict) else None
        await metrics.record_api_call(
            endpoint=f"solana:{method}",
            latency_ms=latency_ms,
            success=error is None,
            status_code=response.status_code,
            error_message=str(error) if error else None,
        )

        if not isinstance(data, dict):
            raise SolanaRpcError(f"{method} returned a non-object response")
        if error is not None:
            logger.warning("Solana RPC error", method=method, error=error)
            raise SolanaRpcError(
                f"{method}: {error.get('message', error)}", code=error.get("code")
            )
        return data.get("result")

    async def send_transaction(self, wire_transaction: bytes) -> str:
        """Broadcast a signed transaction; returns its base58 signature."""
        encoded = base64.b64encode(wire_transaction).decode("ascii")
        signature = await self.call(
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": "confirmed"}],
        )
        if not isinstance(signature, str):
            raise SolanaRpcError("sendTransaction returned no signature")
        logger.info("Solana transaction sent", signature=signature)
        return signature


# Lazy singleton client instance
_solana_rpc: Optional[SolanaRpcClient] = None


def get_solana_rpc() -> SolanaRpcClient:
    global _solana_rpc
    if _solana_rpc is None:
        _solana_rpc = SolanaRpcClient.from_settings()
    return _solana_rpc


async def close_solana_rpc() -> None:
    global _solana_rpc
    if _solana_rpc is not None:
        await _solana_rpc.aclose()
        _solana_rpc = None
