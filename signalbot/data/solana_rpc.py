"""Read-only Solana JSON-RPC client."""

import time
from typing import Any

import httpx
import structlog

from ..core.errors import SolanaRpcError
from ..core.retry import RetryPolicy
from ..core.types import AuthorityRisk

logger = structlog.get_logger(__name__)


class SolanaRpcClient:
    """JSON-RPC client for signatures, transactions and mint accounts."""

    def __init__(
        self,
        rpc_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize SolanaRpcClient.

        Args:
            rpc_url: Solana RPC endpoint URL
            client: Optional httpx client (will create one if not provided)
            timeout: Request timeout in seconds
            retry_policy: Retry policy for transport errors
        """
        self.rpc_url = rpc_url
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy.http()
        self._request_id = 0
        logger.info("SolanaRpcClient initialized", rpc_url=rpc_url, timeout=timeout)

    def _get_request_id(self) -> int:
        """Get next request ID."""
        self._request_id += 1
        return self._request_id

    async def _make_rpc_request(self, method: str, params: list[Any]) -> Any:
        """Make a JSON-RPC request with retries.

        Raises:
            SolanaRpcError: For RPC-specific errors
            httpx.HTTPError: For HTTP errors
        """
        async for attempt in self.retry_policy.retrying():
            with attempt:
                return await self._post(method, params)

    async def _post(self, method: str, params: list[Any]) -> Any:
        request_id = self._get_request_id()
        payload = {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": method,
            "params": params,
        }

        start_time = time.time()
        try:
            response = await self.client.post(
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "RPC request failed",
                method=method,
                request_id=request_id,
                duration=time.time() - start_time,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.debug(
            "RPC request completed",
            method=method,
            request_id=request_id,
            duration=time.time() - start_time,
        )

        data = response.json()
        if "error" in data:
            error = data["error"]
            raise SolanaRpcError(
                code=error.get("code", -1),
                message=error.get("message", "Unknown RPC error"),
                data=error.get("data"),
            )
        return data.get("result")

    async def get_signatures(self, address: str, limit: int = 100) -> list[dict[str, Any]]:
        """Recent signatures touching ``address``, newest first."""
        result = await self._make_rpc_request(
            "getSignaturesForAddress", [address, {"limit": min(limit, 1000)}]
        )
        return result if isinstance(result, list) else []

    async def get_transaction(self, signature: str) -> dict[str, Any] | None:
        """Full parsed transaction, or None if the node doesn't have it."""
        result = await self._make_rpc_request(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": "confirmed",
                },
            ],
        )
        return result if isinstance(result, dict) else None

    async def get_mint_authorities(self, mint: str) -> AuthorityRisk:
        """Read mint and freeze authorities from the parsed mint account."""
        result = await self._make_rpc_request(
            "getAccountInfo", [mint, {"encoding": "jsonParsed"}]
        )
        value = (result or {}).get("value") if isinstance(result, dict) else None
        data = value.get("data") if isinstance(value, dict) else None
        parsed = data.get("parsed") if isinstance(data, dict) else None
        info = parsed.get("info") if isinstance(parsed, dict) else None

        if not isinstance(info, dict):
            logger.debug("Mint account not parseable", mint=mint)
            return AuthorityRisk()

        return AuthorityRisk(
            mint_authority_active=info.get("mintAuthority") is not None,
            freeze_authority_active=info.get("freezeAuthority") is not None,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
