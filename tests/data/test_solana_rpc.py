"""Tests for the Solana JSON-RPC client."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from signalbot.core.errors import SolanaRpcError
from signalbot.core.retry import RetryPolicy
from signalbot.data.solana_rpc import SolanaRpcClient

RPC_URL = "https://rpc.example.com"


@pytest.fixture
def rpc():
    return SolanaRpcClient(
        RPC_URL,
        retry_policy=RetryPolicy(
            delay_seconds=0.0,
            max_attempts=2,
            retry_on=(httpx.NetworkError,),
            sleep=AsyncMock(),
        ),
    )


def _result(result, request_id=1):
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": request_id, "result": result})


class TestSolanaRpcClient:
    """Test JSON-RPC requests and error mapping."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_signatures(self, rpc):
        route = respx.post(RPC_URL).mock(
            return_value=_result([{"signature": "s1", "err": None}])
        )

        signatures = await rpc.get_signatures("MintA", limit=100)

        assert signatures == [{"signature": "s1", "err": None}]
        body = json.loads(route.calls.last.request.content)
        assert body["method"] == "getSignaturesForAddress"
        assert body["params"] == ["MintA", {"limit": 100}]

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_transaction(self, rpc):
        route = respx.post(RPC_URL).mock(return_value=_result({"meta": {"err": None}}))

        tx = await rpc.get_transaction("s1")

        assert tx == {"meta": {"err": None}}
        body = json.loads(route.calls.last.request.content)
        assert body["params"][1]["encoding"] == "jsonParsed"
        assert body["params"][1]["maxSupportedTransactionVersion"] == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_transaction_missing(self, rpc):
        respx.post(RPC_URL).mock(return_value=_result(None))

        assert await rpc.get_transaction("s1") is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_request_ids_increment(self, rpc):
        route = respx.post(RPC_URL).mock(return_value=_result([]))

        await rpc.get_signatures("MintA")
        await rpc.get_signatures("MintA")

        ids = [json.loads(call.request.content)["id"] for call in route.calls]
        assert ids == [1, 2]

    @pytest.mark.asyncio
    @respx.mock
    async def test_mint_authorities(self, rpc):
        respx.post(RPC_URL).mock(
            return_value=_result(
                {
                    "value": {
                        "data": {
                            "parsed": {
                                "type": "mint",
                                "info": {
                                    "mintAuthority": "Auth111",
                                    "freezeAuthority": None,
                                    "decimals": 6,
                                },
                            }
                        }
                    }
                }
            )
        )

        authority = await rpc.get_mint_authorities("MintA")

        assert authority.mint_authority_active is True
        assert authority.freeze_authority_active is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_mint_authorities_unparseable(self, rpc):
        respx.post(RPC_URL).mock(return_value=_result({"value": None}))

        authority = await rpc.get_mint_authorities("MintA")

        assert authority.mint_authority_active is None
        assert authority.freeze_authority_active is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_rpc_error(self, rpc):
        respx.post(RPC_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": 1,
                    "error": {"code": -32602, "message": "Invalid param"},
                },
            )
        )

        with pytest.raises(SolanaRpcError) as exc_info:
            await rpc.get_signatures("bad")

        assert exc_info.value.code == -32602

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error_retried(self, rpc):
        route = respx.post(RPC_URL).mock(
            side_effect=[httpx.ConnectError("refused"), _result([])]
        )

        assert await rpc.get_signatures("MintA") == []
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_status_not_retried(self, rpc):
        route = respx.post(RPC_URL).mock(return_value=httpx.Response(500))

        with pytest.raises(httpx.HTTPStatusError):
            await rpc.get_signatures("MintA")

        assert route.call_count == 1
