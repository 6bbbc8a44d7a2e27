import json
from collections.abc import Callable
from http import HTTPStatus

import httpx
import pytest
from ethereum_rpc import RPCError, RPCErrorCode

from nuntius import (
    HTTPError,
    HTTPProvider,
    InvalidResponse,
    ProviderError,
    Unreachable,
)

pytestmark = pytest.mark.anyio

URL = "http://localhost:8545"


def make_provider(handler: Callable[[httpx.Request], httpx.Response]) -> HTTPProvider:
    return HTTPProvider(URL, transport=httpx.MockTransport(handler))


async def test_rpc() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": "0x539"})

    async with make_provider(handler).session() as session:
        assert await session.rpc("eth_chainId") == "0x539"
        assert await session.rpc("eth_getTransactionCount", "0x" + "11" * 20, "pending") == "0x539"

    assert requests == [
        {"jsonrpc": "2.0", "method": "eth_chainId", "params": [], "id": 0},
        {
            "jsonrpc": "2.0",
            "method": "eth_getTransactionCount",
            "params": ["0x" + "11" * 20, "pending"],
            "id": 1,
        },
    ]


async def test_rpc_error() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        error = {"code": -32000, "message": "nonce too low"}
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 0, "error": error})

    async with make_provider(handler).session() as session:
        with pytest.raises(ProviderError) as exc:
            await session.rpc("eth_sendRawTransaction", "0x00")

    assert isinstance(exc.value.error, RPCError)
    assert exc.value.error.parsed_code == RPCErrorCode.SERVER_ERROR
    assert str(exc.value) == (
        "Provider error: RPC error (RPCErrorCode.SERVER_ERROR): nonce too low"
    )


async def test_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    async with make_provider(handler).session() as session:
        with pytest.raises(ProviderError) as exc:
            await session.rpc("eth_chainId")

    assert isinstance(exc.value.error, Unreachable)
    assert isinstance(exc.value.__cause__, httpx.ConnectError)


@pytest.mark.parametrize(
    ("response", "message"),
    [
        (httpx.Response(200, text="not json"), "Expected a JSON response, got HTTP status 200"),
        (httpx.Response(200, json=[1, 2]), "RPC response must be a dictionary"),
        (httpx.Response(200, json={"id": 0}), "`result` is not present in the response"),
        (httpx.Response(200, json={"error": "oops"}), "Failed to parse an error response"),
    ],
)
async def test_invalid_response(response: httpx.Response, message: str) -> None:
    async with make_provider(lambda _request: response).session() as session:
        with pytest.raises(ProviderError, match=message) as exc:
            await session.rpc("eth_chainId")

    assert isinstance(exc.value.error, InvalidResponse)


async def test_http_error() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"detail": "overloaded"})

    async with make_provider(handler).session() as session:
        with pytest.raises(ProviderError) as exc:
            await session.rpc("eth_chainId")

    assert isinstance(exc.value.error, HTTPError)
    assert exc.value.error.status == HTTPStatus.SERVICE_UNAVAILABLE
    assert "overloaded" in exc.value.error.message


async def test_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    provider = HTTPProvider(URL, timeout=0.5, transport=httpx.MockTransport(handler))
    async with provider.session() as session:
        with pytest.raises(ProviderError, match="ReadTimeout: timed out") as exc:
            await session.rpc("eth_chainId")

    assert isinstance(exc.value.error, Unreachable)


async def test_response_to_another_request() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 5, "result": "0x1"})

    async with make_provider(handler).session() as session:
        with pytest.raises(ProviderError, match="Expected a response to the request 0") as exc:
            await session.rpc("eth_chainId")

    assert isinstance(exc.value.error, InvalidResponse)


async def test_error_with_data() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        error = {"code": 3, "message": "execution reverted", "data": "0x08c379a0"}
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": error})

    async with make_provider(handler).session() as session:
        with pytest.raises(ProviderError) as exc:
            await session.rpc("eth_call", {}, "latest")

    error = exc.value.error
    assert isinstance(error, RPCError)
    assert error.parsed_code == RPCErrorCode.EXECUTION_ERROR
    assert error.data == bytes.fromhex("08c379a0")
