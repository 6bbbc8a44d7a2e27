"""
The JSON-RPC transport: the provider interface, and a provider talking to a node over HTTP.

Any failure to get a result for a request surfaces as :py:class:`ProviderError`.
Requests are never retried.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from http import HTTPStatus
from json import JSONDecodeError

import httpx
from compages import StructuringError
from ethereum_rpc import JSON, RPCError, structure

logger = logging.getLogger(__name__)


class InvalidResponse(Exception):
    """Raised when the remote server's response is not of an expected format."""


class Unreachable(Exception):
    """Raised when there is a problem connecting to the provider."""


class ProtocolError(ABC, Exception):
    """
    A protocol-specific error, indicating that the provider returned an error status
    with no additional information allowing to categorize the error further.
    """


@dataclass
class ProviderError(Exception):
    """Describes an error on the provider's side."""

    error: RPCError | Unreachable | InvalidResponse | ProtocolError
    """The specific error."""

    def __str__(self) -> str:
        return f"Provider error: {self.error}"


class Provider(ABC):
    """The base class for JSON RPC providers."""

    @abstractmethod
    @asynccontextmanager
    async def session(self) -> AsyncIterator["ProviderSession"]:
        """
        Opens a session to the provider
        (allowing the backend to perform multiple operations faster).
        """
        # mypy does not work with abstract generators correctly.
        # See https://github.com/python/mypy/issues/5070
        yield  # type: ignore[misc]


class ProviderSession(ABC):
    """
    A session that contract invocations and event polling send their requests through.

    Implementations must be safe to call from concurrently running tasks,
    and must raise :py:class:`ProviderError` for any request that did not produce a result.
    """

    @abstractmethod
    async def rpc(self, method: str, *args: JSON) -> JSON:
        """Calls the given RPC method with the already json-ified arguments."""
        ...


@dataclass
class HTTPError(ProtocolError):
    """
    Raised when the provider returns a response with a status code other than 200,
    and no ``"error"`` field in the associated JSON data.
    """

    status: HTTPStatus
    """The HTTP status of the response."""

    message: str
    """The response body."""

    @classmethod
    def from_response(cls, response: httpx.Response) -> "HTTPError":
        try:
            status = HTTPStatus(response.status_code)
        except ValueError:
            status = HTTPStatus.INTERNAL_SERVER_ERROR
        return cls(status, response.text)

    def __str__(self) -> str:
        return f"HTTP status {self.status}: {self.message}"


def _unpack_response(request_id: int, response: httpx.Response) -> JSON:
    try:
        response_json = response.json()
    except JSONDecodeError as exc:
        raise ProviderError(
            InvalidResponse(
                f"Expected a JSON response, got HTTP status {response.status_code}: "
                f"{response.text}"
            )
        ) from exc

    if not isinstance(response_json, Mapping):
        raise ProviderError(
            InvalidResponse(f"RPC response must be a dictionary, got: {response_json}")
        )

    # Failed contract executions come with the status 200,
    # so the error field takes precedence over the status.
    if "error" in response_json:
        try:
            error = structure(RPCError, response_json["error"])
        except StructuringError as exc:
            raise ProviderError(
                InvalidResponse(f"Failed to parse an error response: {response_json}")
            ) from exc
        raise ProviderError(error)

    if response.status_code != HTTPStatus.OK:
        raise ProviderError(HTTPError.from_response(response))

    if "result" not in response_json:
        raise ProviderError(
            InvalidResponse(f"`result` is not present in the response: {response_json}")
        )
    if response_json.get("id") != request_id:
        raise ProviderError(
            InvalidResponse(
                f"Expected a response to the request {request_id}, got: {response_json}"
            )
        )
    result: JSON = response_json["result"]
    return result


class HTTPProvider(Provider):
    """
    A provider for RPC via HTTP(S).

    ``timeout`` (in seconds) applies to each request; a request that timed out
    is reported as :py:class:`Unreachable`.
    ``transport`` is passed on to ``httpx.AsyncClient``,
    and can be used to substitute the network layer.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10,
        transport: None | httpx.AsyncBaseTransport = None,
    ):
        self._url = url
        self._timeout = timeout
        self._transport = transport

    @asynccontextmanager
    async def session(self) -> AsyncIterator["HTTPProviderSession"]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            yield HTTPProviderSession(self._url, client)


class HTTPProviderSession(ProviderSession):
    def __init__(self, url: str, http_client: httpx.AsyncClient):
        self._url = url
        self._client = http_client
        self._request_ids = itertools.count()

    async def rpc(self, method: str, *args: JSON) -> JSON:
        request_id = next(self._request_ids)
        request = {"jsonrpc": "2.0", "method": method, "params": list(args), "id": request_id}
        logger.debug("RPC request %d to %s: %s", request_id, self._url, method)
        try:
            response = await self._client.post(self._url, json=request)
        except httpx.TransportError as exc:
            raise ProviderError(Unreachable(f"{type(exc).__name__}: {exc}")) from exc
        return _unpack_response(request_id, response)
