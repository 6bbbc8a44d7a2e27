from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import anyio
from ethereum_rpc import Address, Amount, Block, BlockLabel, LogEntry

from ._client_rpc import ClientSessionRPC
from ._provider import Provider, ProviderSession


@dataclass(frozen=True)
class ClientConfig:
    """
    Client-wide defaults for the fields of outgoing transactions.

    A field left as ``None`` is queried from the provider when it is needed.
    """

    gas_price: None | Amount = None
    """The price per gas unit to use when the call does not specify one."""

    gas_limit: None | int = None
    """The gas limit to use instead of ``eth_estimateGas``."""

    chain_id: None | int = None
    """The chain ID to sign transactions with instead of ``eth_chainId``."""

    def __post_init__(self) -> None:
        if self.gas_price is not None and not isinstance(self.gas_price, Amount):
            raise TypeError(f"`gas_price` must be an `Amount`, got {type(self.gas_price).__name__}")
        for name in ("gas_limit", "chain_id"):
            value = getattr(self, name)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
                raise TypeError(f"`{name}` must be an integer, got {type(value).__name__}")
            if value is not None and value < 0:
                raise ValueError(f"`{name}` must be non-negative, got {value}")


class Client:
    """An Ethereum RPC client."""

    def __init__(self, provider: Provider, config: None | ClientConfig = None):
        self._provider = provider
        self._config = config or ClientConfig()

    @property
    def config(self) -> ClientConfig:
        """
        The transaction defaults.

        Can be replaced at any time; an invocation uses the value current at its start.
        """
        return self._config

    @config.setter
    def config(self, config: ClientConfig) -> None:
        self._config = config

    @asynccontextmanager
    async def session(self) -> AsyncIterator["ClientSession"]:
        """Opens a session to the client allowing the backend to optimize sequential requests."""
        async with self._provider.session() as provider_session:
            yield ClientSession(provider_session, self)


class ClientSession:
    """
    An open session to the provider.

    The methods of this class may raise
    :py:class:`ProviderError` or :py:class:`BadResponseFormat`.
    """

    def __init__(self, provider_session: ProviderSession, client: None | Client = None):
        self._provider_session = provider_session
        self._client = client
        self._chain_id: None | int = None
        self._rpc = ClientSessionRPC(provider_session)

    @property
    def rpc(self) -> ClientSessionRPC:
        """The direct RPC calls."""
        return self._rpc

    @property
    def config(self) -> ClientConfig:
        """The current config of the client this session was opened from."""
        if self._client is None:
            return ClientConfig()
        return self._client.config

    async def chain_id(self) -> int:
        """Calls the ``eth_chainId`` RPC method (once per session)."""
        if self._chain_id is None:
            self._chain_id = await self._rpc.eth_chain_id()
        return self._chain_id

    async def iter_logs(
        self,
        address: Address,
        poll_interval: float = 1,
        from_block: Block = BlockLabel.LATEST,
    ) -> AsyncIterator[LogEntry]:
        """Yields log entries produced by the contract at the given address."""
        log_filter = await self._rpc.eth_new_filter(address, from_block=from_block)
        while True:
            log_entries = await self._rpc.eth_get_filter_changes(log_filter)
            for log_entry in log_entries:
                yield log_entry
            await anyio.sleep(poll_interval)
