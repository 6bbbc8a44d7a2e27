import logging
from collections.abc import Sequence
from typing import Any

from ethereum_rpc import Address, Amount, Block, BlockLabel, LogEntry

from ._client import ClientSession
from ._codec import DEFAULT_CODEC, Codec
from ._contract_abi import ABI_JSON, ContractABI, Event, Function
from ._dispatcher import CallDispatcher
from ._events import EventRouter, RegistrationId, Watcher
from ._keystore import Keystore

logger = logging.getLogger(__name__)


class DeployedContract:
    """A deployed contract's ABI and address."""

    abi: ContractABI
    """Contract's ABI."""

    address: Address
    """Contract's address."""

    @classmethod
    def from_json(
        cls, json_abi: ABI_JSON, address: str | Address, codec: Codec = DEFAULT_CODEC
    ) -> "DeployedContract":
        """Creates the contract from a JSON ABI and a hex address (or an :py:class:`Address`)."""
        if not isinstance(address, Address):
            address = Address.from_hex(address)
        return cls(ContractABI.from_json(json_abi, codec), address)

    def __init__(self, abi: ContractABI, address: Address):
        self.abi = abi
        self.address = address

    def bind(self, session: ClientSession, keystore: Keystore) -> "BoundContract":
        """Returns the contract bound to the client session and the source of signing keys."""
        return BoundContract(self, session, keystore)


class BoundContract:
    """
    A deployed contract bound to a client session and a keystore.

    Functions are invoked with :py:meth:`invoke`;
    log entries are turned into events for the watchers with :py:meth:`dispatch`
    (or continuously, with :py:meth:`listen`).
    """

    def __init__(self, contract: DeployedContract, session: ClientSession, keystore: Keystore):
        self._contract = contract
        self._session = session
        self._dispatcher = CallDispatcher(contract.abi, contract.address, session, keystore)
        self._router = EventRouter(contract.abi)

    @property
    def address(self) -> Address:
        """Contract's address."""
        return self._contract.address

    @property
    def abi(self) -> ContractABI:
        """Contract's ABI."""
        return self._contract.abi

    @property
    def client(self) -> ClientSession:
        """The session this contract is bound to."""
        return self._session

    def resolve_function(self, name: str) -> Function:
        return self.abi.resolve_function(name)

    def resolve_event(self, name: str) -> Event:
        return self.abi.resolve_event(name)

    async def invoke(
        self,
        name: str,
        args: Sequence[Any] = (),
        gas_price: None | Amount = None,
        nonce: None | int = None,
    ) -> Any:
        """See :py:meth:`CallDispatcher.invoke`."""
        return await self._dispatcher.invoke(name, args, gas_price=gas_price, nonce=nonce)

    def watch(self, event_name: str, callback: Watcher) -> RegistrationId:
        """See :py:meth:`EventRouter.watch`."""
        return self._router.watch(event_name, callback)

    def unwatch(self, event_name: str, registration_id: RegistrationId) -> None:
        """See :py:meth:`EventRouter.unwatch`."""
        self._router.unwatch(event_name, registration_id)

    def watchers(self, event_name: str) -> tuple[RegistrationId, ...]:
        """See :py:meth:`EventRouter.watchers`."""
        return self._router.watchers(event_name)

    async def dispatch(self, log_entry: LogEntry) -> None:
        """See :py:meth:`EventRouter.dispatch`."""
        await self._router.dispatch(log_entry)

    async def listen(
        self, poll_interval: float = 1, from_block: Block = BlockLabel.LATEST
    ) -> None:
        """
        Polls the provider for the contract's log entries and dispatches them
        until cancelled.

        Log entries removed due to a chain reorganization are skipped.
        Errors raised by :py:meth:`dispatch` stop the listening.
        """
        async for log_entry in self._session.iter_logs(
            self.address, poll_interval=poll_interval, from_block=from_block
        ):
            if log_entry.removed:
                logger.debug("Skipping a removed log entry from %s", log_entry.address)
                continue
            await self.dispatch(log_entry)
