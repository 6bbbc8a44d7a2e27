"""Assembly of contract transactions and the defaulting of their gas and nonce fields."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from ethereum_rpc import Address, Amount, BlockLabel, EstimateGasParams, EthCallParams, TxHash

if TYPE_CHECKING:  # pragma: no cover
    from ._client import ClientConfig, ClientSession

logger = logging.getLogger(__name__)


@dataclass
class PendingTransaction:
    """
    A contract transaction being assembled.

    The gas and nonce fields are filled in progressively by :py:class:`GasNonceResolver`,
    after which the transaction is frozen with :py:meth:`freeze`.
    """

    from_: Address
    """The sender."""

    to: Address
    """The contract address."""

    data: bytes
    """The call payload (selector and encoded arguments)."""

    value: None | Amount = None
    """Associated funds."""

    gas_price: None | Amount = None
    """Price per gas unit."""

    gas: None | int = None
    """Gas limit."""

    nonce: None | int = None
    """Sender's transaction counter."""

    def call_params(self) -> EthCallParams:
        """Returns the parameters for ``eth_call`` (only the fields that have been set)."""
        return EthCallParams(
            to=self.to,
            from_=self.from_,
            gas=self.gas,
            gas_price=self.gas_price,
            value=self.value,
            data=self.data,
        )

    def estimate_params(self) -> EstimateGasParams:
        """Returns the parameters for ``eth_estimateGas`` (only the fields that have been set)."""
        return EstimateGasParams(
            from_=self.from_,
            to=self.to,
            gas=self.gas,
            gas_price=self.gas_price,
            nonce=self.nonce,
            value=self.value,
            data=self.data,
        )

    def freeze(self, chain_id: int) -> "LegacyTransaction":
        """
        Returns the complete transaction ready to be signed.
        Raises ``ValueError`` if any of the gas or nonce fields are not set.
        """
        if self.gas_price is None or self.gas is None or self.nonce is None:
            fields = ("gas_price", "gas", "nonce")
            missing = [name for name in fields if getattr(self, name) is None]
            raise ValueError(f"The transaction is incomplete, missing: {', '.join(missing)}")

        return LegacyTransaction(
            chain_id=chain_id,
            from_=self.from_,
            to=self.to,
            data=self.data,
            value=self.value if self.value is not None else Amount(0),
            gas_price=self.gas_price,
            gas=self.gas,
            nonce=self.nonce,
        )


@dataclass(frozen=True)
class LegacyTransaction:
    """A complete (type 0, EIP-155 replay-protected) contract transaction."""

    chain_id: int
    from_: Address
    to: Address
    data: bytes
    value: Amount
    gas_price: Amount
    gas: int
    nonce: int

    def to_signable(self) -> dict[str, Any]:
        """Returns the transaction dictionary in the format expected by the signer."""
        return {
            "chainId": self.chain_id,
            "to": self.to.checksum,
            "data": "0x" + self.data.hex(),
            "value": self.value.as_wei(),
            "gasPrice": self.gas_price.as_wei(),
            "gas": self.gas,
            "nonce": self.nonce,
        }


@dataclass(frozen=True)
class TxReceiptHandle:
    """
    A broadcast transaction: its hash, and the transaction that was sent.
    Can be used to look up the receipt later.
    """

    tx_hash: TxHash
    """The hash returned by the provider."""

    transaction: LegacyTransaction
    """The transaction that was signed and broadcast."""


ValueType = TypeVar("ValueType")


@dataclass(frozen=True)
class ValueSource(Generic[ValueType]):
    """A named, lazily evaluated source of an optional value."""

    name: str
    fetch: Callable[[], Awaitable[None | ValueType]]

    @classmethod
    def given(cls, name: str, value: None | ValueType) -> "ValueSource[ValueType]":
        """A source of an already known value (``None`` if it is absent)."""

        async def fetch() -> None | ValueType:
            return value

        return cls(name, fetch)


async def resolve_first(field: str, *sources: ValueSource[ValueType]) -> ValueType:
    """
    Evaluates the sources in order and returns the first value that is not ``None``.
    The sources after it are not evaluated.
    """
    for source in sources:
        value = await source.fetch()
        if value is not None:
            logger.debug("The %s is taken from %s: %s", field, source.name, value)
            return value
    names = ", ".join(source.name for source in sources)
    raise ValueError(f"None of the sources ({names}) set the {field}")


class GasNonceResolver:
    """
    Fills in the gas price, the gas limit and the nonce of a transaction.

    Each field is taken from the first available source:

    - gas price: the explicit argument, the client config, ``eth_gasPrice``;
    - gas limit: the client config, ``eth_estimateGas`` on the transaction assembled so far;
    - nonce: the explicit argument, ``eth_getTransactionCount`` for the sender
      in the pending block.

    No RPC request is made for a field that is set by a preceding source.
    """

    def __init__(self, session: "ClientSession", config: "ClientConfig"):
        self._session = session
        self._config = config

    async def resolve(
        self,
        tx: PendingTransaction,
        gas_price: None | Amount = None,
        nonce: None | int = None,
    ) -> PendingTransaction:
        rpc = self._session.rpc

        tx.gas_price = await resolve_first(
            "gas price",
            ValueSource.given("the call arguments", gas_price),
            ValueSource.given("the client config", self._config.gas_price),
            ValueSource("eth_gasPrice", rpc.eth_gas_price),
        )
        # The estimate is requested for the transaction with the sender,
        # the recipient and the payload already set.
        tx.gas = await resolve_first(
            "gas limit",
            ValueSource.given("the client config", self._config.gas_limit),
            ValueSource("eth_estimateGas", partial(rpc.eth_estimate_gas, tx.estimate_params())),
        )
        tx.nonce = await resolve_first(
            "nonce",
            ValueSource.given("the call arguments", nonce),
            ValueSource(
                "eth_getTransactionCount",
                partial(rpc.eth_get_transaction_count, tx.from_, BlockLabel.PENDING),
            ),
        )
        return tx

    async def resolve_chain_id(self) -> int:
        return await resolve_first(
            "chain id",
            ValueSource.given("the client config", self._config.chain_id),
            ValueSource("eth_chainId", self._session.chain_id),
        )
