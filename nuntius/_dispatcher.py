"""Routing of contract function invocations to the read or the write path."""

import logging
from collections.abc import Sequence
from typing import Any

from ethereum_rpc import Address, Amount, BlockLabel

from ._client import ClientSession
from ._contract_abi import ContractABI, Function
from ._keystore import Keystore
from ._transaction import GasNonceResolver, PendingTransaction, TxReceiptHandle

logger = logging.getLogger(__name__)


class UnsupportedOperation(Exception):
    """Raised when an invocation requests a capability this library does not provide."""


class CallDispatcher:
    """
    Executes contract function invocations.

    Constant functions are evaluated with ``eth_call`` and return the decoded output.
    Other functions are sent as signed transactions and return a :py:class:`TxReceiptHandle`.
    """

    def __init__(
        self,
        abi: ContractABI,
        address: Address,
        session: ClientSession,
        keystore: Keystore,
    ):
        self._abi = abi
        self._address = address
        self._session = session
        self._keystore = keystore

    async def invoke(
        self,
        name: str,
        args: Sequence[Any] = (),
        gas_price: None | Amount = None,
        nonce: None | int = None,
    ) -> Any:
        """
        Invokes the function with the given name (or canonical signature).

        ``gas_price`` and ``nonce`` override the defaults for the transaction;
        they are not used by constant functions.

        Raises :py:class:`UnknownMember` if the name does not resolve to a function,
        :py:class:`EncodingError` if the arguments do not match its inputs,
        :py:class:`UnsupportedOperation` for payable functions,
        and the errors of :py:class:`ClientSession` if an RPC call fails.
        """
        function = self._abi.resolve_function(name)
        data = function.encode_call(args)

        if function.constant:
            if gas_price is not None or nonce is not None:
                logger.debug("Ignoring gas price and nonce for constant `%s`", function.signature)
            return await self._call(function, data)

        if function.payable:
            raise UnsupportedOperation(
                f"`{function.signature}` is payable, sending funds is not supported"
            )
        return await self._transact(function, data, gas_price, nonce)

    async def _call(self, function: Function, data: bytes) -> Any:
        key = self._keystore.get_next_key()
        logger.debug("Calling `%s` on %s from %s", function.signature, self._address, key.address)
        tx = PendingTransaction(from_=key.address, to=self._address, data=data)
        output = await self._session.rpc.eth_call(tx.call_params(), BlockLabel.PENDING)
        return function.decode_output(output)

    async def _transact(
        self,
        function: Function,
        data: bytes,
        gas_price: None | Amount,
        nonce: None | int,
    ) -> TxReceiptHandle:
        # The config may be replaced while this invocation is suspended.
        config = self._session.config
        resolver = GasNonceResolver(self._session, config)

        key = self._keystore.get_next_key()
        logger.debug(
            "Transacting `%s` on %s from %s", function.signature, self._address, key.address
        )
        tx = PendingTransaction(from_=key.address, to=self._address, data=data)
        tx = await resolver.resolve(tx, gas_price=gas_price, nonce=nonce)
        chain_id = await resolver.resolve_chain_id()

        transaction = tx.freeze(chain_id)
        signed_tx = key.sign_transaction(transaction.to_signable())
        tx_hash = await self._session.rpc.eth_send_raw_transaction(signed_tx)
        logger.info("Sent `%s` to %s: %s", function.signature, self._address, tx_hash)
        return TxReceiptHandle(tx_hash=tx_hash, transaction=transaction)
