"""
The contract ABI codec: selectors, topics, and packing of call arguments and return values.

The rest of the package only talks to the abstract :py:class:`Codec`;
:py:class:`EthABICodec` is the default implementation backed by ``eth-abi``.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import ABITypeError, DecodingError, ParseError
from eth_abi.exceptions import EncodingError as EthABIEncodingError
from eth_abi.grammar import ABIType, TupleType, parse
from eth_utils import keccak
from ethereum_rpc import Address, LogTopic


# The number of bytes in a function selector.
SELECTOR_LENGTH = 4


class EncodingError(Exception):
    """
    Raised when the arguments of a call cannot be encoded according to the ABI,
    or when return values or log data cannot be decoded.
    """


@contextmanager
def convert_errors(action: str, types: Sequence[str]) -> Iterator[None]:
    try:
        yield
    # `eth-abi` raises builtin exceptions for some malformed values
    except (
        EthABIEncodingError,
        DecodingError,
        ParseError,
        ABITypeError,
        TypeError,
        ValueError,
        OverflowError,
    ) as exc:
        raise EncodingError(f"Could not {action} ({','.join(types)}): {exc}") from exc


class Codec(ABC):
    """The interface of an ABI codec."""

    @abstractmethod
    def selector_of(self, signature: str) -> bytes:
        """Returns the selector for the canonical function signature (e.g. ``f(uint256)``)."""

    @abstractmethod
    def topic_of(self, signature: str) -> LogTopic:
        """Returns the topic identifying the canonical event signature."""

    @abstractmethod
    def encode(self, types: Sequence[str], args: Sequence[Any]) -> bytes:
        """Packs the values according to the given canonical types."""

    @abstractmethod
    def decode(self, types: Sequence[str], data: bytes) -> tuple[Any, ...]:
        """Unpacks the values of the given canonical types from the bytestring."""

    @abstractmethod
    def decode_topic(self, type_: str, topic: LogTopic) -> Any:
        """
        Decodes the value of an indexed event field.
        Returns ``None`` if the value cannot be recovered (reference types are hashed).
        """

    def encode_call(self, signature: str, types: Sequence[str], args: Sequence[Any]) -> bytes:
        """Returns the call payload: the selector followed by the packed arguments."""
        if len(args) != len(types):
            raise EncodingError(
                f"`{signature}` takes {len(types)} argument(s), got {len(args)}"
            )
        return self.selector_of(signature) + self.encode(types, args)


def _normalize(value: Any) -> Any:
    if isinstance(value, Address):
        return bytes(value)
    if isinstance(value, list | tuple):
        return [_normalize(item) for item in value]
    return value


def _denormalize(abi_type: ABIType, value: Any) -> Any:
    if abi_type.is_array:
        return tuple(_denormalize(abi_type.item_type, item) for item in value)
    if isinstance(abi_type, TupleType):
        return tuple(
            _denormalize(component, item)
            for component, item in zip(abi_type.components, value, strict=True)
        )
    if abi_type.base == "address":
        return Address.from_hex(value)
    return value


def _is_hashed_in_topic(abi_type: ABIType) -> bool:
    # Reference types are hashed when used as indexed event fields.
    return abi_type.is_array or isinstance(abi_type, TupleType) or abi_type.is_dynamic


class EthABICodec(Codec):
    """
    The default codec backed by ``eth-abi``.

    Values of ``address`` type are accepted and returned as :py:class:`Address` objects.
    Arrays and tuples are returned as Python tuples.
    """

    def selector_of(self, signature: str) -> bytes:
        return keccak(text=signature)[:SELECTOR_LENGTH]

    def topic_of(self, signature: str) -> LogTopic:
        return LogTopic(keccak(text=signature))

    def encode(self, types: Sequence[str], args: Sequence[Any]) -> bytes:
        with convert_errors("encode the values", types):
            return encode(list(types), [_normalize(arg) for arg in args])

    def decode(self, types: Sequence[str], data: bytes) -> tuple[Any, ...]:
        with convert_errors("decode the values", types):
            values = decode(list(types), data)
            return tuple(
                _denormalize(parse(tp), value) for tp, value in zip(types, values, strict=True)
            )

    def decode_topic(self, type_: str, topic: LogTopic) -> Any:
        with convert_errors("decode the topic", [type_]):
            abi_type = parse(type_)
            if _is_hashed_in_topic(abi_type):
                return None
            (value,) = decode([type_], bytes(topic))
            return _denormalize(abi_type, value)


DEFAULT_CODEC = EthABICodec()
