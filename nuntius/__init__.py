"""Async Ethereum contract invocation and event dispatch."""

from ._client import Client, ClientConfig, ClientSession
from ._client_rpc import BadResponseFormat, ClientSessionRPC, LogFilter
from ._codec import DEFAULT_CODEC, Codec, EncodingError, EthABICodec
from ._contract import BoundContract, DeployedContract
from ._contract_abi import (
    ContractABI,
    EntryKind,
    Event,
    EventFields,
    Fields,
    FieldValues,
    Function,
    Mutability,
    UnknownMember,
)
from ._dispatcher import CallDispatcher, UnsupportedOperation
from ._events import (
    DecodedEvent,
    DispatchFailed,
    EventRouter,
    RegistrationId,
    Watcher,
    WatcherFailed,
)
from ._keystore import CycleKeystore, Keystore
from ._provider import (
    HTTPError,
    HTTPProvider,
    HTTPProviderSession,
    InvalidResponse,
    ProtocolError,
    Provider,
    ProviderError,
    ProviderSession,
    Unreachable,
)
from ._signer import AccountSigner, Signer
from ._transaction import (
    GasNonceResolver,
    LegacyTransaction,
    PendingTransaction,
    TxReceiptHandle,
    ValueSource,
    resolve_first,
)

__all__ = [
    "DEFAULT_CODEC",
    "AccountSigner",
    "BadResponseFormat",
    "BoundContract",
    "CallDispatcher",
    "Client",
    "ClientConfig",
    "ClientSession",
    "ClientSessionRPC",
    "Codec",
    "ContractABI",
    "CycleKeystore",
    "DecodedEvent",
    "DeployedContract",
    "DispatchFailed",
    "EncodingError",
    "EntryKind",
    "EthABICodec",
    "Event",
    "EventFields",
    "EventRouter",
    "FieldValues",
    "Fields",
    "Function",
    "GasNonceResolver",
    "HTTPError",
    "HTTPProvider",
    "HTTPProviderSession",
    "InvalidResponse",
    "Keystore",
    "LegacyTransaction",
    "LogFilter",
    "Mutability",
    "PendingTransaction",
    "ProtocolError",
    "Provider",
    "ProviderError",
    "ProviderSession",
    "RegistrationId",
    "Signer",
    "TxReceiptHandle",
    "UnknownMember",
    "Unreachable",
    "UnsupportedOperation",
    "ValueSource",
    "Watcher",
    "WatcherFailed",
    "resolve_first",
]
