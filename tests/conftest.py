from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

import pytest
from ethereum_rpc import JSON, Address, BlockHash, LogEntry, LogTopic, TxHash

from nuntius import (
    AccountSigner,
    Client,
    ClientSession,
    ContractABI,
    CycleKeystore,
    DeployedContract,
    Provider,
    ProviderSession,
)

CONTRACT_ADDRESS = Address.from_hex("0x" + "11" * 20)

TX_HASH_HEX = "0x" + "ab" * 32

TOKEN_ABI: list[dict[str, Any]] = [
    {
        "type": "constructor",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "supply", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "info",
        "stateMutability": "pure",
        "inputs": [],
        "outputs": [{"name": "decimals", "type": "uint8"}, {"name": "paused", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "pair",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}, {"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "transfer",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "to", "type": "address"}, {"name": "value", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "mint",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "value", "type": "uint256"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "mint",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "to", "type": "address"}, {"name": "value", "type": "uint256"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "deposit",
        "stateMutability": "payable",
        "inputs": [],
        "outputs": [],
    },
    # A pre-0.6 compiler entry
    {
        "name": "totalSupply",
        "constant": True,
        "payable": False,
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "Paused",
        "anonymous": False,
        "inputs": [],
    },
    {
        "type": "error",
        "name": "InsufficientBalance",
        "inputs": [{"name": "available", "type": "uint256"}],
    },
]


RPCHandler = JSON | Exception | Callable[..., JSON]


class MockProviderSession(ProviderSession):
    """
    Answers RPC requests from a table of handlers and records them.

    A handler can be a JSON value (returned as is), an exception (raised),
    or a function taking the JSON arguments of the request.
    """

    def __init__(self, handlers: None | Mapping[str, RPCHandler] = None):
        self.handlers: dict[str, RPCHandler] = dict(handlers or {})
        self.calls: list[tuple[str, tuple[JSON, ...]]] = []

    def methods(self) -> list[str]:
        return [method for method, _args in self.calls]

    async def rpc(self, method: str, *args: JSON) -> JSON:
        self.calls.append((method, args))
        handler = self.handlers[method]
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(*args)
        return handler


class MockProvider(Provider):
    def __init__(self, provider_session: MockProviderSession):
        self.provider_session = provider_session

    @asynccontextmanager
    async def session(self) -> AsyncIterator[MockProviderSession]:
        yield self.provider_session


@pytest.fixture
def anyio_backend() -> str:
    return "trio"


@pytest.fixture
def provider_session() -> MockProviderSession:
    return MockProviderSession(
        {
            "eth_chainId": "0x539",
            "eth_gasPrice": hex(10**9),
            "eth_estimateGas": hex(50000),
            "eth_getTransactionCount": "0x7",
            "eth_sendRawTransaction": TX_HASH_HEX,
        }
    )


@pytest.fixture
def client(provider_session: MockProviderSession) -> Client:
    return Client(MockProvider(provider_session))


@pytest.fixture
async def session(client: Client) -> AsyncIterator[ClientSession]:
    async with client.session() as session:
        yield session


@pytest.fixture
def signer() -> AccountSigner:
    return AccountSigner.create()


@pytest.fixture
def keystore(signer: AccountSigner) -> CycleKeystore:
    return CycleKeystore([signer])


@pytest.fixture
def token_abi() -> ContractABI:
    return ContractABI.from_json(TOKEN_ABI)


@pytest.fixture
def token(token_abi: ContractABI) -> DeployedContract:
    return DeployedContract(token_abi, CONTRACT_ADDRESS)


@pytest.fixture
def token_abi_json() -> list[dict[str, Any]]:
    return TOKEN_ABI


@pytest.fixture
def contract_address() -> Address:
    return CONTRACT_ADDRESS


@pytest.fixture
def make_log_entry(contract_address: Address) -> Callable[..., LogEntry]:
    def _make_log_entry(
        topics: Sequence[LogTopic], data: bytes = b"", *, removed: bool = False
    ) -> LogEntry:
        return LogEntry(
            removed=removed,
            address=contract_address,
            data=data,
            topics=tuple(topics),
            log_index=0,
            transaction_index=0,
            transaction_hash=TxHash(bytes.fromhex(TX_HASH_HEX[2:])),
            block_hash=BlockHash(b"\xcd" * 32),
            block_number=1,
        )

    return _make_log_entry
