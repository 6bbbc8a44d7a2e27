import pytest
from eth_abi import encode
from eth_utils import keccak
from ethereum_rpc import Address, LogTopic

from nuntius import DEFAULT_CODEC, EncodingError


def test_selector_and_topic() -> None:
    assert DEFAULT_CODEC.selector_of("balanceOf(address)") == bytes.fromhex("70a08231")
    assert DEFAULT_CODEC.topic_of("Transfer(address,address,uint256)") == LogTopic(
        bytes.fromhex("ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef")
    )


def test_encode_decode_addresses() -> None:
    address = Address.from_hex("0x" + "22" * 20)
    types = ["address", "(uint8,address)", "address[]"]
    encoded = DEFAULT_CODEC.encode(types, [address, (1, address), [address, address]])
    assert encoded == encode(
        types, [bytes(address), (1, bytes(address)), [bytes(address), bytes(address)]]
    )
    assert DEFAULT_CODEC.decode(types, encoded) == (address, (1, address), (address, address))


def test_encode_call() -> None:
    payload = DEFAULT_CODEC.encode_call("set(uint256)", ["uint256"], [3])
    assert payload == keccak(text="set(uint256)")[:4] + encode(["uint256"], [3])

    with pytest.raises(EncodingError, match=r"`set\(uint256\)` takes 1 argument\(s\), got 0"):
        DEFAULT_CODEC.encode_call("set(uint256)", ["uint256"], [])


def test_encoding_errors() -> None:
    with pytest.raises(EncodingError, match=r"Could not encode the values \(uint8\)"):
        DEFAULT_CODEC.encode(["uint8"], [256])

    with pytest.raises(EncodingError, match=r"Could not encode the values \(uint8\)"):
        DEFAULT_CODEC.encode(["uint8"], ["one"])

    with pytest.raises(EncodingError, match=r"Could not decode the values \(uint256\)"):
        DEFAULT_CODEC.decode(["uint256"], b"\x00" * 5)


def test_decode_topic() -> None:
    topic = LogTopic(encode(["int8"], [-3]))
    assert DEFAULT_CODEC.decode_topic("int8", topic) == -3

    address = Address.from_hex("0x" + "22" * 20)
    address_topic = LogTopic(encode(["address"], [bytes(address)]))
    assert DEFAULT_CODEC.decode_topic("address", address_topic) == address

    # Reference types are hashed
    hashed = LogTopic(keccak(b"something"))
    assert DEFAULT_CODEC.decode_topic("string", hashed) is None
    assert DEFAULT_CODEC.decode_topic("uint256[]", hashed) is None
    assert DEFAULT_CODEC.decode_topic("(uint8,bool)", hashed) is None
