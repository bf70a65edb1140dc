import rlp
from eth_abi.packed import encode_packed
from hexbytes import HexBytes
from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_HASH = b"\x00" * 32

WORD = 2**256


def to_address(value):
    """
    Normalise an address-like value (hex string, 20 bytes, int, or any object
    with an ``address`` attribute) to a checksummed string.
    """
    if hasattr(value, "address"):
        value = value.address
    if isinstance(value, int):
        return int_to_address(value)
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise ValueError(f"Expected 20 address bytes, got {len(value)}")
        return Web3.to_checksum_address("0x" + bytes(value).hex())
    return Web3.to_checksum_address(value)


def address_to_int(value):
    return int(to_address(value), 16)


def int_to_address(value):
    return Web3.to_checksum_address("0x" + (value % 2**160).to_bytes(20, "big").hex())


def to_bytes(value):
    """Bytes from bytes, HexBytes, a hex string or None."""
    if value is None:
        return b""
    if isinstance(value, str):
        return bytes(HexBytes(value)) if value not in ("", "0x") else b""
    return bytes(value)


def to_word(value):
    """Left pad an int to a 32 byte big-endian word."""
    return (value % WORD).to_bytes(32, "big")


def keccak(data):
    return bytes(Web3.keccak(to_bytes(data)))


def parse_value(value):
    """
    Amounts in wei from ints or strings such as ``"1 ether"`` / ``"5 gwei"``.
    """
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        parts = value.split()
        if len(parts) == 2:
            return int(Web3.to_wei(parts[0], parts[1]))
        return int(value, 0)
    raise TypeError(f"Cannot convert {value!r} to a wei amount")


def compute_create_address(deployer, nonce):
    """Address of a contract created with CREATE by ``deployer`` at ``nonce``."""
    encoded = rlp.encode([bytes(HexBytes(to_address(deployer))), nonce])
    return to_address(keccak(encoded)[12:])


def compute_create2_address(deployer, salt, init_code):
    """Address of a contract created with CREATE2 (EIP-1014)."""
    digest = keccak(
        encode_packed(
            ["bytes1", "address", "bytes32", "bytes32"],
            [b"\xff", to_address(deployer), to_bytes(salt), keccak(init_code)],
        )
    )
    return to_address(digest[12:])
