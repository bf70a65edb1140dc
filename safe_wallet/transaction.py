"""
EIP-712 hashing of Safe transactions and messages.

The same functions back the wallet's ``getTransactionHash`` and the client
helpers, so a digest computed off-chain always matches the one the wallet
checks signatures against.
"""

from dataclasses import asdict, dataclass, replace
from enum import IntEnum

from eth_abi import encode
from hexbytes import HexBytes

from safe_wallet.utils import ZERO_ADDRESS, keccak, to_address, to_bytes

DOMAIN_SEPARATOR_TYPEHASH = keccak(b"EIP712Domain(uint256 chainId,address verifyingContract)")
SAFE_TX_TYPEHASH = keccak(
    b"SafeTx(address to,uint256 value,bytes data,uint8 operation,uint256 safeTxGas,"
    b"uint256 baseGas,uint256 gasPrice,address gasToken,address refundReceiver,uint256 nonce)"
)
SAFE_MSG_TYPEHASH = keccak(b"SafeMessage(bytes message)")

EIP712_SAFE_TX_TYPES = {
    "EIP712Domain": [
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "SafeTx": [
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "data", "type": "bytes"},
        {"name": "operation", "type": "uint8"},
        {"name": "safeTxGas", "type": "uint256"},
        {"name": "baseGas", "type": "uint256"},
        {"name": "gasPrice", "type": "uint256"},
        {"name": "gasToken", "type": "address"},
        {"name": "refundReceiver", "type": "address"},
        {"name": "nonce", "type": "uint256"},
    ],
}


class Operation(IntEnum):
    CALL = 0
    DELEGATE_CALL = 1


@dataclass(frozen=True)
class SafeTx:
    """A wallet transaction. Its identity is its EIP-712 digest."""

    to: str
    value: int = 0
    data: bytes = b""
    operation: int = Operation.CALL
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS
    nonce: int = 0

    def __post_init__(self):
        object.__setattr__(self, "to", to_address(self.to))
        object.__setattr__(self, "data", to_bytes(self.data))
        object.__setattr__(self, "gas_token", to_address(self.gas_token))
        object.__setattr__(self, "refund_receiver", to_address(self.refund_receiver))

    def with_nonce(self, nonce: int) -> "SafeTx":
        return replace(self, nonce=nonce)

    def as_args(self) -> tuple:
        """Positional arguments of ``execTransaction`` (without signatures)."""
        return (
            self.to,
            self.value,
            self.data,
            int(self.operation),
            self.safe_tx_gas,
            self.base_gas,
            self.gas_price,
            self.gas_token,
            self.refund_receiver,
        )

    def struct_hash(self) -> bytes:
        return safe_tx_struct_hash(*self.as_args(), self.nonce)

    def eip712_data(self, safe, chain_id: int) -> dict:
        """Typed data for ``eth_account`` signing."""
        return {
            "types": EIP712_SAFE_TX_TYPES,
            "primaryType": "SafeTx",
            "domain": {"chainId": chain_id, "verifyingContract": to_address(safe)},
            "message": {
                "to": self.to,
                "value": self.value,
                "data": self.data,
                "operation": int(self.operation),
                "safeTxGas": self.safe_tx_gas,
                "baseGas": self.base_gas,
                "gasPrice": self.gas_price,
                "gasToken": self.gas_token,
                "refundReceiver": self.refund_receiver,
                "nonce": self.nonce,
            },
        }

    def to_dict(self) -> dict:
        out = asdict(self)
        out["data"] = "0x" + self.data.hex()
        return out


def domain_separator(chain_id: int, safe) -> bytes:
    return keccak(
        encode(["bytes32", "uint256", "address"], [DOMAIN_SEPARATOR_TYPEHASH, chain_id, to_address(safe)])
    )


def safe_tx_struct_hash(
    to, value, data, operation, safe_tx_gas, base_gas, gas_price, gas_token, refund_receiver, nonce
) -> bytes:
    return keccak(
        encode(
            [
                "bytes32", "address", "uint256", "bytes32", "uint8", "uint256",
                "uint256", "uint256", "address", "address", "uint256",
            ],
            [
                SAFE_TX_TYPEHASH,
                to_address(to),
                value,
                keccak(data),
                operation,
                safe_tx_gas,
                base_gas,
                gas_price,
                to_address(gas_token),
                to_address(refund_receiver),
                nonce,
            ],
        )
    )


def encode_transaction_data(separator: bytes, struct_hash: bytes) -> bytes:
    """``0x19 ‖ 0x01 ‖ domainSeparator ‖ structHash``: the bytes the digest is taken over."""
    return b"\x19\x01" + separator + struct_hash


def calculate_safe_transaction_hash(safe, tx: SafeTx, chain_id: int) -> HexBytes:
    return HexBytes(keccak(encode_transaction_data(domain_separator(chain_id, safe), tx.struct_hash())))


def safe_message_struct_hash(message: bytes) -> bytes:
    return keccak(encode(["bytes32", "bytes32"], [SAFE_MSG_TYPEHASH, keccak(message)]))


def encode_message_data(separator: bytes, message: bytes) -> bytes:
    return b"\x19\x01" + separator + safe_message_struct_hash(message)


def calculate_safe_message_hash(safe, message: bytes, chain_id: int) -> HexBytes:
    return HexBytes(keccak(encode_message_data(domain_separator(chain_id, safe), to_bytes(message))))
