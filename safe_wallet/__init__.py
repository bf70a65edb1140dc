from safe_wallet.chain import Chain
from safe_wallet.config import ChainConfig, configure_logging, get_config, load_config
from safe_wallet.errors import (
    AuthorizationError,
    FatalTransferError,
    PolicyError,
    SafeError,
    TransactionReverted,
    ValidationError,
)
from safe_wallet.transaction import Operation, SafeTx, calculate_safe_message_hash, calculate_safe_transaction_hash

__version__ = "0.1.0"

__all__ = [
    "AuthorizationError",
    "Chain",
    "ChainConfig",
    "FatalTransferError",
    "Operation",
    "PolicyError",
    "SafeError",
    "SafeTx",
    "TransactionReverted",
    "ValidationError",
    "calculate_safe_message_hash",
    "calculate_safe_transaction_hash",
    "configure_logging",
    "get_config",
    "load_config",
]
