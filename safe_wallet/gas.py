"""
Gas metering for call frames.

Each frame gets its own GasMeter. A caller debits the gas it forwards before
running the child and takes back whatever the child did not use.
"""

from __future__ import annotations

from typing import Optional

from safe_wallet.config import GasSchedule
from safe_wallet.errors import OutOfGas


class GasMeter:
    __slots__ = ("_limit", "_used")

    def __init__(self, limit: int) -> None:
        if limit < 0:
            raise ValueError("gas limit must be non-negative")
        self._limit = int(limit)
        self._used = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def used(self) -> int:
        return self._used

    @property
    def remaining(self) -> int:
        return self._limit - self._used

    def debit(self, amount: int, *, reason: Optional[str] = None) -> None:
        """Consume ``amount`` gas, raising OutOfGas if not enough remains."""
        if amount < 0:
            raise ValueError("gas amount must be non-negative")
        if amount > self.remaining:
            raise OutOfGas(f"out of gas: {reason}" if reason else "out of gas")
        self._used += amount

    def return_gas(self, amount: int) -> None:
        """Credit gas a child frame left unused."""
        if amount < 0 or amount > self._used:
            raise ValueError("cannot return more gas than was used")
        self._used -= amount

    def exhaust(self) -> None:
        self._used = self._limit


def call_gas_cap(available: int) -> int:
    """At most 63/64 of the available gas can be forwarded to a call."""
    return available - available // 64


def calldata_cost(data: bytes, schedule: GasSchedule) -> int:
    zeros = data.count(0)
    return zeros * schedule.tx_data_zero + (len(data) - zeros) * schedule.tx_data_nonzero


def intrinsic_gas(data: bytes, schedule: GasSchedule) -> int:
    return schedule.tx_base + calldata_cost(data, schedule)


def keccak_cost(length: int, schedule: GasSchedule) -> int:
    return schedule.keccak + schedule.keccak_word * ((length + 31) // 32)


def log_cost(topics: int, data_length: int, schedule: GasSchedule) -> int:
    return schedule.log + schedule.log_topic * topics + schedule.log_data * data_length
