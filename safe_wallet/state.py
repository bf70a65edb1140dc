"""
World state of the local chain with an undo journal.

Every mutation records the previous value. ``checkpoint()`` returns the
current journal length and ``revert_to(checkpoint)`` undoes everything
recorded after it, so nested call frames roll back independently. At the end
of a transaction ``commit()`` drops the journal and clears transient storage.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class AccountState:
    balance: int = 0
    nonce: int = 0
    code: Any = None
    storage: Dict[int, int] = field(default_factory=dict)


@dataclass
class Log:
    address: str
    event: str
    args: Dict[str, Any]
    topics: List[bytes]
    data: bytes


class WorldState:
    def __init__(self) -> None:
        self._accounts: Dict[str, AccountState] = {}
        self._transient: Dict[Tuple[str, int], int] = {}
        self.logs: List[Log] = []
        self._journal: List[tuple] = []

    # ----------------------------- journal ----------------------------------

    def checkpoint(self) -> int:
        return len(self._journal)

    def revert_to(self, checkpoint: int) -> None:
        while len(self._journal) > checkpoint:
            entry = self._journal.pop()
            kind = entry[0]
            if kind == "account":
                del self._accounts[entry[1]]
            elif kind == "balance":
                self._accounts[entry[1]].balance = entry[2]
            elif kind == "nonce":
                self._accounts[entry[1]].nonce = entry[2]
            elif kind == "code":
                self._accounts[entry[1]].code = entry[2]
            elif kind == "storage":
                self._put(self._accounts[entry[1]].storage, entry[2], entry[3])
            elif kind == "transient":
                self._put(self._transient, (entry[1], entry[2]), entry[3])
            elif kind == "log":
                self.logs.pop()

    def commit(self) -> None:
        self._journal.clear()
        self._transient.clear()

    def copy(self) -> "WorldState":
        """Deep copy for snapshots. Code objects are shared."""
        clone = WorldState()
        for address, account in self._accounts.items():
            clone._accounts[address] = AccountState(
                account.balance, account.nonce, account.code, dict(account.storage)
            )
        clone.logs = copy.copy(self.logs)
        return clone

    @staticmethod
    def _put(mapping: dict, key: Any, value: int) -> None:
        if value:
            mapping[key] = value
        else:
            mapping.pop(key, None)

    # ----------------------------- accounts ---------------------------------

    def _account(self, address: str) -> AccountState:
        account = self._accounts.get(address)
        if account is None:
            account = AccountState()
            self._accounts[address] = account
            self._journal.append(("account", address))
        return account

    def exists(self, address: str) -> bool:
        account = self._accounts.get(address)
        return account is not None and (
            account.balance > 0 or account.nonce > 0 or account.code is not None
        )

    def get_balance(self, address: str) -> int:
        account = self._accounts.get(address)
        return account.balance if account else 0

    def set_balance(self, address: str, value: int) -> None:
        if value < 0:
            raise ValueError("balance cannot be negative")
        account = self._account(address)
        self._journal.append(("balance", address, account.balance))
        account.balance = value

    def transfer(self, sender: str, receiver: str, value: int) -> bool:
        if self.get_balance(sender) < value:
            return False
        if value:
            self.set_balance(sender, self.get_balance(sender) - value)
            self.set_balance(receiver, self.get_balance(receiver) + value)
        return True

    def get_nonce(self, address: str) -> int:
        account = self._accounts.get(address)
        return account.nonce if account else 0

    def set_nonce(self, address: str, value: int) -> None:
        account = self._account(address)
        self._journal.append(("nonce", address, account.nonce))
        account.nonce = value

    def increment_nonce(self, address: str) -> int:
        nonce = self.get_nonce(address)
        self.set_nonce(address, nonce + 1)
        return nonce

    def get_code(self, address: str):
        account = self._accounts.get(address)
        return account.code if account else None

    def set_code(self, address: str, code) -> None:
        account = self._account(address)
        self._journal.append(("code", address, account.code))
        account.code = code

    # ----------------------------- storage ----------------------------------

    def sload(self, address: str, slot: int) -> int:
        account = self._accounts.get(address)
        return account.storage.get(slot, 0) if account else 0

    def sstore(self, address: str, slot: int, value: int) -> None:
        account = self._account(address)
        self._journal.append(("storage", address, slot, account.storage.get(slot, 0)))
        self._put(account.storage, slot, value)

    def tload(self, address: str, slot: int) -> int:
        return self._transient.get((address, slot), 0)

    def tstore(self, address: str, slot: int, value: int) -> None:
        self._journal.append(("transient", address, slot, self._transient.get((address, slot), 0)))
        self._put(self._transient, (address, slot), value)

    # ------------------------------- logs -----------------------------------

    def add_log(self, log: Log) -> None:
        self.logs.append(log)
        self._journal.append(("log",))

    def logs_since(self, index: int) -> List[Log]:
        return self.logs[index:]

    def storage_of(self, address: str) -> Optional[Dict[int, int]]:
        account = self._accounts.get(address)
        return dict(account.storage) if account else None
