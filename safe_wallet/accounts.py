"""Local accounts backed by eth-account keys."""

from __future__ import annotations

from typing import Iterator, List, Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from safe_wallet.utils import keccak, parse_value, to_address, to_bytes


class LocalAccount:
    def __init__(self, chain, account) -> None:
        self._chain = chain
        self._account = account
        self.address = account.address

    @property
    def private_key(self) -> str:
        return "0x" + bytes(self._account.key).hex()

    @property
    def nonce(self) -> int:
        return self._chain.get_nonce(self.address)

    def balance(self) -> int:
        return self._chain.balance(self.address)

    def transfer(self, to, amount=0, data=b"", gas_limit: Optional[int] = None, gas_price: Optional[int] = None):
        """Send ether (and optionally calldata) to ``to``."""
        return self._chain.transact(self.address, to_address(to), to_bytes(data), parse_value(amount), gas_limit, gas_price)

    def sign_hash(self, digest: bytes):
        return self._account.unsafe_sign_hash(to_bytes(digest))

    def sign_message(self, message: bytes):
        return self._account.sign_message(encode_defunct(primitive=to_bytes(message)))

    def __str__(self) -> str:
        return self.address

    def __repr__(self) -> str:
        return f"<LocalAccount '{self.address}'>"

    def __hash__(self) -> int:
        return hash(self.address)

    def __eq__(self, other) -> bool:
        if isinstance(other, str):
            return other.lower() == self.address.lower()
        if hasattr(other, "address"):
            return other.address == self.address
        return NotImplemented


class Accounts:
    """
    Funded development accounts. Keys are derived from the account index, so
    the same index always maps to the same address.
    """

    def __init__(self, chain, count: int, balance: int) -> None:
        self._chain = chain
        self._accounts: List[LocalAccount] = []
        for i in range(count):
            account = self._wrap(Account.from_key(keccak(f"safe_wallet development account {i}".encode())))
            chain.state.set_balance(account.address, balance)
        chain.state.commit()

    def _wrap(self, account) -> LocalAccount:
        local = LocalAccount(self._chain, account)
        self._accounts.append(local)
        return local

    def add(self, private_key=None) -> LocalAccount:
        """A new unfunded account, random unless ``private_key`` is given."""
        if private_key is None:
            return self._wrap(Account.create())
        return self._wrap(Account.from_key(private_key))

    def at(self, address) -> LocalAccount:
        address = to_address(address)
        for account in self._accounts:
            if account.address == address:
                return account
        raise ValueError(f"No local account {address}")

    def __getitem__(self, index):
        return self._accounts[index]

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self) -> Iterator[LocalAccount]:
        return iter(self._accounts)
