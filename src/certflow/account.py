"""Account key and account URL storage.

Stored accounts are keyed by ``(provider, identity)``. The identity is an
explicit tenant or session identifier chosen by the caller, so that
independent users of one deployment never share a CA-side account.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class StoredAccount(BaseModel):
    """Account material kept between certificate requests."""

    key_pem: str
    account_url: str | None = None


class AccountStore(ABC):
    """Abstract interface for account storage."""

    @abstractmethod
    def load(self, provider: str, identity: str) -> StoredAccount | None:
        """Load the stored account for a provider/identity pair.

        Args:
            provider: CA provider name or directory URL.
            identity: Caller-supplied tenant/session identifier.

        Returns:
            The stored account, or None if nothing is stored.
        """
        ...

    @abstractmethod
    def save(self, provider: str, identity: str, account: StoredAccount) -> None:
        """Store account material for a provider/identity pair.

        Args:
            provider: CA provider name or directory URL.
            identity: Caller-supplied tenant/session identifier.
            account: The material to store, replacing any previous entry.
        """
        ...


class MemoryAccountStore(AccountStore):
    """Account store that lives as long as the process."""

    def __init__(self) -> None:
        self._accounts: dict[tuple[str, str], StoredAccount] = {}

    def load(self, provider: str, identity: str) -> StoredAccount | None:
        return self._accounts.get((provider, identity))

    def save(self, provider: str, identity: str, account: StoredAccount) -> None:
        self._accounts[(provider, identity)] = account
