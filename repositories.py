from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from exceptions import DuplicateTransactionError
from models import Account, TransactionRecord


class AccountRepository(ABC):
    @abstractmethod
    def get(self, client: int) -> Optional[Account]:
        """Get an account. Returns None if the client has not been seen."""
        pass

    @abstractmethod
    def get_or_create(self, client: int) -> Account:
        """Get an account, opening an empty one for an unseen client."""
        pass

    @abstractmethod
    def all(self) -> List[Account]:
        """Get every known account, ordered by client id."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Get total number of accounts."""
        pass


class TransactionRepository(ABC):
    @abstractmethod
    def get(self, tx: int) -> Optional[TransactionRecord]:
        """Get a stored deposit or withdrawal by id."""
        pass

    @abstractmethod
    def exists(self, tx: int) -> bool:
        """Check if a transaction id has already been used."""
        pass

    @abstractmethod
    def add(self, record: TransactionRecord) -> None:
        """Store a transaction. Raises DuplicateTransactionError on a reused id."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Get total number of stored transactions."""
        pass


class InMemoryAccountRepository(AccountRepository):
    def __init__(self):
        self.accounts: Dict[int, Account] = {}

    def get(self, client: int) -> Optional[Account]:
        return self.accounts.get(client)

    def get_or_create(self, client: int) -> Account:
        account = self.accounts.get(client)
        if account is None:
            account = self.accounts[client] = Account(client=client)
        return account

    def all(self) -> List[Account]:
        return [self.accounts[client] for client in sorted(self.accounts)]

    def count(self) -> int:
        return len(self.accounts)


class InMemoryTransactionRepository(TransactionRepository):
    def __init__(self):
        # every deposit and withdrawal stays in memory for the whole run
        self.store: Dict[int, TransactionRecord] = {}

    def get(self, tx: int) -> Optional[TransactionRecord]:
        return self.store.get(tx)

    def exists(self, tx: int) -> bool:
        return tx in self.store

    def add(self, record: TransactionRecord) -> None:
        if record.id in self.store:
            raise DuplicateTransactionError(record.id)
        self.store[record.id] = record

    def count(self) -> int:
        return len(self.store)
