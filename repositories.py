from abc import ABC, abstractmethod
from typing import Callable, Dict, Mapping, Optional
from decimal import (
    Context,
    Decimal,
    DecimalException,
    DivisionByZero,
    Inexact,
    InvalidOperation,
    Overflow,
    localcontext,
)
import operator

from errors import (
    AmountOutOfRange,
    ClientLocked,
    ClientNotFound,
    DuplicateTransactionId,
    InsufficientAvailable,
    InsufficientHeld,
    TransactionNotFound,
    WrongClientForTransaction,
)
from models import Account, LedgerTransaction

# Balances are exact: any result that would round or overflow is trapped
EXACT_CONTEXT = Context(prec=28, traps=[InvalidOperation, DivisionByZero, Overflow, Inexact])


def _exact(
    client_id: int,
    amount: Decimal,
    op: Callable[[Decimal, Decimal], Decimal],
    left: Decimal,
    right: Decimal
) -> Decimal:
    try:
        with localcontext(EXACT_CONTEXT):
            return op(left, right)
    except DecimalException as e:
        raise AmountOutOfRange(client_id, amount) from e


class AccountRepository(ABC):
    @abstractmethod
    def deposit(self, client_id: int, amount: Decimal) -> None:
        """Credit available funds, creating the account if needed."""
        pass

    @abstractmethod
    def withdraw(self, client_id: int, amount: Decimal) -> None:
        """Debit available funds."""
        pass

    @abstractmethod
    def hold(self, client_id: int, amount: Decimal) -> None:
        """Move funds from available to held."""
        pass

    @abstractmethod
    def release(self, client_id: int, amount: Decimal) -> None:
        """Move funds from held back to available."""
        pass

    @abstractmethod
    def chargeback(self, client_id: int, amount: Decimal) -> None:
        """Remove held funds and lock the account."""
        pass

    @abstractmethod
    def restore(self, client_id: int, account: Optional[Account]) -> None:
        """Put back an earlier copy of an account; None removes it."""
        pass

    @abstractmethod
    def get(self, client_id: int) -> Optional[Account]:
        """Get account. Returns None if account doesn't exist."""
        pass

    @abstractmethod
    def all(self) -> Mapping[int, Account]:
        """Get every account keyed by client id."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Get total number of accounts."""
        pass


class TransactionRepository(ABC):
    @abstractmethod
    def insert_new(self, transaction_id: int, transaction: LedgerTransaction) -> None:
        """Store a new transaction. Ids are never reused."""
        pass

    @abstractmethod
    def get_mut(self, transaction_id: int, client_id: int) -> LedgerTransaction:
        """Get a stored transaction owned by client_id, for dispute-state updates."""
        pass

    @abstractmethod
    def exists(self, transaction_id: int) -> bool:
        """Check if a transaction id has been used."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Get total number of stored transactions."""
        pass


class InMemoryAccountRepository(AccountRepository):
    """
    Accounts keyed by client id.

    Every check runs before any field is touched, so a failed operation
    leaves the account as it was. The one exception is chargeback, which
    locks the account even when the held check fails.
    """

    def __init__(self):
        self.accounts: Dict[int, Account] = {}

    def deposit(self, client_id: int, amount: Decimal) -> None:
        account = self.accounts.get(client_id)
        if account is not None and account.locked:
            raise ClientLocked(client_id)
        current = account.available if account is not None else Decimal("0")
        new_available = _exact(client_id, amount, operator.add, current, amount)
        if account is None:
            account = self.accounts[client_id] = Account()
        account.available = new_available

    def withdraw(self, client_id: int, amount: Decimal) -> None:
        account = self._get_unlocked(client_id)
        new_available = _exact(client_id, amount, operator.sub, account.available, amount)
        if new_available < 0:
            raise InsufficientAvailable(client_id, amount, account.available)
        account.available = new_available

    def hold(self, client_id: int, amount: Decimal) -> None:
        account = self._get_unlocked(client_id)
        new_available = _exact(client_id, amount, operator.sub, account.available, amount)
        if new_available < 0:
            raise InsufficientAvailable(client_id, amount, account.available)
        new_held = _exact(client_id, amount, operator.add, account.held, amount)
        account.available = new_available
        account.held = new_held

    def release(self, client_id: int, amount: Decimal) -> None:
        account = self._get_unlocked(client_id)
        new_held = _exact(client_id, amount, operator.sub, account.held, amount)
        if new_held < 0:
            raise InsufficientHeld(client_id, amount, account.held)
        new_available = _exact(client_id, amount, operator.add, account.available, amount)
        account.held = new_held
        account.available = new_available

    def chargeback(self, client_id: int, amount: Decimal) -> None:
        account = self._get_unlocked(client_id)
        account.locked = True
        new_held = _exact(client_id, amount, operator.sub, account.held, amount)
        if new_held < 0:
            raise InsufficientHeld(client_id, amount, account.held)
        account.held = new_held

    def restore(self, client_id: int, account: Optional[Account]) -> None:
        if account is None:
            self.accounts.pop(client_id, None)
        else:
            self.accounts[client_id] = account

    def get(self, client_id: int) -> Optional[Account]:
        return self.accounts.get(client_id)

    def all(self) -> Mapping[int, Account]:
        return dict(self.accounts)

    def count(self) -> int:
        return len(self.accounts)

    def _get_unlocked(self, client_id: int) -> Account:
        account = self.accounts.get(client_id)
        if account is None:
            raise ClientNotFound(client_id)
        if account.locked:
            raise ClientLocked(client_id)
        return account


class InMemoryTransactionRepository(TransactionRepository):
    def __init__(self):
        self.transactions: Dict[int, LedgerTransaction] = {}

    def insert_new(self, transaction_id: int, transaction: LedgerTransaction) -> None:
        if transaction_id in self.transactions:
            raise DuplicateTransactionId(transaction_id)
        self.transactions[transaction_id] = transaction

    def get_mut(self, transaction_id: int, client_id: int) -> LedgerTransaction:
        transaction = self.transactions.get(transaction_id)
        if transaction is None:
            raise TransactionNotFound(transaction_id)
        if transaction.client_id != client_id:
            raise WrongClientForTransaction(transaction_id, client_id)
        return transaction

    def exists(self, transaction_id: int) -> bool:
        return transaction_id in self.transactions

    def count(self) -> int:
        return len(self.transactions)
