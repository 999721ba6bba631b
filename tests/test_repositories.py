import pytest
from decimal import Decimal

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
from models import Account, LedgerTransaction, TransactionKind
from repositories import InMemoryAccountRepository, InMemoryTransactionRepository


@pytest.fixture
def accounts():
    """Store seeded with an open, a low-balance and a locked client."""
    repo = InMemoryAccountRepository()
    repo.accounts[94] = Account(available=Decimal("95.6"), held=Decimal("131.33"))
    repo.accounts[95] = Account(available=Decimal("12"), held=Decimal("31"))
    repo.accounts[96] = Account(available=Decimal("100"), held=Decimal("11"), locked=True)
    return repo


class TestDeposit:
    """Test crediting available funds."""

    def test_deposit_creates_account(self):
        repo = InMemoryAccountRepository()
        assert repo.count() == 0

        repo.deposit(123, Decimal("222.12"))

        account = repo.get(123)
        assert repo.count() == 1
        assert account.available == Decimal("222.12")
        assert account.held == Decimal("0")
        assert account.locked is False

    def test_deposit_updates_existing_account(self):
        repo = InMemoryAccountRepository()
        repo.deposit(123, Decimal("222.12"))
        repo.deposit(123, Decimal("95"))
        repo.deposit(321, Decimal("0.22"))

        assert repo.count() == 2
        assert repo.get(123).available == Decimal("317.12")
        assert repo.get(321).available == Decimal("0.22")

    def test_deposit_to_locked_account(self, accounts):
        with pytest.raises(ClientLocked) as exc_info:
            accounts.deposit(96, Decimal("1"))

        assert exc_info.value.client_id == 96
        assert accounts.get(96).available == Decimal("100")

    def test_deposit_that_would_round_is_rejected(self):
        repo = InMemoryAccountRepository()
        repo.deposit(1, Decimal("1E+20"))

        with pytest.raises(AmountOutOfRange) as exc_info:
            repo.deposit(1, Decimal("0.000000000001"))

        assert exc_info.value.amount == Decimal("0.000000000001")
        assert repo.get(1).available == Decimal("1E+20")

    def test_deposit_that_would_overflow_is_rejected(self):
        repo = InMemoryAccountRepository()
        repo.deposit(1, Decimal("9E+999999"))

        with pytest.raises(AmountOutOfRange):
            repo.deposit(1, Decimal("9E+999999"))

        assert repo.get(1).available == Decimal("9E+999999")

    def test_rejected_first_deposit_creates_no_account(self):
        repo = InMemoryAccountRepository()

        with pytest.raises(AmountOutOfRange):
            repo.deposit(1, Decimal("1234567890123456789012345678901"))

        assert repo.get(1) is None
        assert repo.count() == 0


class TestWithdraw:
    """Test debiting available funds."""

    def test_withdraw_success(self, accounts):
        accounts.withdraw(94, Decimal("0.6"))

        assert accounts.get(94).available == Decimal("95.0")
        assert accounts.get(95).available == Decimal("12")

    def test_withdraw_more_than_available(self, accounts):
        with pytest.raises(InsufficientAvailable) as exc_info:
            accounts.withdraw(95, Decimal("12.01"))

        assert exc_info.value.amount == Decimal("12.01")
        assert exc_info.value.available == Decimal("12")
        assert accounts.get(95).available == Decimal("12")

    def test_withdraw_entire_balance(self, accounts):
        accounts.withdraw(95, Decimal("12"))
        assert accounts.get(95).available == Decimal("0")

    def test_withdraw_from_locked_account(self, accounts):
        with pytest.raises(ClientLocked):
            accounts.withdraw(96, Decimal("1"))
        assert accounts.get(96).available == Decimal("100")

    def test_withdraw_from_unknown_account(self, accounts):
        with pytest.raises(ClientNotFound) as exc_info:
            accounts.withdraw(114, Decimal("1"))

        assert exc_info.value.client_id == 114
        assert accounts.get(114) is None


class TestHoldAndRelease:
    """Test moving funds between available and held."""

    def test_hold_moves_funds(self, accounts):
        accounts.hold(94, Decimal("30"))

        assert accounts.get(94).available == Decimal("65.6")
        assert accounts.get(94).held == Decimal("161.33")

    def test_hold_more_than_available(self, accounts):
        with pytest.raises(InsufficientAvailable):
            accounts.hold(95, Decimal("12.01"))

        assert accounts.get(95).available == Decimal("12")
        assert accounts.get(95).held == Decimal("31")

    def test_hold_on_locked_account(self, accounts):
        with pytest.raises(ClientLocked):
            accounts.hold(96, Decimal("1"))
        assert accounts.get(96).held == Decimal("11")

    def test_release_moves_funds_back(self, accounts):
        accounts.release(94, Decimal("30"))

        assert accounts.get(94).available == Decimal("125.6")
        assert accounts.get(94).held == Decimal("101.33")

    def test_release_more_than_held(self, accounts):
        with pytest.raises(InsufficientHeld) as exc_info:
            accounts.release(95, Decimal("31.01"))

        assert exc_info.value.held == Decimal("31")
        assert accounts.get(95).available == Decimal("12")
        assert accounts.get(95).held == Decimal("31")

    def test_release_on_unknown_account(self, accounts):
        with pytest.raises(ClientNotFound):
            accounts.release(1, Decimal("1"))


class TestChargeback:
    """Test removing held funds and locking."""

    def test_chargeback_removes_held_and_locks(self, accounts):
        accounts.chargeback(94, Decimal("100"))

        account = accounts.get(94)
        assert account.available == Decimal("95.6")
        assert account.held == Decimal("31.33")
        assert account.locked is True

    def test_failed_chargeback_still_locks(self, accounts):
        with pytest.raises(InsufficientHeld):
            accounts.chargeback(95, Decimal("31.01"))

        account = accounts.get(95)
        assert account.available == Decimal("12")
        assert account.held == Decimal("31")
        assert account.locked is True

    def test_chargeback_on_locked_account(self, accounts):
        with pytest.raises(ClientLocked):
            accounts.chargeback(96, Decimal("1"))

        assert accounts.get(96).held == Decimal("11")
        assert accounts.get(96).locked is True


class TestRestore:
    """Test putting back an earlier copy of an account."""

    def test_restore_replaces_account(self, accounts):
        previous = accounts.get(94).model_copy()
        accounts.withdraw(94, Decimal("50"))

        accounts.restore(94, previous)

        assert accounts.get(94).available == Decimal("95.6")
        assert accounts.get(94).held == Decimal("131.33")

    def test_restore_none_removes_account(self, accounts):
        accounts.deposit(7, Decimal("1"))

        accounts.restore(7, None)

        assert accounts.get(7) is None
        assert accounts.count() == 3


class TestTransactionRepository:
    """Test the transaction log."""

    def test_insert_new(self):
        repo = InMemoryTransactionRepository()
        repo.insert_new(445, LedgerTransaction(
            kind=TransactionKind.deposit, client_id=12, amount=Decimal("45")
        ))

        assert repo.count() == 1
        assert repo.exists(445)
        assert not repo.exists(446)

    def test_duplicate_insert_keeps_original(self):
        repo = InMemoryTransactionRepository()
        repo.insert_new(445, LedgerTransaction(
            kind=TransactionKind.deposit, client_id=12, amount=Decimal("45")
        ))

        with pytest.raises(DuplicateTransactionId):
            repo.insert_new(445, LedgerTransaction(
                kind=TransactionKind.withdrawal, client_id=13, amount=Decimal("1")
            ))

        stored = repo.get_mut(445, 12)
        assert stored.kind == TransactionKind.deposit
        assert stored.amount == Decimal("45")

    def test_get_mut_returns_stored_transaction(self):
        repo = InMemoryTransactionRepository()
        repo.insert_new(445, LedgerTransaction(
            kind=TransactionKind.withdrawal, client_id=12, amount=Decimal("12")
        ))

        transaction = repo.get_mut(445, 12)
        transaction.disputed = True

        assert repo.get_mut(445, 12).disputed is True

    def test_get_mut_unknown_transaction(self):
        repo = InMemoryTransactionRepository()

        with pytest.raises(TransactionNotFound) as exc_info:
            repo.get_mut(446, 12)
        assert exc_info.value.transaction_id == 446

    def test_get_mut_wrong_client(self):
        repo = InMemoryTransactionRepository()
        repo.insert_new(445, LedgerTransaction(
            kind=TransactionKind.deposit, client_id=12, amount=Decimal("12")
        ))

        with pytest.raises(WrongClientForTransaction) as exc_info:
            repo.get_mut(445, 13)
        assert exc_info.value.client_id == 13
