from decimal import Decimal
from typing import Mapping, Optional
import structlog

from errors import (
    AlreadyDisputed,
    DuplicateTransactionId,
    InternalConsistencyError,
    LedgerError,
    MissingAmount,
    NotADeposit,
    NotDisputed,
)
from models import Account, LedgerTransaction, TransactionKind, TransactionRecord, TransactionType
from repositories import (
    AccountRepository,
    InMemoryAccountRepository,
    InMemoryTransactionRepository,
    TransactionRepository,
)

logger = structlog.get_logger()


class LedgerEngine:
    """
    Applies decoded records to the account store and transaction log.

    Records must be applied one at a time in input order. A rejected
    record raises a LedgerError and leaves both stores as they were,
    except that a failed chargeback still locks the account.
    """

    def __init__(
        self,
        account_repo: Optional[AccountRepository] = None,
        transaction_repo: Optional[TransactionRepository] = None
    ):
        self.account_repo = account_repo if account_repo is not None else InMemoryAccountRepository()
        self.transaction_repo = (
            transaction_repo if transaction_repo is not None else InMemoryTransactionRepository()
        )
        self._handlers = {
            TransactionType.deposit: self._process_deposit,
            TransactionType.withdrawal: self._process_withdrawal,
            TransactionType.dispute: self._process_dispute,
            TransactionType.resolve: self._process_resolve,
            TransactionType.chargeback: self._process_chargeback,
        }

    def apply(self, record: TransactionRecord) -> None:
        """Apply one record, raising a LedgerError if it is rejected."""
        try:
            self._handlers[record.transaction_type](record)
        except LedgerError as e:
            logger.info(
                "Record rejected",
                type=record.transaction_type.value,
                client_id=record.client_id,
                transaction_id=record.transaction_id,
                error_code=e.error_code,
                error=e.message
            )
            raise

        logger.debug(
            "Record applied",
            type=record.transaction_type.value,
            client_id=record.client_id,
            transaction_id=record.transaction_id,
            amount=str(record.amount) if record.amount is not None else None
        )

    def get_accounts(self) -> Mapping[int, Account]:
        return self.account_repo.all()

    def get_account(self, client_id: int) -> Optional[Account]:
        return self.account_repo.get(client_id)

    def _process_deposit(self, record: TransactionRecord) -> None:
        amount = self._require_amount(record)
        self._ensure_new_id(record.transaction_id)
        previous = self._copy_account(record.client_id)
        self.account_repo.deposit(record.client_id, amount)
        self._record_new(record, TransactionKind.deposit, amount, previous)

    def _process_withdrawal(self, record: TransactionRecord) -> None:
        amount = self._require_amount(record)
        self._ensure_new_id(record.transaction_id)
        previous = self._copy_account(record.client_id)
        self.account_repo.withdraw(record.client_id, amount)
        self._record_new(record, TransactionKind.withdrawal, amount, previous)

    def _process_dispute(self, record: TransactionRecord) -> None:
        transaction = self.transaction_repo.get_mut(record.transaction_id, record.client_id)

        if transaction.kind != TransactionKind.deposit:
            raise NotADeposit(record.transaction_id)
        if transaction.disputed:
            raise AlreadyDisputed(record.transaction_id)

        self.account_repo.hold(record.client_id, transaction.amount)
        transaction.disputed = True

    def _process_resolve(self, record: TransactionRecord) -> None:
        transaction = self.transaction_repo.get_mut(record.transaction_id, record.client_id)

        if not transaction.disputed:
            raise NotDisputed("resolved", record.transaction_id)

        self.account_repo.release(record.client_id, transaction.amount)
        transaction.disputed = False

    def _process_chargeback(self, record: TransactionRecord) -> None:
        transaction = self.transaction_repo.get_mut(record.transaction_id, record.client_id)

        if not transaction.disputed:
            raise NotDisputed("charged back", record.transaction_id)

        self.account_repo.chargeback(record.client_id, transaction.amount)
        # Settled: the owning account is locked from here on
        transaction.disputed = False

    def _require_amount(self, record: TransactionRecord) -> Decimal:
        if record.amount is None:
            raise MissingAmount(record.transaction_type.value, record.transaction_id)
        return record.amount

    def _ensure_new_id(self, transaction_id: int) -> None:
        if self.transaction_repo.exists(transaction_id):
            raise DuplicateTransactionId(transaction_id)

    def _copy_account(self, client_id: int) -> Optional[Account]:
        account = self.account_repo.get(client_id)
        return account.model_copy() if account is not None else None

    def _record_new(
        self,
        record: TransactionRecord,
        kind: TransactionKind,
        amount: Decimal,
        previous: Optional[Account]
    ) -> None:
        # Balance already moved, so a clash here means the id check above was bypassed
        try:
            self.transaction_repo.insert_new(
                record.transaction_id,
                LedgerTransaction(kind=kind, client_id=record.client_id, amount=amount)
            )
        except DuplicateTransactionId as e:
            logger.error(
                "Transaction log rejected an id that passed the uniqueness check",
                transaction_id=record.transaction_id,
                client_id=record.client_id
            )
            self.account_repo.restore(record.client_id, previous)
            raise InternalConsistencyError(
                f"transaction {record.transaction_id} could not be recorded and was rolled back",
                {"transaction_id": record.transaction_id, "client_id": record.client_id},
            ) from e


# Singleton instance for the HTTP service
_engine = LedgerEngine()


def get_ledger_engine() -> LedgerEngine:
    return _engine


def reset_ledger_engine() -> None:
    """Replace the service ledger with an empty one (for testing only)."""
    global _engine
    _engine = LedgerEngine()
