"""
Ledger error hierarchy.

Every rejection raised by the engine inherits from LedgerError, so callers
can report it and move on to the next record.
"""

from decimal import Decimal
from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger errors"""

    error_code = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        return self.message


class RowDecodeError(LedgerError):
    """Raised when an input row cannot be decoded into a record"""

    error_code = "ROW_DECODE_FAILURE"
    status_code = 422

    def __init__(self, reason: str):
        super().__init__(f"row decode failure: {reason}", {"reason": reason})


class OutputWriteError(LedgerError):
    """Raised when the account snapshot cannot be written"""

    error_code = "OUTPUT_WRITE_FAILURE"
    status_code = 500

    def __init__(self, reason: str):
        super().__init__(f"output write failure: {reason}", {"reason": reason})


class MissingAmount(LedgerError):
    error_code = "MISSING_AMOUNT"

    def __init__(self, kind: str, transaction_id: int):
        super().__init__(
            f"{kind} transaction {transaction_id} missing amount field",
            {"kind": kind, "transaction_id": transaction_id},
        )
        self.transaction_id = transaction_id


class DuplicateTransactionId(LedgerError):
    error_code = "DUPLICATE_TRANSACTION_ID"
    status_code = 409

    def __init__(self, transaction_id: int):
        super().__init__(
            f"transaction {transaction_id} already exists",
            {"transaction_id": transaction_id},
        )
        self.transaction_id = transaction_id


class ClientLocked(LedgerError):
    error_code = "CLIENT_LOCKED"
    status_code = 409

    def __init__(self, client_id: int):
        super().__init__(f"client {client_id} is locked", {"client_id": client_id})
        self.client_id = client_id


class ClientNotFound(LedgerError):
    error_code = "CLIENT_NOT_FOUND"
    status_code = 404

    def __init__(self, client_id: int):
        super().__init__(f"client {client_id} does not exist", {"client_id": client_id})
        self.client_id = client_id


class InsufficientAvailable(LedgerError):
    """Withdrawal or dispute hold larger than the available funds."""

    error_code = "INSUFFICIENT_AVAILABLE"
    status_code = 409

    def __init__(self, client_id: int, amount: Decimal, available: Decimal):
        super().__init__(
            f"client {client_id} cannot move {amount} as available amount is {available}",
            {"client_id": client_id, "amount": str(amount), "available": str(available)},
        )
        self.client_id = client_id
        self.amount = amount
        self.available = available


class InsufficientHeld(LedgerError):
    """Resolve or chargeback larger than the held funds."""

    error_code = "INSUFFICIENT_HELD"
    status_code = 409

    def __init__(self, client_id: int, amount: Decimal, held: Decimal):
        super().__init__(
            f"client {client_id} cannot release {amount} as held amount is {held}",
            {"client_id": client_id, "amount": str(amount), "held": str(held)},
        )
        self.client_id = client_id
        self.amount = amount
        self.held = held


class AmountOutOfRange(LedgerError):
    """A balance change whose result cannot be held exactly."""

    error_code = "AMOUNT_OUT_OF_RANGE"
    status_code = 422

    def __init__(self, client_id: int, amount: Decimal):
        super().__init__(
            f"client {client_id} cannot apply {amount} as the resulting balance is not exact",
            {"client_id": client_id, "amount": str(amount)},
        )
        self.client_id = client_id
        self.amount = amount


class TransactionNotFound(LedgerError):
    error_code = "TRANSACTION_NOT_FOUND"
    status_code = 404

    def __init__(self, transaction_id: int):
        super().__init__(
            f"transaction {transaction_id} does not exist",
            {"transaction_id": transaction_id},
        )
        self.transaction_id = transaction_id


class WrongClientForTransaction(LedgerError):
    error_code = "WRONG_CLIENT_FOR_TRANSACTION"
    status_code = 409

    def __init__(self, transaction_id: int, client_id: int):
        super().__init__(
            f"transaction {transaction_id} is not for client {client_id}",
            {"transaction_id": transaction_id, "client_id": client_id},
        )
        self.transaction_id = transaction_id
        self.client_id = client_id


class NotADeposit(LedgerError):
    error_code = "NOT_A_DEPOSIT"
    status_code = 409

    def __init__(self, transaction_id: int):
        super().__init__(
            f"transaction {transaction_id} cannot be disputed as it is not a deposit",
            {"transaction_id": transaction_id},
        )
        self.transaction_id = transaction_id


class AlreadyDisputed(LedgerError):
    error_code = "ALREADY_DISPUTED"
    status_code = 409

    def __init__(self, transaction_id: int):
        super().__init__(
            f"transaction {transaction_id} is already in dispute",
            {"transaction_id": transaction_id},
        )
        self.transaction_id = transaction_id


class NotDisputed(LedgerError):
    error_code = "NOT_DISPUTED"
    status_code = 409

    def __init__(self, action: str, transaction_id: int):
        super().__init__(
            f"transaction {transaction_id} cannot be {action} as it is not in dispute",
            {"action": action, "transaction_id": transaction_id},
        )
        self.transaction_id = transaction_id


class InternalConsistencyError(LedgerError):
    """Raised when the stores disagree in a way earlier checks should have prevented"""

    error_code = "INTERNAL_CONSISTENCY"
    status_code = 500
