"""
Business-rule errors raised by the ledger services.

The transport layer maps each kind to a status code; anything that is not a
LedgerError is an internal failure and is never shown verbatim to users.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError


class LedgerError(Exception):
    kind = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(LedgerError):
    """Entity absent, or owned by another tenant."""

    kind = "NOT_FOUND"
    status_code = 404


class InvalidArgument(LedgerError):
    kind = "INVALID_ARGUMENT"
    status_code = 400


class InvalidState(LedgerError):
    """Operation not permitted in the entity's current lifecycle status."""

    kind = "INVALID_STATE"
    status_code = 409


class DuplicateBatch(LedgerError):
    kind = "DUPLICATE_BATCH"
    status_code = 409

    def __init__(self, batch_number: str):
        self.batch_number = batch_number
        super().__init__(f"A batch numbered {batch_number} already exists")


class InsufficientStock(LedgerError):
    kind = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, requested: Decimal, available: Decimal):
        self.requested = requested
        self.available = available
        self.short = requested - available
        super().__init__(
            f"Insufficient stock: requested {requested}, available {available}, short {self.short}"
        )


class ExceedsBalance(LedgerError):
    kind = "EXCEEDS_BALANCE"
    status_code = 400

    def __init__(self, amount: Decimal, balance: Decimal):
        self.amount = amount
        self.balance = balance
        super().__init__(f"Payment amount {amount} exceeds outstanding balance {balance}")


class AlreadyPaid(LedgerError):
    kind = "ALREADY_PAID"
    status_code = 409


class Conflict(LedgerError):
    """Unique-key collision (order number, sku, duplicate order line...)."""

    kind = "CONFLICT"
    status_code = 409


def violates_unique(exc: IntegrityError, constraint: str, *columns: str) -> bool:
    """
    True when `exc` comes from the unique constraint `constraint`.

    Postgres reports the constraint name; SQLite only lists the
    "table.column" pairs it covers, so those are matched as a fallback.
    """
    diag = getattr(exc.orig, "diag", None)
    name = getattr(diag, "constraint_name", None)
    if name:
        return name == constraint

    message = str(exc.orig)
    if constraint in message:
        return True
    return bool(columns) and f"UNIQUE constraint failed: {', '.join(columns)}" in message
