from typing import Optional


class LedgerError(Exception):
    """Base class for all ledger errors."""


class DuplicateTransactionError(LedgerError):
    """A deposit or withdrawal reused a transaction id. Aborts the run."""

    def __init__(self, tx: int):
        self.tx = tx
        super().__init__(f"duplicate transaction id {tx}")


class EventRejected(LedgerError):
    """An event that is dropped without interrupting the stream."""

    reason = "rejected"

    def __init__(self, message: str, tx: Optional[int] = None):
        self.tx = tx
        super().__init__(message)


class InsufficientFundsError(EventRejected):
    reason = "insufficient_funds"


class TransactionNotFoundError(EventRejected):
    reason = "tx_not_found"


class IneligibleTransactionError(EventRejected):
    reason = "tx_not_a_deposit"


class InsufficientHeldFundsError(EventRejected):
    reason = "insufficient_held_funds"


class MalformedRecordError(LedgerError):
    """A source record that could not be parsed into an event."""

    def __init__(self, line: int, detail: str):
        self.line = line
        self.detail = detail
        super().__init__(f"line {line}: malformed record: {detail}")
