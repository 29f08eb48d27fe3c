from collections import Counter
from decimal import Decimal, localcontext
from typing import Iterable, List, Optional
import structlog

from exceptions import (
    DuplicateTransactionError,
    EventRejected,
    IneligibleTransactionError,
    InsufficientFundsError,
    InsufficientHeldFundsError,
    TransactionNotFoundError,
)
from models import (
    Account,
    Chargeback,
    Deposit,
    Dispute,
    Event,
    LEDGER_CONTEXT,
    Resolve,
    TransactionKind,
    TransactionRecord,
    Withdrawal,
)
from repositories import (
    AccountRepository,
    InMemoryAccountRepository,
    InMemoryTransactionRepository,
    TransactionRepository,
)

logger = structlog.get_logger()


class LedgerService:
    """Replays ledger events against per-client accounts.

    Events are applied one at a time in arrival order. A duplicate
    transaction id on a deposit or withdrawal raises
    DuplicateTransactionError; every other rejection drops the event,
    logs a warning and leaves all state untouched.
    """

    def __init__(self, account_repo: AccountRepository, transaction_repo: TransactionRepository):
        self.account_repo = account_repo
        self.transaction_repo = transaction_repo
        self.stats: Counter = Counter()
        self._handlers = {
            Deposit: self._process_deposit,
            Withdrawal: self._process_withdrawal,
            Dispute: self._process_dispute,
            Resolve: self._process_resolve,
            Chargeback: self._process_chargeback,
        }

    def apply(self, event: Event) -> bool:
        """Apply a single event. Returns False if the event was ignored."""
        account = self.account_repo.get_or_create(event.client)
        handler = self._handlers[type(event)]

        try:
            with localcontext(LEDGER_CONTEXT):
                handler(account, event)
        except EventRejected as e:
            self.stats["ignored"] += 1
            self.stats[f"ignored.{e.reason}"] += 1
            logger.warning(
                "Event ignored",
                type=event.type,
                client=event.client,
                tx=event.tx,
                reason=e.reason,
                detail=str(e)
            )
            return False

        self.stats["applied"] += 1
        self.stats[f"applied.{event.type}"] += 1
        logger.debug(
            "Event applied",
            type=event.type,
            client=event.client,
            tx=event.tx,
            available=str(account.available),
            held=str(account.held)
        )
        return True

    def process(self, events: Iterable[Event]) -> List[Account]:
        """Apply every event from a lazy sequence and return the final snapshot."""
        for event in events:
            self.apply(event)

        logger.info(
            "Ledger replay completed",
            accounts=self.account_repo.count(),
            transactions=self.transaction_repo.count(),
            applied=self.stats["applied"],
            ignored=self.stats["ignored"]
        )
        return self.snapshot()

    def snapshot(self) -> List[Account]:
        return self.account_repo.all()

    def _process_deposit(self, account: Account, event: Deposit) -> None:
        """Process deposit event."""
        self._ensure_unused(event)
        self.transaction_repo.add(TransactionRecord(
            id=event.tx, client=event.client, amount=event.amount, kind=TransactionKind.deposit
        ))
        account.available += event.amount

    def _process_withdrawal(self, account: Account, event: Withdrawal) -> None:
        """Process withdrawal event."""
        self._ensure_unused(event)

        if account.available < event.amount:
            raise InsufficientFundsError(
                f"cannot withdraw {event.amount}, only {account.available} available", event.tx
            )

        self.transaction_repo.add(TransactionRecord(
            id=event.tx, client=event.client, amount=event.amount, kind=TransactionKind.withdrawal
        ))
        account.available -= event.amount

    def _process_dispute(self, account: Account, event: Dispute) -> None:
        """Process dispute event."""
        # may push available below zero when the deposit was already spent
        amount = self._disputable_amount(event)
        account.available -= amount
        account.held += amount

    def _process_resolve(self, account: Account, event: Resolve) -> None:
        """Process resolve event."""
        amount = self._disputable_amount(event)
        self._ensure_held(account, amount, event)
        account.held -= amount
        account.available += amount

    def _process_chargeback(self, account: Account, event: Chargeback) -> None:
        """Process chargeback event."""
        amount = self._disputable_amount(event)
        self._ensure_held(account, amount, event)
        account.held -= amount
        account.locked = True

    def _ensure_unused(self, event: Event) -> None:
        """Reject a reused deposit or withdrawal id."""
        if self.transaction_repo.exists(event.tx):
            raise DuplicateTransactionError(event.tx)

    def _disputable_amount(self, event: Event) -> Decimal:
        """Look up the deposit amount a dispute, resolve or chargeback refers to."""
        record: Optional[TransactionRecord] = self.transaction_repo.get(event.tx)
        if record is None:
            raise TransactionNotFoundError(f"no such tx {event.tx}", event.tx)
        if record.kind != TransactionKind.deposit:
            raise IneligibleTransactionError(f"cannot {event.type} a withdrawal", event.tx)
        return record.amount

    @staticmethod
    def _ensure_held(account: Account, amount: Decimal, event: Event) -> None:
        """Reject a resolve or chargeback that would make held funds negative."""
        if account.held < amount:
            raise InsufficientHeldFundsError(
                f"cannot {event.type} {amount}, only {account.held} held", event.tx
            )


# Factory function for dependency injection
def get_ledger_service(
    account_repo: Optional[AccountRepository] = None,
    transaction_repo: Optional[TransactionRepository] = None
) -> LedgerService:
    return LedgerService(
        account_repo if account_repo is not None else InMemoryAccountRepository(),
        transaction_repo if transaction_repo is not None else InMemoryTransactionRepository(),
    )
