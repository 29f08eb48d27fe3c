from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, computed_field, field_validator
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Union
from decimal import Context, Decimal, DivisionByZero, InvalidOperation, Overflow, localcontext


AMOUNT_QUANTUM = Decimal("0.0001")
MAX_CLIENT_ID = 65535
MAX_TX_ID = 4294967295
MAX_AMOUNT = Decimal("1e28")

# wide enough that 2**32 maximal amounts still sum exactly
LEDGER_CONTEXT = Context(prec=64, traps=[InvalidOperation, DivisionByZero, Overflow])


class TransactionKind(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    client: int = Field(..., ge=0, le=MAX_CLIENT_ID, description="Client identifier")
    tx: int = Field(..., ge=0, le=MAX_TX_ID, description="Transaction identifier")


class _AmountEvent(_Event):
    amount: Decimal = Field(..., ge=0, lt=MAX_AMOUNT, description="Transaction amount, up to 4 decimal places")

    @field_validator('amount')
    @classmethod
    def validate_precision(cls, v):
        with localcontext(LEDGER_CONTEXT):
            exact = v.quantize(AMOUNT_QUANTUM) == v
        if not exact:
            raise ValueError('Amount must have at most 4 decimal places')
        return v


class Deposit(_AmountEvent):
    type: Literal["deposit"] = "deposit"


class Withdrawal(_AmountEvent):
    type: Literal["withdrawal"] = "withdrawal"


class Dispute(_Event):
    type: Literal["dispute"] = "dispute"


class Resolve(_Event):
    type: Literal["resolve"] = "resolve"


class Chargeback(_Event):
    type: Literal["chargeback"] = "chargeback"


Event = Annotated[
    Union[Deposit, Withdrawal, Dispute, Resolve, Chargeback],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(Event)


def parse_event(raw: Mapping[str, Any]) -> Event:
    """Validate a raw field mapping into one of the five event models.

    Raises pydantic.ValidationError when the mapping does not describe a
    well-formed event.
    """
    return _event_adapter.validate_python(dict(raw))


class TransactionRecord(BaseModel):
    """A deposit or withdrawal kept for later dispute lookups."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, le=MAX_TX_ID)
    client: int = Field(..., ge=0, le=MAX_CLIENT_ID)
    amount: Decimal = Field(..., ge=0)
    kind: TransactionKind


class Account(BaseModel):
    client: int = Field(..., ge=0, le=MAX_CLIENT_ID)
    available: Decimal = Field(default=Decimal(0), description="Funds usable for withdrawal")
    held: Decimal = Field(default=Decimal(0), description="Funds frozen by disputes")
    locked: bool = Field(default=False, description="Set by a chargeback, never reset")

    @computed_field
    @property
    def total(self) -> Decimal:
        with localcontext(LEDGER_CONTEXT):
            return self.available + self.held


def format_amount(value: Decimal) -> str:
    return format(value, ".4f")


class AccountSnapshot(BaseModel):
    """One output row of the final account report."""
    model_config = ConfigDict(frozen=True)

    client: int
    available: str
    held: str
    total: str
    locked: Literal["true", "false"]

    @classmethod
    def from_account(cls, account: Account) -> "AccountSnapshot":
        return cls(
            client=account.client,
            available=format_amount(account.available),
            held=format_amount(account.held),
            total=format_amount(account.total),
            locked="true" if account.locked else "false",
        )
