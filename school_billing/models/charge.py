"""Charges: registration fee and monthly installments, with cached late fees."""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from beanie import DecimalAnnotation, Document, Indexed
from pydantic import BaseModel, Field


class ChargeStatus(str, Enum):
    OPEN = "open"
    PAID = "paid"
    REFUNDED = "refunded"
    CHARGED_BACK = "charged_back"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ChargeStatus.OPEN


# OPEN is the only state with outgoing transitions.
CHARGE_TRANSITIONS: dict[ChargeStatus, frozenset[ChargeStatus]] = {
    ChargeStatus.OPEN: frozenset(
        {ChargeStatus.PAID, ChargeStatus.REFUNDED, ChargeStatus.CHARGED_BACK, ChargeStatus.CANCELLED}
    ),
    ChargeStatus.PAID: frozenset(),
    ChargeStatus.REFUNDED: frozenset(),
    ChargeStatus.CHARGED_BACK: frozenset(),
    ChargeStatus.CANCELLED: frozenset(),
}


class ChargeKind(str, Enum):
    REGISTRATION = "registration"
    INSTALLMENT = "installment"
    OTHER = "other"


class Charge(Document):
    """Charge document. base_amount is fixed at creation; penalty fields are a cache."""

    enrollment_id: Indexed(str)
    kind: ChargeKind = ChargeKind.OTHER
    installment_number: Optional[int] = None
    base_amount: DecimalAnnotation
    due_date: date
    description: str = ""
    status: ChargeStatus = ChargeStatus.OPEN

    days_late: int = 0
    penalty_monthly: DecimalAnnotation = Decimal("0.00")
    penalty_daily: DecimalAnnotation = Decimal("0.00")

    paid_amount: Optional[DecimalAnnotation] = None
    paid_date: Optional[date] = None
    amount_due_at_payment: Optional[DecimalAnnotation] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "charges"
        use_state_management = True


class ChargeCreate(BaseModel):
    enrollment_id: str
    base_amount: Decimal
    due_date: date
    description: Optional[str] = None
    kind: ChargeKind = ChargeKind.OTHER
    allow_same_month: bool = False


class ChargePayBody(BaseModel):
    paid_amount: Decimal
    paid_date: date


class ChargeStatusBody(BaseModel):
    status: ChargeStatus


class ChargeOut(BaseModel):
    id: str
    enrollment_id: str
    kind: ChargeKind
    installment_number: Optional[int] = None
    description: str
    base_amount: Decimal
    due_date: date
    status: ChargeStatus
    days_late: int
    penalty_monthly: Decimal
    penalty_daily: Decimal
    total_due: Decimal
    paid_amount: Optional[Decimal] = None
    paid_date: Optional[date] = None
    amount_due_at_payment: Optional[Decimal] = None


class ChargeStatement(BaseModel):
    """Totals over a set of charges, as shown on a student's statement."""

    open_count: int = 0
    overdue_count: int = 0
    open_base: Decimal = Decimal("0.00")
    open_penalties: Decimal = Decimal("0.00")
    total_outstanding: Decimal = Decimal("0.00")
    total_paid: Decimal = Decimal("0.00")
