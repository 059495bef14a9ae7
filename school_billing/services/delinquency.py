"""Late-payment penalties as a pure function of elapsed time.

Two components are charged on an OPEN charge past its due date:

* the monthly penalty, a step function: ``base * block_rate * blocks`` where
  ``blocks`` is the number of complete 30-day blocks of lateness;
* the daily moratorium interest: a monthly rate spread over 30 days and
  applied linearly for every day late.

Both are rounded to cents independently before being added to the base.
Terminal charges (paid, refunded, charged back, cancelled) never accrue.
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from beanie.operators import Set
from pydantic import BaseModel

from school_billing.config import settings
from school_billing.models.charge import Charge, ChargeStatus
from school_billing.money import ZERO, to_money


class DelinquencyBreakdown(BaseModel):
    days_late: int = 0
    monthly_penalty: Decimal = ZERO
    daily_penalty: Decimal = ZERO
    total_due: Decimal = ZERO

    @property
    def is_late(self) -> bool:
        return self.days_late > 0


def days_late(due_date: date, evaluation_date: date) -> int:
    if evaluation_date <= due_date:
        return 0
    return (evaluation_date - due_date).days


def compute_delinquency(
    base_amount: Decimal,
    due_date: date,
    status: ChargeStatus,
    evaluation_date: Optional[date] = None,
    paid_amount: Optional[Decimal] = None,
) -> DelinquencyBreakdown:
    base = to_money(base_amount)
    if status.is_terminal:
        total = paid_amount if paid_amount is not None else base
        return DelinquencyBreakdown(total_due=to_money(total))

    evaluation_date = evaluation_date or date.today()
    if isinstance(evaluation_date, datetime):
        evaluation_date = evaluation_date.date()
    if evaluation_date <= due_date:
        return DelinquencyBreakdown(total_due=base)

    late = days_late(due_date, evaluation_date)
    blocks = late // settings.penalty_block_days
    monthly = to_money(base * settings.penalty_block_rate * blocks)
    daily = to_money(base * settings.moratorium_monthly_rate * late / 30)
    return DelinquencyBreakdown(
        days_late=late,
        monthly_penalty=monthly,
        daily_penalty=daily,
        total_due=to_money(base + monthly + daily),
    )


def breakdown_for(charge: Charge, evaluation_date: Optional[date] = None) -> DelinquencyBreakdown:
    return compute_delinquency(
        charge.base_amount,
        charge.due_date,
        charge.status,
        evaluation_date=evaluation_date,
        paid_amount=charge.paid_amount,
    )


async def refresh_penalties(charge: Charge, evaluation_date: Optional[date] = None) -> DelinquencyBreakdown:
    """Recompute the cached penalty fields of ``charge`` and store them if they changed.

    Only OPEN charges are written, including zeroing a cache left over from a
    later evaluation date. The write is conditional on the charge still being
    OPEN so a concurrent payment is never overwritten.
    """
    breakdown = breakdown_for(charge, evaluation_date)
    if charge.status.is_terminal:
        return breakdown
    unchanged = (
        charge.days_late == breakdown.days_late
        and charge.penalty_monthly == breakdown.monthly_penalty
        and charge.penalty_daily == breakdown.daily_penalty
    )
    charge.days_late = breakdown.days_late
    charge.penalty_monthly = breakdown.monthly_penalty
    charge.penalty_daily = breakdown.daily_penalty
    if not unchanged:
        await Charge.find_one(Charge.id == charge.id, Charge.status == ChargeStatus.OPEN).update(
            Set(
                {
                    Charge.days_late: breakdown.days_late,
                    Charge.penalty_monthly: breakdown.monthly_penalty,
                    Charge.penalty_daily: breakdown.daily_penalty,
                }
            )
        )
    return breakdown
