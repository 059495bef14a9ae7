"""Annual tuition -> registration charge + monthly installments."""
from __future__ import annotations

import calendar
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from school_billing.config import settings
from school_billing.errors import BillingError, DuplicateChargeError, ValidationError
from school_billing.models.charge import ChargeKind
from school_billing.models.enrollment import InstallmentResult
from school_billing.money import ZERO, to_money
from school_billing.services import ledger

logger = logging.getLogger(__name__)

REGISTRATION_DESCRIPTION = "Registration"


class PlannedCharge(BaseModel):
    kind: ChargeKind
    description: str
    due_date: date
    amount: Decimal
    installment_number: Optional[int] = None


class InstallmentPlan(BaseModel):
    installment_amount: Decimal
    charges: list[PlannedCharge] = Field(default_factory=list)


class PlanRun(BaseModel):
    """Per-charge outcome of persisting a plan."""

    results: list[InstallmentResult] = Field(default_factory=list)
    rolled_back: bool = False
    error: Optional[str] = None

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)


def add_months(anchor: date, months: int, day: int) -> date:
    """Return ``day`` of the month ``months`` after ``anchor``'s month, clamped to month end."""
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def installment_description(number: int, total: int) -> str:
    return f"Installment {number}/{total}"


def build_plan(
    annual_tuition: Decimal,
    registration_fee: Decimal,
    first_due_day: int,
    start_date: Optional[date] = None,
) -> InstallmentPlan:
    """Compute the charge schedule for one enrollment. Nothing is persisted."""
    annual_tuition = Decimal(annual_tuition)
    registration_fee = Decimal(registration_fee)
    if annual_tuition <= 0:
        raise ValidationError("annual_tuition must be greater than zero")
    if registration_fee < 0:
        raise ValidationError("registration_fee cannot be negative")
    if annual_tuition <= registration_fee:
        raise ValidationError(
            "annual_tuition must be greater than registration_fee",
            details={"annual_tuition": str(annual_tuition), "registration_fee": str(registration_fee)},
        )
    if not 1 <= first_due_day <= 31:
        raise ValidationError("due day must be between 1 and 31")

    start = start_date or date.today()
    count = settings.installments_per_year
    installment_amount = to_money((annual_tuition - registration_fee) / count)
    if installment_amount <= ZERO:
        raise ValidationError("Installment amount rounds to zero; check annual_tuition and registration_fee")

    charges: list[PlannedCharge] = []
    if registration_fee > ZERO:
        charges.append(
            PlannedCharge(
                kind=ChargeKind.REGISTRATION,
                description=REGISTRATION_DESCRIPTION,
                due_date=start + timedelta(days=settings.registration_due_offset_days),
                amount=to_money(registration_fee),
            )
        )
    for i in range(count):
        charges.append(
            PlannedCharge(
                kind=ChargeKind.INSTALLMENT,
                description=installment_description(i + 1, count),
                due_date=add_months(start, i, first_due_day),
                amount=installment_amount,
                installment_number=i + 1,
            )
        )
    return InstallmentPlan(installment_amount=installment_amount, charges=charges)


async def apply_plan(enrollment_id: str, plan: InstallmentPlan) -> PlanRun:
    """Persist a plan through the ledger, one result per planned charge.

    Duplicates are skipped. A storage failure stops the run and deletes the
    charges created so far; the caller reports it as a partial failure.
    """
    run = PlanRun()
    created_ids: list[str] = []
    for planned in plan.charges:
        result = InstallmentResult(
            description=planned.description,
            due_date=planned.due_date,
            amount=planned.amount,
            status="created",
        )
        try:
            charge = await ledger.create_charge(
                enrollment_id,
                planned.amount,
                planned.due_date,
                description=planned.description,
                kind=planned.kind,
                installment_number=planned.installment_number,
            )
        except DuplicateChargeError as e:
            result.status = "skipped"
            result.message = e.message
        except BillingError as e:
            result.status = "failed"
            result.message = e.message
        except PyMongoError:
            logger.exception("Storage failure while generating charges for enrollment %s", enrollment_id)
            run.rolled_back = True
            run.error = "Charge generation was interrupted; re-run it for this enrollment"
            break
        else:
            result.charge_id = str(charge.id)
            created_ids.append(result.charge_id)
        run.results.append(result)

    if run.rolled_back:
        await _compensate(enrollment_id, created_ids)
        run.results = [
            InstallmentResult(
                description=p.description,
                due_date=p.due_date,
                amount=p.amount,
                status="failed",
                message=run.error,
            )
            for p in plan.charges
        ]
    else:
        logger.info(
            "Enrollment %s: %d charges created, %d skipped, %d failed",
            enrollment_id,
            run.count("created"),
            run.count("skipped"),
            run.count("failed"),
        )
    return run


async def _compensate(enrollment_id: str, charge_ids: list[str]) -> None:
    for charge_id in charge_ids:
        try:
            await ledger.delete_charge(charge_id)
        except (BillingError, PyMongoError):
            logger.exception("Could not remove charge %s of enrollment %s during cleanup", charge_id, enrollment_id)
