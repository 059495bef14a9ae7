"""Charge ledger: persistence and queries, with penalties refreshed on every read."""
from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import In, RegEx, Set
from bson.errors import InvalidId

from school_billing.errors import ConflictError, DuplicateChargeError, NotFoundError, ValidationError
from school_billing.models.charge import (
    CHARGE_TRANSITIONS,
    Charge,
    ChargeKind,
    ChargeOut,
    ChargeStatement,
    ChargeStatus,
)
from school_billing.models.enrollment import Enrollment
from school_billing.money import ZERO, to_money
from school_billing.services.delinquency import DelinquencyBreakdown, breakdown_for, refresh_penalties

logger = logging.getLogger(__name__)

# Statuses that count as "already billed" for the duplicate-month guard.
BILLED_STATUSES = [ChargeStatus.OPEN, ChargeStatus.PAID]

SORT_FIELDS = {"due_date": "+due_date", "-due_date": "-due_date"}


def parse_object_id(value: str, what: str) -> PydanticObjectId:
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(f"{what} not found")


def _month_bounds(day: date) -> tuple[date, date]:
    start = day.replace(day=1)
    end = (start + timedelta(days=32)).replace(day=1)
    return start, end


async def _ensure_not_billed(
    enrollment_id: str, due_date: date, kind: ChargeKind, allow_same_month: bool = False
) -> None:
    if kind == ChargeKind.REGISTRATION:
        existing = await Charge.find_one(
            Charge.enrollment_id == enrollment_id,
            Charge.kind == ChargeKind.REGISTRATION,
            In(Charge.status, BILLED_STATUSES),
        )
        if existing:
            raise DuplicateChargeError(
                "A registration charge already exists for this enrollment",
                details={"charge_id": str(existing.id)},
            )
        return
    if allow_same_month:
        return
    # Installments and ad-hoc charges: one OPEN/PAID charge of a kind per month.
    month_start, month_end = _month_bounds(due_date)
    existing = await Charge.find_one(
        Charge.enrollment_id == enrollment_id,
        Charge.kind == kind,
        In(Charge.status, BILLED_STATUSES),
        Charge.due_date >= month_start,
        Charge.due_date < month_end,
    )
    if existing:
        raise DuplicateChargeError(
            f"A {kind.value} charge due in {due_date:%Y-%m} already exists ({existing.description})",
            details={"charge_id": str(existing.id)},
        )


async def create_charge(
    enrollment_id: str,
    base_amount: Decimal,
    due_date: date,
    description: Optional[str] = None,
    kind: ChargeKind = ChargeKind.OTHER,
    installment_number: Optional[int] = None,
    allow_same_month: bool = False,
) -> Charge:
    """Persist an OPEN charge.

    A second OPEN/PAID charge of the same kind in the same month raises
    ``DuplicateChargeError`` unless ``allow_same_month`` is set, which admins use
    for a deliberate extra fee. Registration charges are limited to one per
    enrollment either way.
    """
    if not enrollment_id:
        raise ValidationError("enrollment_id is required")
    if base_amount is None or due_date is None:
        raise ValidationError("base_amount and due_date are required")
    amount = to_money(base_amount)
    if amount <= ZERO:
        raise ValidationError("base_amount must be greater than zero")
    enrollment = await Enrollment.get(parse_object_id(enrollment_id, "Enrollment"))
    if not enrollment:
        raise NotFoundError("Enrollment not found")

    await _ensure_not_billed(enrollment_id, due_date, kind, allow_same_month)

    charge = Charge(
        enrollment_id=enrollment_id,
        kind=kind,
        installment_number=installment_number,
        base_amount=amount,
        due_date=due_date,
        description=(description or "").strip() or kind.value.title(),
        status=ChargeStatus.OPEN,
    )
    await charge.insert()
    return charge


def charge_to_out(charge: Charge, breakdown: DelinquencyBreakdown) -> ChargeOut:
    return ChargeOut(
        id=str(charge.id),
        enrollment_id=charge.enrollment_id,
        kind=charge.kind,
        installment_number=charge.installment_number,
        description=charge.description,
        base_amount=charge.base_amount,
        due_date=charge.due_date,
        status=charge.status,
        days_late=breakdown.days_late,
        penalty_monthly=breakdown.monthly_penalty,
        penalty_daily=breakdown.daily_penalty,
        total_due=breakdown.total_due,
        paid_amount=charge.paid_amount,
        paid_date=charge.paid_date,
        amount_due_at_payment=charge.amount_due_at_payment,
    )


async def _refreshed(charges: list[Charge], evaluation_date: Optional[date]) -> list[ChargeOut]:
    out = []
    for charge in charges:
        breakdown = await refresh_penalties(charge, evaluation_date)
        out.append(charge_to_out(charge, breakdown))
    return out


async def list_charges(
    enrollment_id: Optional[str] = None,
    status: Optional[ChargeStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = None,
    sort: str = "due_date",
    evaluation_date: Optional[date] = None,
) -> list[ChargeOut]:
    if sort not in SORT_FIELDS:
        raise ValidationError(f"Unsupported sort: {sort}")
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must not be after date_to")

    filters = []
    if enrollment_id:
        filters.append(Charge.enrollment_id == enrollment_id)
    if status:
        filters.append(Charge.status == status)
    if date_from:
        filters.append(Charge.due_date >= date_from)
    if date_to:
        filters.append(Charge.due_date <= date_to)
    if search:
        matches = await Enrollment.find(
            RegEx(Enrollment.student_name, re.escape(search.strip()), options="i")
        ).to_list()
        filters.append(In(Charge.enrollment_id, [str(e.id) for e in matches]))

    charges = await Charge.find(*filters).sort(SORT_FIELDS[sort]).to_list()
    return await _refreshed(charges, evaluation_date)


async def get_charge(charge_id: str) -> Charge:
    charge = await Charge.get(parse_object_id(charge_id, "Charge"))
    if not charge:
        raise NotFoundError("Charge not found")
    return charge


async def get_charge_out(charge_id: str, evaluation_date: Optional[date] = None) -> ChargeOut:
    charge = await get_charge(charge_id)
    breakdown = await refresh_penalties(charge, evaluation_date)
    return charge_to_out(charge, breakdown)


async def get_charges_for_enrollment(enrollment_id: str, evaluation_date: Optional[date] = None) -> list[ChargeOut]:
    enrollment = await Enrollment.get(parse_object_id(enrollment_id, "Enrollment"))
    if not enrollment:
        raise NotFoundError("Enrollment not found")
    charges = await Charge.find(Charge.enrollment_id == enrollment_id).sort("+due_date").to_list()
    return await _refreshed(charges, evaluation_date)


def _transition_conflict(charge: Charge, target: ChargeStatus) -> ConflictError:
    return ConflictError(
        f"Charge is already {charge.status.value}; cannot move to {target.value}",
        code=f"already_{charge.status.value}",
        details={"charge_id": str(charge.id), "status": charge.status.value},
    )


async def register_payment(charge_id: str, paid_amount: Decimal, paid_date: date) -> Charge:
    """Mark an OPEN charge as PAID with penalties frozen at ``paid_date``.

    The total owed on ``paid_date`` is kept in ``amount_due_at_payment``; the
    penalty cache is cleared since PAID charges never accrue. The status
    check and the write are one conditional update, so of two concurrent
    payments exactly one matches ``status == OPEN``.
    """
    if paid_amount is None or paid_date is None:
        raise ValidationError("paid_amount and paid_date are required")
    amount = to_money(paid_amount)
    if amount <= ZERO:
        raise ValidationError("paid_amount must be greater than zero")

    charge = await get_charge(charge_id)
    if charge.status != ChargeStatus.OPEN:
        raise _transition_conflict(charge, ChargeStatus.PAID)

    breakdown = breakdown_for(charge, paid_date)
    updated = await Charge.find_one(Charge.id == charge.id, Charge.status == ChargeStatus.OPEN).update(
        Set(
            {
                Charge.status: ChargeStatus.PAID,
                Charge.paid_amount: amount,
                Charge.paid_date: paid_date,
                Charge.amount_due_at_payment: breakdown.total_due,
                Charge.days_late: 0,
                Charge.penalty_monthly: ZERO,
                Charge.penalty_daily: ZERO,
                Charge.updated_at: datetime.utcnow(),
            }
        ),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        current = await get_charge(charge_id)
        raise _transition_conflict(current, ChargeStatus.PAID)
    if amount < breakdown.total_due:
        logger.warning(
            "Charge %s paid %s, below the %s due on %s",
            charge_id,
            amount,
            breakdown.total_due,
            paid_date,
        )
    logger.info("Charge %s paid: %s on %s", charge_id, amount, paid_date)
    return updated


async def set_status(charge_id: str, status: ChargeStatus) -> Charge:
    """Move an OPEN charge to REFUNDED, CHARGED_BACK or CANCELLED."""
    if status == ChargeStatus.PAID:
        raise ValidationError("Use the payment operation to mark a charge as paid")
    if status == ChargeStatus.OPEN:
        raise ValidationError("Charges cannot be reopened")

    charge = await get_charge(charge_id)
    if status not in CHARGE_TRANSITIONS[charge.status]:
        raise _transition_conflict(charge, status)

    # Only terminal dispositions are persisted; penalty cache is cleared with them.
    updated = await Charge.find_one(Charge.id == charge.id, Charge.status == ChargeStatus.OPEN).update(
        Set(
            {
                Charge.status: status,
                Charge.days_late: 0,
                Charge.penalty_monthly: ZERO,
                Charge.penalty_daily: ZERO,
                Charge.updated_at: datetime.utcnow(),
            }
        ),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        current = await get_charge(charge_id)
        raise _transition_conflict(current, status)
    logger.info("Charge %s moved to %s", charge_id, status.value)
    return updated


async def delete_charge(charge_id: str) -> None:
    charge = await get_charge(charge_id)
    await charge.delete()
    logger.info("Charge %s deleted (%s, %s)", charge_id, charge.description, charge.status.value)


def summarize(charges: list[ChargeOut]) -> ChargeStatement:
    statement = ChargeStatement()
    for c in charges:
        if c.status == ChargeStatus.OPEN:
            statement.open_count += 1
            statement.open_base += c.base_amount
            statement.open_penalties += c.penalty_monthly + c.penalty_daily
            statement.total_outstanding += c.total_due
            if c.days_late > 0:
                statement.overdue_count += 1
        elif c.status == ChargeStatus.PAID and c.paid_amount is not None:
            statement.total_paid += c.paid_amount
    return statement
