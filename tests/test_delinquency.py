from datetime import date, timedelta
from decimal import Decimal

import pytest

from school_billing.models import Charge, ChargeKind, ChargeStatus
from school_billing.services.delinquency import compute_delinquency, days_late, refresh_penalties

BASE = Decimal("1000.00")
DUE = date(2025, 1, 10)


def test_reference_scenario():
    result = compute_delinquency(BASE, DUE, ChargeStatus.OPEN, date(2025, 3, 12))

    assert result.days_late == 61
    assert result.monthly_penalty == Decimal("40.00")
    assert result.daily_penalty == Decimal("40.67")
    assert result.total_due == Decimal("1080.67")


@pytest.mark.parametrize("offset", [0, -1, -30])
def test_not_late_on_or_before_due_date(offset):
    result = compute_delinquency(BASE, DUE, ChargeStatus.OPEN, DUE + timedelta(days=offset))

    assert days_late(DUE, DUE + timedelta(days=offset)) == 0
    assert result.days_late == 0
    assert result.monthly_penalty == Decimal("0.00")
    assert result.daily_penalty == Decimal("0.00")
    assert result.total_due == BASE


def test_monthly_penalty_is_a_step_function():
    day_29 = compute_delinquency(BASE, DUE, ChargeStatus.OPEN, DUE + timedelta(days=29))
    day_30 = compute_delinquency(BASE, DUE, ChargeStatus.OPEN, DUE + timedelta(days=30))
    day_59 = compute_delinquency(BASE, DUE, ChargeStatus.OPEN, DUE + timedelta(days=59))

    assert day_29.monthly_penalty == Decimal("0.00")
    assert day_29.daily_penalty == Decimal("19.33")
    assert day_30.monthly_penalty == Decimal("20.00")
    assert day_30.daily_penalty == Decimal("20.00")
    assert day_59.monthly_penalty == Decimal("20.00")


def test_one_day_late_accrues_only_daily_interest():
    result = compute_delinquency(BASE, DUE, ChargeStatus.OPEN, DUE + timedelta(days=1))
    assert result.monthly_penalty == Decimal("0.00")
    assert result.daily_penalty == Decimal("0.67")
    assert result.total_due == Decimal("1000.67")


@pytest.mark.parametrize(
    "status", [ChargeStatus.PAID, ChargeStatus.REFUNDED, ChargeStatus.CHARGED_BACK, ChargeStatus.CANCELLED]
)
def test_terminal_charges_never_accrue(status):
    result = compute_delinquency(BASE, DUE, status, date(2026, 1, 1))

    assert result.days_late == 0
    assert result.monthly_penalty == Decimal("0.00")
    assert result.daily_penalty == Decimal("0.00")
    assert result.total_due == BASE


def test_paid_charge_reports_paid_amount():
    result = compute_delinquency(BASE, DUE, ChargeStatus.PAID, date(2026, 1, 1), paid_amount=Decimal("1012.50"))
    assert result.total_due == Decimal("1012.50")


def test_same_inputs_same_output():
    first = compute_delinquency(BASE, DUE, ChargeStatus.OPEN, date(2025, 6, 1))
    second = compute_delinquency(BASE, DUE, ChargeStatus.OPEN, date(2025, 6, 1))
    assert first == second


async def _charge(enrollment, status=ChargeStatus.OPEN) -> Charge:
    charge = Charge(
        enrollment_id=str(enrollment.id),
        kind=ChargeKind.INSTALLMENT,
        base_amount=BASE,
        due_date=DUE,
        description="Installment 1/12",
        status=status,
    )
    await charge.insert()
    return charge


async def test_refresh_overwrites_cached_fields(enrollment):
    charge = await _charge(enrollment)

    await refresh_penalties(charge, date(2025, 3, 12))
    await refresh_penalties(charge, date(2025, 3, 12))
    stored = await Charge.get(charge.id)

    assert stored.days_late == 61
    assert stored.penalty_monthly == Decimal("40.00")
    assert stored.penalty_daily == Decimal("40.67")
    assert stored.base_amount == BASE

    # An earlier evaluation date recomputes from scratch instead of accumulating.
    await refresh_penalties(stored, date(2025, 2, 10))
    stored = await Charge.get(charge.id)
    assert stored.days_late == 31
    assert stored.penalty_monthly == Decimal("20.00")


async def test_refresh_leaves_terminal_charges_alone(enrollment):
    charge = await _charge(enrollment, status=ChargeStatus.CANCELLED)

    result = await refresh_penalties(charge, date(2025, 12, 31))
    stored = await Charge.get(charge.id)

    assert result.monthly_penalty == Decimal("0.00")
    assert stored.days_late == 0
    assert stored.penalty_monthly == Decimal("0.00")


async def test_refresh_clears_cache_when_not_late_anymore(enrollment):
    charge = await _charge(enrollment)
    await refresh_penalties(charge, date(2025, 3, 12))

    result = await refresh_penalties(charge, date(2025, 1, 5))
    stored = await Charge.get(charge.id)

    assert result.total_due == BASE
    assert stored.days_late == 0
    assert stored.penalty_monthly == Decimal("0.00")
    assert stored.penalty_daily == Decimal("0.00")
