from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from pymongo.errors import PyMongoError

from school_billing.config import settings
from school_billing.errors import ConflictError, InternalError, NotFoundError, ValidationError
from school_billing.models import Charge, Contract, ContractStatus, Enrollment, EnrollmentCreate, User, UserRole
from school_billing.services import enrollment as enrollment_service
from school_billing.services import ledger
from school_billing.services.credentials import verify_password


def _payload(**overrides) -> EnrollmentCreate:
    data = {
        "student_name": "Carla Dias",
        "student_email": "Carla@Example.com",
        "date_of_birth": date(2011, 9, 3),
        "annual_tuition": Decimal("12000.00"),
        "registration_fee": Decimal("1200.00"),
        "due_day": 10,
        "start_date": date(2025, 2, 15),
    }
    data.update(overrides)
    return EnrollmentCreate(**data)


async def test_enroll_runs_every_step(db):
    outcome = await enrollment_service.enroll(_payload())

    assert outcome.success
    assert outcome.charges_created == 13
    assert outcome.charges_skipped == 0
    assert outcome.warnings == []

    enrollment = await Enrollment.get(outcome.enrollment_id)
    assert enrollment.student_email == "carla@example.com"
    assert enrollment.open_contract_id == outcome.contract_id

    user = await User.get(outcome.student_user_id)
    assert user.role == UserRole.PENDING_STUDENT
    assert user.enrollment_id == outcome.enrollment_id
    assert verify_password("03092011", user.hashed_password)

    contract = await Contract.get(outcome.contract_id)
    assert contract.status == ContractStatus.PENDING
    assert Path(contract.document_path).read_bytes().startswith(b"%PDF")

    charges = await Charge.find(Charge.enrollment_id == outcome.enrollment_id).to_list()
    assert len(charges) == 13
    assert sum(c.base_amount for c in charges) == Decimal("12000.00")


async def test_explicit_password_wins_over_birth_date(db):
    outcome = await enrollment_service.enroll(_payload(password="s3cret!"))
    user = await User.get(outcome.student_user_id)
    assert verify_password("s3cret!", user.hashed_password)


async def test_invalid_terms_store_nothing(db):
    with pytest.raises(ValidationError):
        await enrollment_service.enroll(_payload(registration_fee=Decimal("12000.00")))

    assert await Enrollment.find_all().count() == 0
    assert await User.find_all().count() == 0
    assert await Charge.find_all().count() == 0


async def test_duplicate_email_is_conflict(db):
    await enrollment_service.enroll(_payload())

    with pytest.raises(ConflictError) as exc:
        await enrollment_service.enroll(_payload(student_email="carla@example.com"))
    assert exc.value.code == "email_exists"
    assert await Enrollment.find_all().count() == 1


async def test_rerun_charges_skips_billed_months(db):
    outcome = await enrollment_service.enroll(_payload())

    rerun = await enrollment_service.rerun_charges(outcome.enrollment_id)

    assert rerun.charges_created == 0
    assert rerun.charges_skipped == 13
    assert not rerun.success
    assert await Charge.find(Charge.enrollment_id == outcome.enrollment_id).count() == 13


async def test_rerun_contract_conflicts_while_one_is_open(db):
    outcome = await enrollment_service.enroll(_payload())

    with pytest.raises(ConflictError):
        await enrollment_service.generate_contract(outcome.enrollment_id)


async def test_contract_failure_is_reported_not_raised(db, monkeypatch):
    async def broken(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(enrollment_service, "generate_contract_document", broken)

    outcome = await enrollment_service.enroll(_payload())

    assert outcome.contract_id is None
    assert outcome.charges_created == 13
    assert len(outcome.warnings) == 1
    assert "Contract was not generated" in outcome.warnings[0]


async def test_unknown_enrollment(db):
    with pytest.raises(NotFoundError):
        await enrollment_service.rerun_charges("65f000000000000000000000")


async def test_account_failure_removes_the_enrollment(db, monkeypatch):
    async def failing_insert(self, *args, **kwargs):
        raise PyMongoError("write concern timeout")

    monkeypatch.setattr(User, "insert", failing_insert)

    with pytest.raises(InternalError):
        await enrollment_service.enroll(_payload())

    assert await Enrollment.find_all().count() == 0
    assert await Contract.find_all().count() == 0
    assert await Charge.find_all().count() == 0


async def test_interrupted_charge_run_is_rolled_back_and_reported(db, monkeypatch):
    create = ledger.create_charge
    calls = []

    async def flaky_create(*args, **kwargs):
        calls.append(args)
        if len(calls) == 3:
            raise PyMongoError("connection reset")
        return await create(*args, **kwargs)

    monkeypatch.setattr(ledger, "create_charge", flaky_create)

    outcome = await enrollment_service.enroll(_payload())

    assert not outcome.success
    assert outcome.charges_created == 0
    assert outcome.charges_failed == 13
    assert outcome.contract_id is not None
    assert any("re-run" in w for w in outcome.warnings)
    assert await Charge.find(Charge.enrollment_id == outcome.enrollment_id).count() == 0
    assert await Enrollment.get(outcome.enrollment_id) is not None


async def test_rejected_contract_rerun_leaves_no_document_behind(db):
    outcome = await enrollment_service.enroll(_payload())
    documents = Path(settings.contracts_dir) / "contracts" / outcome.enrollment_id

    with pytest.raises(ConflictError):
        await enrollment_service.generate_contract(outcome.enrollment_id)

    assert len(list(documents.glob("contract-*"))) == 1
