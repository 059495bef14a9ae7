"""Enrollment workflow: enrollment + account, then contract, then charges.

Each step after the first can be re-run on its own. Failures in those steps
are reported on the outcome instead of failing the request, since the
enrollment itself is already stored and billing setup can be repeated.
"""
from __future__ import annotations

import logging
from datetime import date

from pymongo.errors import PyMongoError

from school_billing.errors import BillingError, ConflictError, InternalError, NotFoundError
from school_billing.models.enrollment import Enrollment, EnrollmentCreate, EnrollmentOutcome
from school_billing.models.user import User, UserRole
from school_billing.services import contracts
from school_billing.services.credentials import get_password_hash
from school_billing.services.documents import generate_contract_document
from school_billing.services.installment_plan import InstallmentPlan, PlanRun, apply_plan, build_plan
from school_billing.services.ledger import parse_object_id
from school_billing.services.storage import delete_document

logger = logging.getLogger(__name__)


def initial_password(data: EnrollmentCreate) -> str:
    if data.password:
        return data.password
    return data.date_of_birth.strftime("%d%m%Y")


def plan_for(enrollment: Enrollment) -> InstallmentPlan:
    return build_plan(
        enrollment.annual_tuition,
        enrollment.registration_fee,
        enrollment.due_day,
        enrollment.start_date,
    )


async def get_enrollment(enrollment_id: str) -> Enrollment:
    enrollment = await Enrollment.get(parse_object_id(enrollment_id, "Enrollment"))
    if not enrollment:
        raise NotFoundError("Enrollment not found")
    return enrollment


async def _create_enrollment_with_account(data: EnrollmentCreate, start: date) -> tuple[Enrollment, User]:
    email = str(data.student_email).lower()
    if await User.find_one(User.email == email):
        raise ConflictError("A user with this e-mail already exists", code="email_exists")

    enrollment = Enrollment(
        student_name=data.student_name.strip(),
        student_email=email,
        date_of_birth=data.date_of_birth,
        annual_tuition=data.annual_tuition,
        registration_fee=data.registration_fee,
        due_day=data.due_day,
        start_date=start,
    )
    await enrollment.insert()
    user = User(
        email=email,
        hashed_password=get_password_hash(initial_password(data)),
        role=UserRole.PENDING_STUDENT,
        full_name=enrollment.student_name,
        enrollment_id=str(enrollment.id),
    )
    try:
        await user.insert()
    except PyMongoError:
        logger.exception("Could not create the account for enrollment %s; removing it", enrollment.id)
        await enrollment.delete()
        raise InternalError("Enrollment could not be created")
    enrollment.student_user_id = str(user.id)
    await enrollment.save()
    return enrollment, user


async def generate_contract(enrollment_id: str) -> str:
    """Render, store and register the contract; return the new contract id."""
    enrollment = await get_enrollment(enrollment_id)
    path = await generate_contract_document(enrollment, plan_for(enrollment))
    try:
        contract = await contracts.create_contract(str(enrollment.id), path)
    except (BillingError, PyMongoError):
        await delete_document(path)
        raise
    return str(contract.id)


async def generate_charges(enrollment_id: str) -> PlanRun:
    enrollment = await get_enrollment(enrollment_id)
    return await apply_plan(str(enrollment.id), plan_for(enrollment))


def _fold_plan_run(outcome: EnrollmentOutcome, run: PlanRun) -> None:
    outcome.results = run.results
    outcome.charges_created = run.count("created")
    outcome.charges_skipped = run.count("skipped")
    outcome.charges_failed = run.count("failed")
    if run.error:
        outcome.warnings.append(run.error)


async def enroll(data: EnrollmentCreate) -> EnrollmentOutcome:
    start = data.start_date or date.today()
    # Validates tuition terms before anything is stored.
    build_plan(data.annual_tuition, data.registration_fee, data.due_day, start)

    enrollment, user = await _create_enrollment_with_account(data, start)
    enrollment_id = str(enrollment.id)
    outcome = EnrollmentOutcome(enrollment_id=enrollment_id, student_user_id=str(user.id))
    logger.info("Enrollment %s created for %s", enrollment_id, enrollment.student_name)

    try:
        outcome.contract_id = await generate_contract(enrollment_id)
    except (BillingError, PyMongoError, OSError) as e:
        logger.exception("Contract generation failed for enrollment %s", enrollment_id)
        detail = e.message if isinstance(e, BillingError) else "storage error"
        outcome.warnings.append(f"Contract was not generated ({detail}); re-run contract generation")

    try:
        run = await generate_charges(enrollment_id)
    except (BillingError, PyMongoError):
        logger.exception("Charge generation failed for enrollment %s", enrollment_id)
        outcome.warnings.append("Charges were not generated; re-run charge generation")
    else:
        _fold_plan_run(outcome, run)
    return outcome


async def rerun_charges(enrollment_id: str) -> EnrollmentOutcome:
    enrollment = await get_enrollment(enrollment_id)
    outcome = EnrollmentOutcome(
        enrollment_id=enrollment_id,
        student_user_id=enrollment.student_user_id,
        contract_id=enrollment.open_contract_id,
    )
    _fold_plan_run(outcome, await generate_charges(enrollment_id))
    return outcome
