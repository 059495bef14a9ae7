"""Enrollment creation with contract and installment plan."""
from fastapi import APIRouter

from school_billing.api.deps import AdminOnly, CurrentContext
from school_billing.context import ensure_enrollment_access
from school_billing.models.enrollment import Enrollment, EnrollmentCreate, EnrollmentOutcome
from school_billing.services import enrollment as enrollment_service

router = APIRouter()


def _outcome_response(outcome: EnrollmentOutcome) -> dict:
    total = len(outcome.results)
    message = f"{outcome.charges_created} of {total} charges were created."
    if outcome.charges_skipped:
        message += f" {outcome.charges_skipped} skipped (already billed)."
    if outcome.charges_failed:
        message += f" {outcome.charges_failed} failed."
    if not total:
        message = "No charges were generated."
    return {
        "success": outcome.success,
        "message": message,
        **outcome.model_dump(mode="json"),
    }


def _enrollment_to_dict(e: Enrollment) -> dict:
    return {
        "id": str(e.id),
        "student_name": e.student_name,
        "student_email": e.student_email,
        "annual_tuition": str(e.annual_tuition),
        "registration_fee": str(e.registration_fee),
        "due_day": e.due_day,
        "start_date": e.start_date.isoformat(),
        "student_user_id": e.student_user_id,
        "open_contract_id": e.open_contract_id,
    }


@router.post("/", status_code=201)
async def create_enrollment(data: EnrollmentCreate, user: AdminOnly):
    outcome = await enrollment_service.enroll(data)
    return _outcome_response(outcome)


@router.get("/{enrollment_id}")
async def get_enrollment(enrollment_id: str, ctx: CurrentContext):
    ensure_enrollment_access(ctx, enrollment_id)
    e = await enrollment_service.get_enrollment(enrollment_id)
    return _enrollment_to_dict(e)


@router.post("/{enrollment_id}/contract", status_code=201)
async def generate_contract(enrollment_id: str, user: AdminOnly):
    """Re-run the contract step, e.g. after it failed during enrollment."""
    contract_id = await enrollment_service.generate_contract(enrollment_id)
    return {"success": True, "contract_id": contract_id}


@router.post("/{enrollment_id}/charges")
async def generate_charges(enrollment_id: str, user: AdminOnly):
    """Re-run the charge step; months already billed are skipped."""
    outcome = await enrollment_service.rerun_charges(enrollment_id)
    return _outcome_response(outcome)
