"""Contract lifecycle: PENDING -> SIGNED_UNDER_REVIEW -> VALIDATED.

Signing moves the owner's account to the provisional role and re-issues its
access token; validation promotes the account to STUDENT. Each status change
is a single conditional update on the contract, so of two concurrent callers
only one performs the transition. The account promotion is idempotent and is
re-applied when an already validated contract is validated again, which makes
validation safe to retry.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import In, Set
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from school_billing.context import RequestContext, ensure_admin
from school_billing.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from school_billing.models.contract import Contract, ContractOut, ContractStatus, OPEN_CONTRACT_STATUSES
from school_billing.models.enrollment import Enrollment
from school_billing.models.user import GATED_STUDENT_ROLES, User, UserRole
from school_billing.services.credentials import create_access_token
from school_billing.services.ledger import parse_object_id
from school_billing.services.storage import delete_document, document_key, save_document

logger = logging.getLogger(__name__)

CONFLICT_CODES = {
    ContractStatus.PENDING: "not_signed",
    ContractStatus.SIGNED_UNDER_REVIEW: "already_signed",
    ContractStatus.VALIDATED: "already_validated",
}


class SignOutcome(BaseModel):
    contract: ContractOut
    access_token: str
    role: UserRole


class ValidationOutcome(BaseModel):
    contract: ContractOut
    already_validated: bool = False
    account_promoted: bool = False


def contract_to_out(contract: Contract) -> ContractOut:
    return ContractOut(
        id=str(contract.id),
        enrollment_id=contract.enrollment_id,
        document_path=contract.document_path,
        signed_document_path=contract.signed_document_path,
        status=contract.status,
        signature_ip=contract.signature_ip,
        signature_timestamp=contract.signature_timestamp,
        validated=contract.validated,
        validated_at=contract.validated_at,
    )


def _state_conflict(contract: Contract, action: str) -> ConflictError:
    messages = {
        ContractStatus.PENDING: "Contract has not been signed yet",
        ContractStatus.SIGNED_UNDER_REVIEW: "Contract was already signed and is under review",
        ContractStatus.VALIDATED: "Contract was already validated",
    }
    return ConflictError(
        f"Cannot {action}: {messages[contract.status].lower()}",
        code=CONFLICT_CODES[contract.status],
        details={"contract_id": str(contract.id), "status": contract.status.value},
    )


async def get_contract(contract_id: str) -> Contract:
    contract = await Contract.get(parse_object_id(contract_id, "Contract"))
    if not contract:
        raise NotFoundError("Contract not found")
    return contract


async def list_contracts(enrollment_id: Optional[str] = None) -> list[Contract]:
    filters = [Contract.enrollment_id == enrollment_id] if enrollment_id else []
    return await Contract.find(*filters).sort("-created_at").to_list()


async def _claim_slot(enrollment: Enrollment, contract_id: str) -> Optional[Enrollment]:
    return await Enrollment.find_one(
        Enrollment.id == enrollment.id,
        Enrollment.open_contract_id == None,  # noqa: E711
    ).update(
        Set({Enrollment.open_contract_id: contract_id, Enrollment.updated_at: datetime.utcnow()}),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )


async def _release_slot(enrollment_id: str, contract_id: str) -> None:
    await Enrollment.find_one(
        Enrollment.id == parse_object_id(enrollment_id, "Enrollment"),
        Enrollment.open_contract_id == contract_id,
    ).update(Set({Enrollment.open_contract_id: None, Enrollment.updated_at: datetime.utcnow()}))


async def create_contract(enrollment_id: str, document_path: str) -> Contract:
    """Create the PENDING contract; at most one PENDING/SIGNED_UNDER_REVIEW per enrollment.

    The contract is stored before it claims the enrollment's slot, so a slot
    holder that cannot be found was deleted and the slot is safe to reclaim.
    A contract that loses the claim is removed again.
    """
    if not document_path:
        raise ValidationError("document_path is required")
    enrollment = await Enrollment.get(parse_object_id(enrollment_id, "Enrollment"))
    if not enrollment:
        raise NotFoundError("Enrollment not found")

    contract = Contract(enrollment_id=enrollment_id, document_path=document_path)
    await contract.insert()
    contract_id = str(contract.id)
    try:
        if await _claim_slot(enrollment, contract_id) is None:
            await _reclaim_stale_slot(enrollment, contract_id)
    except (ConflictError, PyMongoError):
        await contract.delete()
        raise
    logger.info("Contract %s created for enrollment %s", contract_id, enrollment_id)
    return contract


async def _reclaim_stale_slot(enrollment: Enrollment, contract_id: str) -> None:
    current = await Enrollment.get(enrollment.id)
    holder_id = current.open_contract_id if current else None
    holder = await Contract.get(PydanticObjectId(holder_id)) if holder_id else None
    if holder is not None and holder.status in OPEN_CONTRACT_STATUSES:
        raise ConflictError(
            "Enrollment already has a contract awaiting signature or validation",
            code="open_contract_exists",
            details={"contract_id": holder_id, "status": holder.status.value},
        )
    if holder_id:
        await _release_slot(str(enrollment.id), holder_id)
    if await _claim_slot(enrollment, contract_id) is None:
        raise ConflictError("Enrollment already has a contract in progress", code="open_contract_exists")


async def sign_contract(
    contract_id: str,
    ctx: RequestContext,
    signed_document: bytes,
    filename: str = "signed.pdf",
    content_type: str = "application/pdf",
) -> SignOutcome:
    contract = await get_contract(contract_id)
    if ctx.enrollment_id != contract.enrollment_id:
        raise ForbiddenError("You are not allowed to sign this contract")
    if contract.status != ContractStatus.PENDING:
        raise _state_conflict(contract, "sign")
    if not signed_document:
        raise ValidationError("A signed document is required")

    path = await save_document(document_key(contract.enrollment_id, "signed", filename), signed_document, content_type)
    updated = await Contract.find_one(Contract.id == contract.id, Contract.status == ContractStatus.PENDING).update(
        Set(
            {
                Contract.status: ContractStatus.SIGNED_UNDER_REVIEW,
                Contract.signed_document_path: path,
                Contract.signature_ip: ctx.ip_address or "unknown",
                Contract.signature_timestamp: datetime.utcnow(),
                Contract.updated_at: datetime.utcnow(),
            }
        ),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if updated is None:
        await delete_document(path)
        raise _state_conflict(await get_contract(contract_id), "sign")

    user_id = parse_object_id(ctx.user_id, "User")
    await User.find_one(User.id == user_id, User.role == UserRole.PENDING_STUDENT).update(
        Set({User.role: UserRole.PROVISIONAL_STUDENT, User.updated_at: datetime.utcnow()})
    )
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")
    logger.info("Contract %s signed by user %s from %s", contract_id, ctx.user_id, updated.signature_ip)
    return SignOutcome(
        contract=contract_to_out(updated),
        access_token=create_access_token(str(user.id), user.role.value, user.enrollment_id),
        role=user.role,
    )


async def _promote_account(enrollment_id: str) -> bool:
    """PENDING/PROVISIONAL -> STUDENT for the enrollment's accounts. No-op when already promoted."""
    result = await User.find(
        User.enrollment_id == enrollment_id,
        In(User.role, list(GATED_STUDENT_ROLES)),
    ).update(Set({User.role: UserRole.STUDENT, User.updated_at: datetime.utcnow()}))
    return bool(result is not None and result.modified_count)


async def validate_contract(contract_id: str, ctx: RequestContext) -> ValidationOutcome:
    """Admin-only SIGNED_UNDER_REVIEW -> VALIDATED, then the account is promoted to STUDENT.

    The contract update and the account promotion are separate writes. A reader
    may briefly see a VALIDATED contract whose account is not promoted yet, and
    a validation interrupted between the two is completed by validating again,
    which re-applies the promotion and returns ``already_validated``.
    """
    ensure_admin(ctx)
    contract = await get_contract(contract_id)
    already_validated = contract.status == ContractStatus.VALIDATED
    if not already_validated:
        if contract.status != ContractStatus.SIGNED_UNDER_REVIEW or not contract.signed_document_path:
            raise _state_conflict(contract, "validate")
        updated = await Contract.find_one(
            Contract.id == contract.id,
            Contract.status == ContractStatus.SIGNED_UNDER_REVIEW,
            Contract.signed_document_path != None,  # noqa: E711
        ).update(
            Set(
                {
                    Contract.status: ContractStatus.VALIDATED,
                    Contract.validated: True,
                    Contract.validated_at: datetime.utcnow(),
                    Contract.validated_by: ctx.user_id,
                    Contract.updated_at: datetime.utcnow(),
                }
            ),
            response_type=UpdateResponse.NEW_DOCUMENT,
        )
        if updated is None:
            contract = await get_contract(contract_id)
            if contract.status != ContractStatus.VALIDATED:
                raise _state_conflict(contract, "validate")
            already_validated = True
        else:
            contract = updated

    promoted = await _promote_account(contract.enrollment_id)
    await _release_slot(contract.enrollment_id, str(contract.id))
    if already_validated:
        logger.info("Contract %s already validated; account promotion re-applied=%s", contract_id, promoted)
    else:
        logger.info("Contract %s validated by %s; account promoted=%s", contract_id, ctx.user_id, promoted)
    return ValidationOutcome(
        contract=contract_to_out(contract),
        already_validated=already_validated,
        account_promoted=promoted,
    )
