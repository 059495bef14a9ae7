"""Contracts: creation, signed upload and administrative validation."""
from typing import Optional

from fastapi import APIRouter, File, HTTPException, UploadFile

from school_billing.api.deps import AdminOnly, CurrentContext
from school_billing.context import ensure_enrollment_access
from school_billing.models.contract import ContractCreate
from school_billing.services import contracts as contract_service

router = APIRouter()


@router.post("/", status_code=201)
async def create_contract(data: ContractCreate, user: AdminOnly):
    contract = await contract_service.create_contract(data.enrollment_id, data.document_path)
    return {"success": True, "data": contract_service.contract_to_out(contract).model_dump(mode="json")}


@router.get("/")
async def list_contracts(ctx: CurrentContext, enrollment_id: Optional[str] = None):
    if not ctx.is_staff:
        if not ctx.enrollment_id or (enrollment_id and enrollment_id != ctx.enrollment_id):
            raise HTTPException(status_code=403, detail="Not authorized")
        enrollment_id = ctx.enrollment_id
    items = await contract_service.list_contracts(enrollment_id)
    return {"success": True, "data": [contract_service.contract_to_out(c).model_dump(mode="json") for c in items]}


@router.get("/{contract_id}")
async def get_contract(contract_id: str, ctx: CurrentContext):
    contract = await contract_service.get_contract(contract_id)
    ensure_enrollment_access(ctx, contract.enrollment_id)
    return {"success": True, "data": contract_service.contract_to_out(contract).model_dump(mode="json")}


@router.post("/{contract_id}/sign")
async def sign_contract(contract_id: str, ctx: CurrentContext, file: UploadFile = File(...)):
    """Upload the signed contract; returns a re-issued token for the provisional role."""
    content = await file.read()
    outcome = await contract_service.sign_contract(
        contract_id,
        ctx,
        content,
        filename=file.filename or "signed.pdf",
        content_type=file.content_type or "application/pdf",
    )
    return {
        "success": True,
        "message": "Contract signed; access is provisional until it is validated",
        "access_token": outcome.access_token,
        "token_type": "bearer",
        "role": outcome.role.value,
        "data": outcome.contract.model_dump(mode="json"),
    }


@router.put("/{contract_id}/validate")
async def validate_contract(contract_id: str, ctx: CurrentContext, user: AdminOnly):
    outcome = await contract_service.validate_contract(contract_id, ctx)
    return {
        "success": True,
        "message": "Contract already validated" if outcome.already_validated else "Contract validated",
        "already_validated": outcome.already_validated,
        "account_promoted": outcome.account_promoted,
        "data": outcome.contract.model_dump(mode="json"),
    }
