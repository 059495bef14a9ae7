"""Charges: listing with refreshed late fees, payment, status changes."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from school_billing.api.deps import AdminOnly, CurrentContext
from school_billing.context import ensure_enrollment_access
from school_billing.models.charge import ChargeCreate, ChargePayBody, ChargeStatus, ChargeStatusBody
from school_billing.services import ledger

router = APIRouter()


@router.get("/")
async def list_charges(
    ctx: CurrentContext,
    enrollment_id: Optional[str] = None,
    status: Optional[ChargeStatus] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = None,
    sort: str = Query("due_date", pattern="^-?due_date$"),
):
    if not ctx.is_staff:
        if not ctx.enrollment_id:
            raise HTTPException(status_code=403, detail="Not authorized")
        if enrollment_id and enrollment_id != ctx.enrollment_id:
            raise HTTPException(status_code=403, detail="Not authorized")
        enrollment_id = ctx.enrollment_id
        search = None
    items = await ledger.list_charges(
        enrollment_id=enrollment_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        search=search,
        sort=sort,
    )
    return {"success": True, "data": [c.model_dump(mode="json") for c in items]}


@router.get("/mine")
async def my_charges(ctx: CurrentContext):
    """Charges of the caller's own enrollment, with a statement summary."""
    if not ctx.enrollment_id:
        raise HTTPException(status_code=404, detail="No enrollment linked to this account")
    items = await ledger.get_charges_for_enrollment(ctx.enrollment_id)
    return {
        "success": True,
        "data": [c.model_dump(mode="json") for c in items],
        "statement": ledger.summarize(items).model_dump(mode="json"),
    }


@router.get("/{charge_id}")
async def get_charge(charge_id: str, ctx: CurrentContext):
    charge = await ledger.get_charge(charge_id)
    ensure_enrollment_access(ctx, charge.enrollment_id)
    out = await ledger.get_charge_out(charge_id)
    return {"success": True, "data": out.model_dump(mode="json")}


@router.post("/", status_code=201)
async def create_charge(data: ChargeCreate, user: AdminOnly):
    charge = await ledger.create_charge(
        data.enrollment_id,
        data.base_amount,
        data.due_date,
        description=data.description,
        kind=data.kind,
        allow_same_month=data.allow_same_month,
    )
    return {"success": True, "id": str(charge.id)}


@router.put("/{charge_id}/pay")
async def pay_charge(charge_id: str, body: ChargePayBody, user: AdminOnly):
    charge = await ledger.register_payment(charge_id, body.paid_amount, body.paid_date)
    return {
        "success": True,
        "message": "Payment registered",
        "status": charge.status.value,
        "amount_due_at_payment": str(charge.amount_due_at_payment),
    }


@router.put("/{charge_id}/status")
async def set_charge_status(charge_id: str, body: ChargeStatusBody, user: AdminOnly):
    charge = await ledger.set_status(charge_id, body.status)
    return {"success": True, "status": charge.status.value}


@router.delete("/{charge_id}")
async def delete_charge(charge_id: str, user: AdminOnly):
    await ledger.delete_charge(charge_id)
    return {"success": True, "message": "Charge deleted"}
