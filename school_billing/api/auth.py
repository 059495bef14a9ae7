"""Login, token refresh and the current account.

Access tokens carry the role and the enrollment id; a signed contract changes
the role, so clients swap in the token returned by the sign endpoint.
"""
from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, HTTPException
from jose import JWTError
from pydantic import BaseModel

from school_billing.api.deps import CurrentUser
from school_billing.models.user import User
from school_billing.services.credentials import (
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)

router = APIRouter()


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    role: str


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


def _issue(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(str(user.id), user.role.value, user.enrollment_id),
        refresh_token=create_refresh_token(str(user.id)),
        role=user.role.value,
    )


async def _active_user(user_id: str) -> User:
    try:
        user = await User.get(PydanticObjectId(user_id))
    except InvalidId:
        user = None
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


@router.post("/login", response_model=TokenResponse)
async def login(req: LoginRequest):
    user = await User.find_one(User.email == req.email.strip().lower())
    # Same answer for unknown e-mail, inactive account and wrong password.
    if not user or not user.is_active or not verify_password(req.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _issue(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(req: RefreshRequest):
    try:
        payload = decode_token(req.refresh_token)
    except JWTError:
        raise HTTPException(status_code=401, detail="Expired or invalid refresh token")
    if payload.get("type") != "refresh" or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    return _issue(await _active_user(payload["sub"]))


@router.get("/me")
async def me(user: CurrentUser):
    return {
        "id": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "full_name": user.full_name,
        "enrollment_id": user.enrollment_id,
    }
