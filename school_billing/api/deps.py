"""Shared dependencies: bearer-token user, role and module permission gates, request context."""
from typing import Annotated, Optional

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from school_billing.context import RequestContext
from school_billing.models.role import Role
from school_billing.models.user import User, UserRole
from school_billing.rbac import ACTION_BY_METHOD, PermissionAction
from school_billing.services.credentials import decode_token
from school_billing.services.roles import has_permission

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> User:
    if not credentials:
        raise _unauthorized("Not authenticated")
    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise _unauthorized("Invalid or expired token")
    # Refresh tokens are only accepted by /api/auth/refresh.
    if payload.get("type") != "access" or not payload.get("sub"):
        raise _unauthorized("Invalid token")
    try:
        user = await User.get(PydanticObjectId(payload["sub"]))
    except InvalidId:
        raise _unauthorized("Invalid token")
    if not user or not user.is_active:
        raise _unauthorized("User not found or inactive")
    return user


def require_roles(*allowed: UserRole):
    async def checker(user: Annotated[User, Depends(get_current_user)]):
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return checker


async def get_current_role(user: Annotated[User, Depends(get_current_user)]) -> Role | None:
    return await Role.find_one(Role.key == user.role.value)


def _action_for(request: Request) -> PermissionAction:
    action = ACTION_BY_METHOD.get(request.method.upper())
    if action is None:
        raise HTTPException(status_code=405, detail=f"Unsupported method for permission check: {request.method}")
    return action


def require_module_permission(module: str):
    """Router-level gate: the caller's role needs ``module``.<action for the HTTP method>."""

    async def checker(
        request: Request,
        user: Annotated[User, Depends(get_current_user)],
        role: Annotated[Role | None, Depends(get_current_role)],
    ):
        action = _action_for(request)
        if not has_permission(role, module, action):
            raise HTTPException(status_code=403, detail=f"Missing {module}.{action} permission")
        return user

    return checker


async def get_request_context(request: Request, user: Annotated[User, Depends(get_current_user)]) -> RequestContext:
    forwarded = request.headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    return RequestContext(
        user_id=str(user.id),
        role=user.role,
        enrollment_id=user.enrollment_id,
        ip_address=ip,
    )


# Type aliases for route injection
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentContext = Annotated[RequestContext, Depends(get_request_context)]
AdminOnly = Annotated[User, Depends(require_roles(UserRole.ADMIN))]
