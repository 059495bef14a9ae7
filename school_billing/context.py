"""Request context passed explicitly into every service call.

Authorization checks are plain functions of (context, resource) so services
never look up the current user on their own.
"""
from typing import Optional

from pydantic import BaseModel

from school_billing.errors import ForbiddenError
from school_billing.models.user import STAFF_ROLES, UserRole


class RequestContext(BaseModel):
    user_id: str
    role: UserRole
    enrollment_id: Optional[str] = None
    ip_address: Optional[str] = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def can_access_enrollment(ctx: RequestContext, enrollment_id: str) -> bool:
    return ctx.is_staff or (ctx.enrollment_id is not None and ctx.enrollment_id == enrollment_id)


def ensure_enrollment_access(ctx: RequestContext, enrollment_id: str) -> None:
    if not can_access_enrollment(ctx, enrollment_id):
        raise ForbiddenError("Not authorized for this enrollment")


def ensure_admin(ctx: RequestContext) -> None:
    if not ctx.is_admin:
        raise ForbiddenError("Administrator role required")
