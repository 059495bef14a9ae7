"""Stored permission sets, one per user role."""
from __future__ import annotations

from datetime import datetime

from beanie import Document, Indexed
from pydantic import BaseModel, Field, field_validator

from school_billing.rbac import SYSTEM_MODULES, PermissionAction

MODULE_KEYS = {m["key"] for m in SYSTEM_MODULES}


class PermissionSet(BaseModel):
    view: bool = False
    add: bool = False
    edit: bool = False
    delete: bool = False

    def allows(self, action: PermissionAction) -> bool:
        return bool(getattr(self, action, False))


class Role(Document):
    """Permissions of one ``UserRole`` value over the billing modules.

    Roles are created from the defaults in ``rbac`` at startup; an operator may
    tighten a stored role in the database and the change is kept on restart.
    """

    key: Indexed(str, unique=True)
    name: str
    is_active: bool = True
    permissions: dict[str, PermissionSet] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("permissions")
    @classmethod
    def _known_modules_only(cls, value: dict[str, PermissionSet]) -> dict[str, PermissionSet]:
        unknown = sorted(set(value) - MODULE_KEYS)
        if unknown:
            raise ValueError(f"Unsupported modules in permissions: {unknown}")
        return value

    class Settings:
        name = "roles"
        use_state_management = True
