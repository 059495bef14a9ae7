"""Default role provisioning and the module permission check."""
from __future__ import annotations

import logging
from datetime import datetime

from school_billing.models.role import PermissionSet, Role
from school_billing.rbac import DEFAULT_ROLE_PERMISSIONS, SYSTEM_MODULES

logger = logging.getLogger(__name__)


def has_permission(role: Role | None, module: str, action: str) -> bool:
    if role is None or not role.is_active:
        return False
    permission = role.permissions.get(module)
    return permission is not None and permission.allows(action)


def default_permissions(role_key: str) -> dict[str, PermissionSet]:
    defaults = DEFAULT_ROLE_PERMISSIONS.get(role_key, {})
    return {m["key"]: PermissionSet(**defaults.get(m["key"], {})) for m in SYSTEM_MODULES}


async def ensure_default_roles() -> None:
    """Create missing roles and add modules missing from stored ones."""
    for role_key in DEFAULT_ROLE_PERMISSIONS:
        defaults = default_permissions(role_key)
        role = await Role.find_one(Role.key == role_key)
        if role is None:
            await Role(key=role_key, name=role_key.replace("_", " ").title(), permissions=defaults).insert()
            logger.info("Created default role %s", role_key)
            continue

        missing = [module for module in defaults if module not in role.permissions]
        if not missing:
            continue
        # Stored permissions win; only new modules get their defaults.
        role.permissions = {**defaults, **role.permissions}
        role.updated_at = datetime.utcnow()
        await role.save()
        logger.info("Role %s backfilled with modules %s", role_key, missing)
