"""Billing modules, the action each HTTP method needs, and default grants per role."""
from __future__ import annotations

from typing import Literal

PermissionAction = Literal["view", "add", "edit", "delete"]

ACTION_BY_METHOD: dict[str, PermissionAction] = {
    "GET": "view",
    "HEAD": "view",
    "OPTIONS": "view",
    "POST": "add",
    "PUT": "edit",
    "PATCH": "edit",
    "DELETE": "delete",
}

SYSTEM_MODULES: list[dict[str, str]] = [
    {"key": "enrollments", "name": "Enrollments"},
    {"key": "charges", "name": "Charges"},
    {"key": "contracts", "name": "Contracts"},
]

ALL_ACTIONS: tuple[PermissionAction, ...] = ("view", "add", "edit", "delete")


def grant(*actions: PermissionAction) -> dict[str, bool]:
    return {action: action in actions for action in ALL_ACTIONS}


def _everywhere(flags: dict[str, bool]) -> dict[str, dict[str, bool]]:
    return {m["key"]: dict(flags) for m in SYSTEM_MODULES}


# Modules left out of a role get no access. A pending student only reaches the
# contract screens, and signing is a POST.
DEFAULT_ROLE_PERMISSIONS: dict[str, dict[str, dict[str, bool]]] = {
    "admin": _everywhere(grant(*ALL_ACTIONS)),
    "teacher": _everywhere(grant("view")),
    "student": _everywhere(grant("view")),
    "provisional_student": {"charges": grant("view"), "contracts": grant("view")},
    "pending_student": {"contracts": grant("view", "add")},
}
