"""Beanie document models and Pydantic schemas."""
from school_billing.models.user import User, UserRole, GATED_STUDENT_ROLES, STAFF_ROLES
from school_billing.models.role import Role, PermissionSet
from school_billing.models.enrollment import Enrollment, EnrollmentCreate, EnrollmentOutcome, InstallmentResult
from school_billing.models.charge import (
    Charge,
    ChargeCreate,
    ChargeKind,
    ChargeOut,
    ChargePayBody,
    ChargeStatement,
    ChargeStatus,
    ChargeStatusBody,
    CHARGE_TRANSITIONS,
)
from school_billing.models.contract import Contract, ContractCreate, ContractOut, ContractStatus, OPEN_CONTRACT_STATUSES

DOCUMENT_MODELS = [User, Role, Enrollment, Charge, Contract]

__all__ = [
    "User",
    "UserRole",
    "GATED_STUDENT_ROLES",
    "STAFF_ROLES",
    "Role",
    "PermissionSet",
    "Enrollment",
    "EnrollmentCreate",
    "EnrollmentOutcome",
    "InstallmentResult",
    "Charge",
    "ChargeCreate",
    "ChargeKind",
    "ChargeOut",
    "ChargePayBody",
    "ChargeStatement",
    "ChargeStatus",
    "ChargeStatusBody",
    "CHARGE_TRANSITIONS",
    "Contract",
    "ContractCreate",
    "ContractOut",
    "ContractStatus",
    "OPEN_CONTRACT_STATUSES",
    "DOCUMENT_MODELS",
]
