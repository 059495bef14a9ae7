"""RBAC: admins, teachers, students and the enrollment gate roles."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import EmailStr, Field


class UserRole(str, Enum):
    PENDING_STUDENT = "pending_student"
    PROVISIONAL_STUDENT = "provisional_student"
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


# Roles an enrollment account passes through before it is promoted to STUDENT.
GATED_STUDENT_ROLES = (UserRole.PENDING_STUDENT, UserRole.PROVISIONAL_STUDENT)
STAFF_ROLES = (UserRole.ADMIN, UserRole.TEACHER)


class User(Document):
    """User document; student accounts are linked to one enrollment."""

    email: Indexed(EmailStr, unique=True)
    hashed_password: str
    role: UserRole
    full_name: str
    is_active: bool = True
    enrollment_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"
        use_state_management = True
