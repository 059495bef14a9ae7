"""Annual enrollment agreement: anchor for the contract and the charges."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from beanie import DecimalAnnotation, Document
from pydantic import BaseModel, EmailStr, Field, model_validator


class Enrollment(Document):
    """Enrollment document: tuition terms and the linked student account."""

    student_name: str
    student_email: str
    date_of_birth: Optional[date] = None
    annual_tuition: DecimalAnnotation
    registration_fee: DecimalAnnotation = Decimal("0.00")
    due_day: int
    start_date: date
    student_user_id: Optional[str] = None
    # Set while a contract is PENDING or SIGNED_UNDER_REVIEW; claimed atomically.
    open_contract_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "enrollments"
        use_state_management = True


class EnrollmentCreate(BaseModel):
    student_name: str = Field(min_length=1)
    student_email: EmailStr
    date_of_birth: Optional[date] = None
    password: Optional[str] = None  # defaults to the birth date as DDMMYYYY
    annual_tuition: Decimal
    registration_fee: Decimal = Decimal("0.00")
    due_day: int = Field(ge=1, le=31)
    start_date: Optional[date] = None

    @model_validator(mode="after")
    def _require_credentials(self):
        if not self.password and not self.date_of_birth:
            raise ValueError("Either password or date_of_birth is required for the student account")
        return self


class InstallmentResult(BaseModel):
    description: str
    due_date: date
    amount: Decimal
    status: str  # created | skipped | failed
    charge_id: Optional[str] = None
    message: Optional[str] = None


class EnrollmentOutcome(BaseModel):
    """Result of the enrollment workflow; partial success is reported, not raised."""

    enrollment_id: str
    student_user_id: Optional[str] = None
    contract_id: Optional[str] = None
    charges_created: int = 0
    charges_skipped: int = 0
    charges_failed: int = 0
    results: list[InstallmentResult] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.charges_created > 0
