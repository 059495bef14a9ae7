"""Enrollment contracts: generated document, signature and validation."""
from datetime import datetime
from enum import Enum
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field


class ContractStatus(str, Enum):
    PENDING = "pending"
    SIGNED_UNDER_REVIEW = "signed_under_review"
    VALIDATED = "validated"


OPEN_CONTRACT_STATUSES = (ContractStatus.PENDING, ContractStatus.SIGNED_UNDER_REVIEW)


class Contract(Document):
    """Contract document. Transitions are strictly PENDING -> SIGNED_UNDER_REVIEW -> VALIDATED."""

    enrollment_id: Indexed(str)
    document_path: str
    signed_document_path: Optional[str] = None
    status: ContractStatus = ContractStatus.PENDING
    signature_ip: Optional[str] = None
    signature_timestamp: Optional[datetime] = None
    validated: bool = False
    validated_at: Optional[datetime] = None
    validated_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "contracts"
        use_state_management = True


class ContractCreate(BaseModel):
    enrollment_id: str
    document_path: str


class ContractOut(BaseModel):
    id: str
    enrollment_id: str
    document_path: str
    signed_document_path: Optional[str] = None
    status: ContractStatus
    signature_ip: Optional[str] = None
    signature_timestamp: Optional[datetime] = None
    validated: bool
    validated_at: Optional[datetime] = None
