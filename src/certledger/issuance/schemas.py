"""Pydantic schemas for batch submission and issuance endpoints."""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


# ── Submission ──

class StudentInput(BaseModel):
    student_id: str = Field(..., min_length=1, max_length=64)
    first_name: str = Field(..., min_length=1, max_length=128)
    last_name: str = Field(..., min_length=1, max_length=128)
    email: str = Field(..., min_length=3, max_length=255)
    course: str = Field(..., min_length=1, max_length=255)
    graduation_date: str
    gpa: float = Field(..., ge=0.0, le=4.0)
    university: str = ""

    @field_validator("graduation_date")
    @classmethod
    def _iso_date(cls, value: str) -> str:
        date.fromisoformat(value[:10])
        return value


class BatchMetadataInput(BaseModel):
    batch_name: str = Field(..., min_length=1, max_length=255)
    batch_description: str = ""
    academic_year: str = Field(..., min_length=1, max_length=32)
    semester: str = Field(..., min_length=1, max_length=64)
    graduation_ceremony_date: Optional[str] = None
    faculty: str = Field(..., min_length=1, max_length=128)
    program_type: str = "undergraduate"
    contact_person: str = Field(..., min_length=1, max_length=255)
    contact_email: str = Field(..., min_length=3, max_length=255)
    notes: str = ""


class BatchSubmission(BaseModel):
    batch_id: Optional[str] = Field(default=None, max_length=64)
    submitted_by: str = ""
    metadata: BatchMetadataInput
    students: list[StudentInput] = Field(..., min_length=1)

    @field_validator("students")
    @classmethod
    def _unique_students(cls, students: list[StudentInput]) -> list[StudentInput]:
        ids = [s.student_id for s in students]
        if len(set(ids)) != len(ids):
            raise ValueError("student_id values must be unique within a batch")
        return students


# ── Responses ──

class StudentResponse(BaseModel):
    student_id: str
    first_name: str
    last_name: str
    email: str
    course: str
    gpa: float
    graduation_date: str
    university: str
    status: str
    certificate_hash: Optional[str] = None
    certificate_id: Optional[str] = None
    transaction_hash: Optional[str] = None
    certified_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BatchResponse(BaseModel):
    batch_id: str
    message_id: Optional[str] = None
    batch_name: str
    academic_year: str
    semester: str
    faculty: str
    program_type: str
    contact_person: str
    contact_email: str
    submitted_by: str
    status: str
    status_notes: Optional[str] = None
    transaction_id: Optional[str] = None
    committed_at: Optional[datetime] = None
    notified_at: Optional[datetime] = None
    created_at: datetime
    students_count: int = 0

    model_config = {"from_attributes": True}


class BatchDetailResponse(BatchResponse):
    students: list[StudentResponse] = []


class BatchStatusUpdate(BaseModel):
    status: str = Field(..., pattern=r"^(submitted|processing|completed|partially_completed|failed)$")
    notes: Optional[str] = None


class IssuedStudent(BaseModel):
    student_id: str
    name: str
    certificate_hash: str
    certificate_id: str
    transaction_hash: Optional[str] = None
    blob_id: Optional[str] = None


class IssuanceResponse(BaseModel):
    success: bool
    status: str
    batch_id: str
    batch_name: str
    students_processed: int
    transaction_id: Optional[str] = None
    explorer_url: Optional[str] = None
    students: list[IssuedStudent] = []
    warnings: list[str] = []
    message: str = ""


class InboxMessageResponse(BaseModel):
    message_id: str
    heading: str
    sender: str
    message_type: str
    batch_id: Optional[str] = None
    viewed: bool
    processed: bool
    received_at: Optional[str] = None
    summary: dict[str, Any] = {}


class CertificatePdfResponse(BaseModel):
    student_id: str
    student_name: str
    course: str
    certificate_id: Optional[str] = None
    pdf_base64: str
    download_url: str


class ProcessLogResponse(BaseModel):
    entity_type: str
    entity_id: str
    action: str
    status: str
    details: dict[str, Any] = {}
    performed_by: str
    created_at: datetime

    model_config = {"from_attributes": True}


class LedgerStatusResponse(BaseModel):
    address: str
    network: str
    balance_lovelace: int
    balance_ada: float
    utxo_count: int
    min_balance_lovelace: int
    can_transact: bool
