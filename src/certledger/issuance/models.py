"""SQLAlchemy models for batches, student records and process logs."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from certledger.common.models import Base, TimestampMixin, generate_uuid

BATCH_STATUSES = ("submitted", "processing", "completed", "partially_completed", "failed")
STUDENT_STATUSES = ("pending", "certified", "failed")


class BatchModel(Base, TimestampMixin):
    __tablename__ = "batches"

    batch_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    message_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    batch_name: Mapped[str] = mapped_column(String(255), nullable=False)
    batch_description: Mapped[str] = mapped_column(Text, default="")
    academic_year: Mapped[str] = mapped_column(String(32), nullable=False)
    semester: Mapped[str] = mapped_column(String(64), nullable=False)
    faculty: Mapped[str] = mapped_column(String(128), nullable=False)
    program_type: Mapped[str] = mapped_column(String(32), default="undergraduate")
    graduation_ceremony_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
    contact_person: Mapped[str] = mapped_column(String(255), default="")
    contact_email: Mapped[str] = mapped_column(String(255), default="")
    submitted_by: Mapped[str] = mapped_column(String(128), default="")
    status: Mapped[str] = mapped_column(String(32), default="submitted", index=True)
    status_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Written once, at successful commit; never changed afterwards.
    transaction_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    committed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class StudentRecordModel(Base, TimestampMixin):
    __tablename__ = "student_records"
    __table_args__ = (
        UniqueConstraint("batch_id", "student_id", name="uq_student_batch"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    batch_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("batches.batch_id"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(default=0)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="")
    course: Mapped[str] = mapped_column(String(255), nullable=False)
    gpa: Mapped[float] = mapped_column(Float, nullable=False)
    graduation_date: Mapped[str] = mapped_column(String(32), nullable=False)
    university: Mapped[str] = mapped_column(String(255), default="")
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)

    certificate_hash: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True, index=True
    )
    certificate_id: Mapped[str | None] = mapped_column(String(160), nullable=True)
    # Only ever the real ledger transaction id of the batch commitment.
    transaction_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    certificate_pdf: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    blob_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    certified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class ProcessLogModel(Base, TimestampMixin):
    __tablename__ = "process_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    details: Mapped[dict] = mapped_column(JSON, default=dict)
    performed_by: Mapped[str] = mapped_column(String(128), default="system")


class InboxMessageModel(Base, TimestampMixin):
    __tablename__ = "inbox_messages"

    message_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    heading: Mapped[str] = mapped_column(String(255), default="")
    sender: Mapped[str] = mapped_column(String(128), default="")
    message_type: Mapped[str] = mapped_column(String(64), default="")
    batch_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    viewed: Mapped[bool] = mapped_column(Boolean, default=False)
    processed: Mapped[bool] = mapped_column(Boolean, default=False)
    received_at: Mapped[str | None] = mapped_column(String(64), nullable=True)
