"""Storage operations for batches, student records, inbox and process logs."""

import random
import time
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from certledger.common.exceptions import BatchNotFoundError, ValidationError
from certledger.common.models import utcnow
from certledger.issuance.models import (
    BATCH_STATUSES,
    BatchModel,
    InboxMessageModel,
    ProcessLogModel,
    StudentRecordModel,
)
from certledger.issuance.schemas import BatchSubmission


def new_batch_id() -> str:
    """System-assigned batch id: ``batch_<epoch-ms>_<6 random chars>``."""
    suffix = "".join(random.choices("abcdefghijklmnopqrstuvwxyz0123456789", k=6))
    return f"batch_{int(time.time() * 1000)}_{suffix}"


class CertificateStore:
    """Query and mutation helpers; callers own the session and transaction."""

    # ── Batches ──

    async def create_batch(
        self,
        session: AsyncSession,
        submission: BatchSubmission,
        message_id: str | None = None,
        default_university: str = "",
    ) -> BatchModel:
        """Persist a submitted batch and its students with status ``submitted``.

        Raises ValidationError when the batch id is already taken.
        """
        batch_id = submission.batch_id or new_batch_id()
        if await session.get(BatchModel, batch_id) is not None:
            raise ValidationError(f"Batch {batch_id} already exists")

        meta = submission.metadata
        batch = BatchModel(
            batch_id=batch_id,
            message_id=message_id,
            batch_name=meta.batch_name,
            batch_description=meta.batch_description,
            academic_year=meta.academic_year,
            semester=meta.semester,
            faculty=meta.faculty,
            program_type=meta.program_type,
            graduation_ceremony_date=meta.graduation_ceremony_date,
            contact_person=meta.contact_person,
            contact_email=meta.contact_email,
            submitted_by=submission.submitted_by,
            status="submitted",
            status_notes=meta.notes or None,
        )
        session.add(batch)
        for position, student in enumerate(submission.students):
            session.add(StudentRecordModel(
                batch_id=batch_id,
                position=position,
                student_id=student.student_id,
                first_name=student.first_name,
                last_name=student.last_name,
                email=student.email,
                course=student.course,
                gpa=student.gpa,
                graduation_date=student.graduation_date,
                university=student.university or default_university,
                status="pending",
            ))
        await session.flush()
        await self.log_process(
            session, "batch", batch_id, "batch_created", "success",
            batch_id=batch_id,
            details={"students": len(submission.students), "message_id": message_id},
        )
        return batch

    async def get_batch(self, session: AsyncSession, batch_id: str) -> BatchModel | None:
        return await session.get(BatchModel, batch_id)

    async def require_batch(self, session: AsyncSession, batch_id: str) -> BatchModel:
        batch = await self.get_batch(session, batch_id)
        if batch is None:
            raise BatchNotFoundError(f"Batch {batch_id} not found")
        return batch

    async def get_batch_by_message(
        self, session: AsyncSession, message_id: str
    ) -> BatchModel | None:
        result = await session.execute(
            select(BatchModel).where(BatchModel.message_id == message_id)
        )
        return result.scalars().first()

    async def list_batches(
        self, session: AsyncSession, status: str | None = None, limit: int = 50
    ) -> list[BatchModel]:
        stmt = select(BatchModel).order_by(BatchModel.created_at.desc()).limit(limit)
        if status:
            stmt = stmt.where(BatchModel.status == status)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def count_students(self, session: AsyncSession, batch_id: str) -> int:
        result = await session.execute(
            select(func.count()).select_from(StudentRecordModel)
            .where(StudentRecordModel.batch_id == batch_id)
        )
        return int(result.scalar_one())

    async def update_batch_status(
        self,
        session: AsyncSession,
        batch_id: str,
        status: str,
        notes: str | None = None,
        performed_by: str = "system",
    ) -> BatchModel:
        if status not in BATCH_STATUSES:
            raise ValidationError(f"Unknown batch status: {status}")
        batch = await self.require_batch(session, batch_id)
        previous = batch.status
        batch.status = status
        if notes is not None:
            batch.status_notes = notes
        await session.flush()
        await self.log_process(
            session, "batch", batch_id, "status_update", "success",
            batch_id=batch_id, performed_by=performed_by,
            details={"from": previous, "to": status, "notes": notes},
        )
        return batch

    async def set_batch_transaction(
        self, session: AsyncSession, batch_id: str, transaction_id: str
    ) -> BatchModel:
        """Record the commitment transaction id; it can only be set once."""
        batch = await self.require_batch(session, batch_id)
        if batch.transaction_id and batch.transaction_id != transaction_id:
            raise ValidationError(
                f"Batch {batch_id} is already committed in {batch.transaction_id}"
            )
        batch.transaction_id = transaction_id
        batch.committed_at = batch.committed_at or utcnow()
        await session.flush()
        return batch

    async def mark_notified(self, session: AsyncSession, batch_id: str) -> None:
        batch = await self.require_batch(session, batch_id)
        batch.notified_at = utcnow()
        await session.flush()

    # ── Students ──

    async def get_students(
        self, session: AsyncSession, batch_id: str
    ) -> list[StudentRecordModel]:
        result = await session.execute(
            select(StudentRecordModel)
            .where(StudentRecordModel.batch_id == batch_id)
            .order_by(StudentRecordModel.position)
        )
        return list(result.scalars().all())

    async def persist_certificate(
        self,
        session: AsyncSession,
        batch_id: str,
        student_id: str,
        certificate_hash: str,
        certificate_id: str,
        pdf: bytes,
        transaction_id: str,
        certified_at: datetime,
    ) -> StudentRecordModel:
        result = await session.execute(
            select(StudentRecordModel).where(
                StudentRecordModel.batch_id == batch_id,
                StudentRecordModel.student_id == student_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise BatchNotFoundError(f"Student {student_id} not found in batch {batch_id}")
        record.certificate_hash = certificate_hash
        record.certificate_id = certificate_id
        record.certificate_pdf = pdf
        record.transaction_hash = transaction_id
        record.certified_at = certified_at
        record.status = "certified"
        await session.flush()
        return record

    async def set_blob_id(
        self, session: AsyncSession, batch_id: str, student_id: str, blob_id: str
    ) -> None:
        result = await session.execute(
            select(StudentRecordModel).where(
                StudentRecordModel.batch_id == batch_id,
                StudentRecordModel.student_id == student_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is not None:
            record.blob_id = blob_id
            await session.flush()

    async def get_student_by_hash(
        self, session: AsyncSession, certificate_hash: str
    ) -> StudentRecordModel | None:
        result = await session.execute(
            select(StudentRecordModel)
            .where(StudentRecordModel.certificate_hash == certificate_hash)
        )
        return result.scalar_one_or_none()

    async def get_certified_by_student_id(
        self, session: AsyncSession, student_id: str
    ) -> StudentRecordModel | None:
        """Most recently certified record for ``student_id``."""
        result = await session.execute(
            select(StudentRecordModel)
            .where(
                StudentRecordModel.student_id == student_id,
                StudentRecordModel.certificate_hash.is_not(None),
            )
            .order_by(StudentRecordModel.certified_at.desc())
        )
        return result.scalars().first()

    async def search_students(
        self,
        session: AsyncSession,
        student_id: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        limit: int = 20,
    ) -> list[StudentRecordModel]:
        """Certified records matching a student id or a (partial) name."""
        stmt = select(StudentRecordModel).where(
            StudentRecordModel.certificate_hash.is_not(None)
        )
        if student_id:
            stmt = stmt.where(StudentRecordModel.student_id == student_id)
        elif first_name or last_name:
            clauses = []
            if first_name:
                clauses.append(StudentRecordModel.first_name.ilike(f"%{first_name}%"))
            if last_name:
                clauses.append(StudentRecordModel.last_name.ilike(f"%{last_name}%"))
            stmt = stmt.where(*clauses)
        else:
            raise ValidationError("Provide a student_id or a first/last name to search")
        result = await session.execute(
            stmt.order_by(StudentRecordModel.certified_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    # ── Inbox ──

    async def upsert_inbox_message(
        self, session: AsyncSession, message_id: str, **fields: Any
    ) -> tuple[InboxMessageModel, bool]:
        """Returns (message, created). Redelivered messages are left untouched."""
        existing = await session.get(InboxMessageModel, message_id)
        if existing is not None:
            return existing, False
        message = InboxMessageModel(message_id=message_id, viewed=False, processed=False, **fields)
        session.add(message)
        await session.flush()
        return message, True

    async def get_inbox_message(
        self, session: AsyncSession, message_id: str
    ) -> InboxMessageModel | None:
        return await session.get(InboxMessageModel, message_id)

    async def list_inbox(
        self, session: AsyncSession, unviewed_only: bool = False
    ) -> list[InboxMessageModel]:
        stmt = select(InboxMessageModel).order_by(InboxMessageModel.received_at.desc())
        if unviewed_only:
            stmt = stmt.where(InboxMessageModel.viewed.is_(False))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def mark_viewed(self, session: AsyncSession, message_id: str) -> bool:
        message = await self.get_inbox_message(session, message_id)
        if message is None:
            return False
        message.viewed = True
        await session.flush()
        return True

    async def mark_processed(
        self, session: AsyncSession, message_id: str, batch_id: str
    ) -> None:
        message = await self.get_inbox_message(session, message_id)
        if message is not None:
            message.processed = True
            message.batch_id = batch_id
            await session.flush()

    # ── Process log ──

    async def log_process(
        self,
        session: AsyncSession,
        entity_type: str,
        entity_id: str,
        action: str,
        status: str,
        batch_id: str | None = None,
        details: dict | None = None,
        performed_by: str = "system",
    ) -> ProcessLogModel:
        entry = ProcessLogModel(
            entity_type=entity_type,
            entity_id=entity_id,
            batch_id=batch_id,
            action=action,
            status=status,
            details=details or {},
            performed_by=performed_by,
        )
        session.add(entry)
        await session.flush()
        return entry

    async def get_process_logs(
        self, session: AsyncSession, batch_id: str
    ) -> list[ProcessLogModel]:
        result = await session.execute(
            select(ProcessLogModel)
            .where(ProcessLogModel.batch_id == batch_id)
            .order_by(ProcessLogModel.created_at)
        )
        return list(result.scalars().all())
