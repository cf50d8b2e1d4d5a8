"""Batch issuance pipeline.

A batch moves through ``received -> rendering -> committing -> persisting ->
notifying -> done``; ``failed`` is absorbing. Every certificate of a batch is
rendered before anything touches the ledger, and the batch is committed in
exactly one transaction. Once the ledger has accepted the commitment the
transaction id is never discarded: later failures degrade the batch to
``partially_completed`` (persistence) or to a warning (notification).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import httpx

from certledger.common.config import CertLedgerSettings
from certledger.common.database import DatabaseManager
from certledger.common.exceptions import (
    CertLedgerError,
    NotificationError,
    PersistenceAfterCommitError,
    RenderError,
    ValidationError,
)
from certledger.common.models import utcnow
from certledger.documents.renderer import (
    CertificateData,
    content_hash,
    make_certificate_id,
    render_certificate,
)
from certledger.issuance.models import BatchModel, StudentRecordModel
from certledger.issuance.store import CertificateStore
from certledger.ledger.committer import LedgerCommitter

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "CERTIFICATE_PDFS_ISSUED"


class IssuanceStage(str, Enum):
    RECEIVED = "received"
    RENDERING = "rendering"
    COMMITTING = "committing"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class IssuedCertificate:
    student_id: str
    name: str
    certificate_hash: str
    certificate_id: str
    pdf: bytes = field(repr=False, default=b"")
    transaction_hash: str | None = None
    blob_id: str | None = None


@dataclass
class IssuanceOutcome:
    batch_id: str
    batch_name: str
    status: str
    stage: IssuanceStage
    transaction_id: str | None = None
    explorer_url: str | None = None
    certificates: list[IssuedCertificate] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    already_issued: bool = False

    @property
    def success(self) -> bool:
        return self.status in ("completed", "partially_completed")


@dataclass(frozen=True)
class _Snapshot:
    """Detached copy of a batch and its students, safe to use outside a session."""

    batch: BatchModel
    students: list[StudentRecordModel]
    target: str


class BatchIssuancePipeline:
    def __init__(
        self,
        settings: CertLedgerSettings,
        db: DatabaseManager,
        committer: LedgerCommitter,
        channel,
        store: CertificateStore,
    ):
        self.settings = settings
        self.db = db
        self.committer = committer
        self.channel = channel
        self.store = store
        self._in_flight: set[str] = set()

    async def issue(self, batch_id: str, notify: bool = True) -> IssuanceOutcome:
        """Render, commit, persist and (optionally) notify one batch.

        Idempotent by batch id: a batch that already carries a transaction id
        returns its stored outcome without touching the ledger.

        Raises:
            BatchNotFoundError: unknown batch.
            ValidationError: empty batch, or the batch is already in flight.
            RenderError, InsufficientFundsError, CommitFailedError: the batch
                is marked ``failed`` and no student receives a transaction id.
        """
        if batch_id in self._in_flight:
            raise ValidationError(f"Batch {batch_id} is already being issued")
        self._in_flight.add(batch_id)
        try:
            return await self._issue(batch_id, notify)
        finally:
            self._in_flight.discard(batch_id)

    async def _issue(self, batch_id: str, notify: bool) -> IssuanceOutcome:
        async with self.db.get_session() as session:
            batch = await self.store.require_batch(session, batch_id)
            students = await self.store.get_students(session, batch_id)
            if batch.transaction_id:
                logger.info(
                    "Batch %s already committed in %s; not recommitting",
                    batch_id, batch.transaction_id, extra={"batch_id": batch_id},
                )
                return self._stored_outcome(batch, students)
            snapshot = _Snapshot(
                batch=batch, students=students,
                target=await self._target_org(session, batch),
            )

        if not snapshot.students:
            await self._fail(batch_id, IssuanceStage.RECEIVED, "Batch has no students")
            raise ValidationError(f"Batch {batch_id} has no students")

        await self._advance(batch_id, IssuanceStage.RECEIVED, status="processing",
                            details={"students": len(snapshot.students)})

        # rendering
        issued_at = utcnow()
        try:
            certificates = self._render_all(snapshot, issued_at)
        except RenderError as exc:
            await self._fail(batch_id, IssuanceStage.RENDERING, exc.message, code=exc.code)
            raise
        except Exception as exc:
            await self._fail(batch_id, IssuanceStage.RENDERING, f"Rendering failed: {exc}")
            raise
        await self._advance(batch_id, IssuanceStage.RENDERING,
                            details={"rendered": len(certificates)})

        # committing
        batch = snapshot.batch
        try:
            tx_id = await self.committer.commit(
                batch_id=batch_id,
                batch_name=batch.batch_name,
                hashes=[c.certificate_hash for c in certificates],
                academic_year=batch.academic_year,
                semester=batch.semester,
                faculty=batch.faculty,
            )
        except CertLedgerError as exc:
            await self._fail(batch_id, IssuanceStage.COMMITTING, exc.message, code=exc.code)
            raise

        outcome = IssuanceOutcome(
            batch_id=batch_id,
            batch_name=batch.batch_name,
            status="completed",
            stage=IssuanceStage.PERSISTING,
            transaction_id=tx_id,
            explorer_url=self.settings.explorer_url(tx_id),
            certificates=certificates,
        )

        # persisting
        try:
            await self._persist(batch_id, certificates, tx_id, issued_at)
        except Exception as exc:
            error = PersistenceAfterCommitError(
                f"Batch {batch_id} committed in {tx_id} but records could not be saved: {exc}",
                transaction_id=tx_id,
            )
            logger.error(
                "%s", error.message, extra={"batch_id": batch_id, "transaction_id": tx_id},
                exc_info=exc,
            )
            outcome.status = "partially_completed"
            outcome.warnings.append(error.message)
            await self._mark_partial(batch_id, tx_id, error.message)
        else:
            for cert in certificates:
                cert.transaction_hash = tx_id

        # notifying
        if notify:
            outcome.stage = IssuanceStage.NOTIFYING
            try:
                await self._notify(batch, certificates, tx_id, snapshot.target)
            except (httpx.HTTPError, CertLedgerError) as exc:
                message = f"Certificates issued but partner notification failed: {exc}"
                logger.warning("%s", message, extra={"batch_id": batch_id, "transaction_id": tx_id})
                outcome.warnings.append(message)
                await self._log_quietly(batch_id, "notification", "failed", {"error": str(exc)})
            else:
                await self._record_notified(batch_id, certificates)

        outcome.stage = IssuanceStage.DONE
        await self._log_quietly(batch_id, IssuanceStage.DONE.value, "success",
                                {"status": outcome.status, "transaction_id": tx_id})
        logger.info(
            "Batch %s issued: %d certificates in %s (%s)",
            batch_id, len(certificates), tx_id, outcome.status,
            extra={"batch_id": batch_id, "transaction_id": tx_id},
        )
        return outcome

    async def notify_batch(self, batch_id: str) -> IssuanceOutcome:
        """Resend the issuance notification for an already committed batch.

        Raises NotificationError when the channel rejects it.
        """
        async with self.db.get_session() as session:
            batch = await self.store.require_batch(session, batch_id)
            students = await self.store.get_students(session, batch_id)
            if not batch.transaction_id:
                raise ValidationError(f"Batch {batch_id} has not been committed yet")
            target = await self._target_org(session, batch)
        outcome = self._stored_outcome(batch, students)

        try:
            await self._notify(batch, outcome.certificates, batch.transaction_id, target)
        except (httpx.HTTPError, CertLedgerError) as exc:
            await self._log_quietly(batch_id, "notification", "failed", {"error": str(exc)})
            raise NotificationError(f"Notification for batch {batch_id} failed: {exc}") from exc
        await self._record_notified(batch_id, outcome.certificates)
        outcome.stage = IssuanceStage.DONE
        return outcome

    # ── Stages ──

    def _render_all(self, snapshot: _Snapshot, issued_at: datetime) -> list[IssuedCertificate]:
        batch = snapshot.batch
        certificates = []
        for student in snapshot.students:
            certificate_id = make_certificate_id(batch.batch_id, student.student_id, issued_at)
            pdf = render_certificate(CertificateData(
                student_id=student.student_id,
                student_name=student.full_name,
                course=student.course,
                gpa=student.gpa,
                graduation_date=student.graduation_date,
                university=student.university or self.settings.default_university,
                batch_id=batch.batch_id,
                batch_name=batch.batch_name,
                academic_year=batch.academic_year,
                semester=batch.semester,
                faculty=batch.faculty,
                issued_by=self.settings.issuer,
                issued_at=issued_at.isoformat(),
                certificate_id=certificate_id,
            ))
            certificates.append(IssuedCertificate(
                student_id=student.student_id,
                name=student.full_name,
                certificate_hash=content_hash(pdf),
                certificate_id=certificate_id,
                pdf=pdf,
            ))
        return certificates

    async def _persist(
        self,
        batch_id: str,
        certificates: list[IssuedCertificate],
        tx_id: str,
        issued_at: datetime,
    ) -> None:
        # The batch keeps the transaction id even if the student writes fail.
        async with self.db.get_session() as session:
            await self.store.set_batch_transaction(session, batch_id, tx_id)

        async with self.db.get_session() as session:
            for cert in certificates:
                await self.store.persist_certificate(
                    session, batch_id, cert.student_id,
                    certificate_hash=cert.certificate_hash,
                    certificate_id=cert.certificate_id,
                    pdf=cert.pdf,
                    transaction_id=tx_id,
                    certified_at=issued_at,
                )
            await self.store.update_batch_status(session, batch_id, "completed")
            await self.store.log_process(
                session, "batch", batch_id, IssuanceStage.PERSISTING.value, "success",
                batch_id=batch_id,
                details={"transaction_id": tx_id, "certificates": len(certificates)},
            )

    async def _notify(
        self,
        batch: BatchModel,
        certificates: list[IssuedCertificate],
        tx_id: str,
        target: str,
    ) -> None:
        refs = []
        for cert in certificates:
            blob = await self.channel.upload_blob(cert.pdf, {
                "filename": f"{cert.certificate_id}.pdf",
                "metadata": {
                    "student_id": cert.student_id,
                    "certificate_id": cert.certificate_id,
                    "certificate_hash": cert.certificate_hash,
                    "batch_id": batch.batch_id,
                },
            })
            cert.blob_id = blob["id"]
            refs.append({
                "student_id": cert.student_id,
                "student_name": cert.name,
                "certificate_id": cert.certificate_id,
                "certificate_hash": cert.certificate_hash,
                "pdf_data_id": blob["id"],
                "pdf_data_hash": blob.get("hash"),
            })

        payload = {
            "type": NOTIFICATION_TYPE,
            "batch_id": batch.batch_id,
            "batch_name": batch.batch_name,
            "cardano_tx_id": tx_id,
            "total_certificates": len(certificates),
            "certificate_pdf_refs": refs,
            "batch_details": {
                "academic_year": batch.academic_year,
                "semester": batch.semester,
                "faculty": batch.faculty,
            },
            "from": self.settings.organization_name,
            "to": target,
            "issued_at": utcnow().isoformat(),
        }
        await self.channel.send_private(payload, target)
        logger.info(
            "Notified %s of %d certificates for batch %s", target, len(refs), batch.batch_id,
            extra={"batch_id": batch.batch_id, "transaction_id": tx_id},
        )

    # ── Bookkeeping ──

    async def _target_org(self, session, batch: BatchModel) -> str:
        if batch.message_id:
            message = await self.store.get_inbox_message(session, batch.message_id)
            if message is not None and message.sender:
                return message.sender
        return self.settings.partner_organization

    async def _advance(
        self,
        batch_id: str,
        stage: IssuanceStage,
        status: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        async with self.db.get_session() as session:
            if status is not None:
                await self.store.update_batch_status(session, batch_id, status)
            await self.store.log_process(
                session, "batch", batch_id, stage.value, "success",
                batch_id=batch_id, details=details,
            )
        logger.debug("Batch %s %s", batch_id, stage.value, extra={"batch_id": batch_id})

    async def _fail(
        self, batch_id: str, stage: IssuanceStage, reason: str, code: str | None = None,
    ) -> None:
        logger.error(
            "Batch %s failed during %s: %s", batch_id, stage.value, reason,
            extra={"batch_id": batch_id},
        )
        async with self.db.get_session() as session:
            await self.store.update_batch_status(session, batch_id, "failed", notes=reason)
            await self.store.log_process(
                session, "batch", batch_id, stage.value, "failed",
                batch_id=batch_id, details={"error": reason, "code": code},
            )

    async def _mark_partial(self, batch_id: str, tx_id: str, reason: str) -> None:
        try:
            async with self.db.get_session() as session:
                batch = await self.store.require_batch(session, batch_id)
                if not batch.transaction_id:
                    batch.transaction_id = tx_id
                    batch.committed_at = utcnow()
                await self.store.update_batch_status(
                    session, batch_id, "partially_completed", notes=reason,
                )
        except Exception:
            logger.exception(
                "Could not mark batch %s partially completed; transaction %s",
                batch_id, tx_id, extra={"batch_id": batch_id, "transaction_id": tx_id},
            )

    async def _record_notified(
        self, batch_id: str, certificates: list[IssuedCertificate],
    ) -> None:
        try:
            async with self.db.get_session() as session:
                for cert in certificates:
                    if cert.blob_id:
                        await self.store.set_blob_id(session, batch_id, cert.student_id, cert.blob_id)
                await self.store.mark_notified(session, batch_id)
                await self.store.log_process(
                    session, "batch", batch_id, IssuanceStage.NOTIFYING.value, "success",
                    batch_id=batch_id, details={"blobs": sum(1 for c in certificates if c.blob_id)},
                )
        except Exception:
            logger.exception("Could not record notification for batch %s", batch_id,
                             extra={"batch_id": batch_id})

    async def _log_quietly(
        self, batch_id: str, action: str, status: str, details: dict[str, Any],
    ) -> None:
        try:
            async with self.db.get_session() as session:
                await self.store.log_process(
                    session, "batch", batch_id, action, status,
                    batch_id=batch_id, details=details,
                )
        except Exception:
            logger.exception("Could not write process log for batch %s", batch_id,
                             extra={"batch_id": batch_id})

    def _stored_outcome(
        self, batch: BatchModel, students: list[StudentRecordModel],
    ) -> IssuanceOutcome:
        certificates = [
            IssuedCertificate(
                student_id=s.student_id,
                name=s.full_name,
                certificate_hash=s.certificate_hash,
                certificate_id=s.certificate_id or "",
                pdf=s.certificate_pdf or b"",
                transaction_hash=s.transaction_hash,
                blob_id=s.blob_id,
            )
            for s in students if s.certificate_hash
        ]
        return IssuanceOutcome(
            batch_id=batch.batch_id,
            batch_name=batch.batch_name,
            status=batch.status,
            stage=IssuanceStage.DONE,
            transaction_id=batch.transaction_id,
            explorer_url=self.settings.explorer_url(batch.transaction_id)
            if batch.transaction_id else None,
            certificates=certificates,
            already_issued=True,
        )
