"""Certificate verification against local records and ledger metadata."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from certledger.common.config import CertLedgerSettings
from certledger.common.database import DatabaseManager
from certledger.common.exceptions import ValidationError
from certledger.issuance.models import BatchModel, StudentRecordModel
from certledger.issuance.store import CertificateStore
from certledger.ledger.commitment import CertificateCommitment
from certledger.ledger.node import LookupState
from certledger.ledger.reader import LedgerReader

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    is_valid: bool = False
    database_check: bool = False
    blockchain_check: bool = False
    hash_match: bool = False
    batch_match: bool = False
    issuer_valid: bool = False
    message: str = ""
    certificate: dict[str, Any] | None = None
    blockchain_details: dict[str, Any] | None = None


def certificate_summary(
    student: StudentRecordModel, batch: BatchModel | None, issuer: str,
) -> dict[str, Any]:
    return {
        "student_name": student.full_name,
        "student_id": student.student_id,
        "course": student.course,
        "gpa": student.gpa,
        "graduation_date": student.graduation_date,
        "university": student.university,
        "batch_id": student.batch_id,
        "batch_name": batch.batch_name if batch else None,
        "faculty": batch.faculty if batch else None,
        "academic_year": batch.academic_year if batch else None,
        "semester": batch.semester if batch else None,
        "certificate_id": student.certificate_id,
        "certificate_hash": student.certificate_hash,
        "certified_at": student.certified_at.isoformat() if student.certified_at else None,
        "issued_by": issuer,
    }


class VerificationEngine:
    """Cross-checks a candidate content hash against storage and the ledger.

    Checks run in order and stop at the first one that cannot pass; a missing
    local record never reaches the ledger. Expected failures, including an
    unreachable indexer, are reported in the result rather than raised.
    """

    def __init__(
        self,
        settings: CertLedgerSettings,
        db: DatabaseManager,
        reader: LedgerReader,
        store: CertificateStore,
    ):
        self.settings = settings
        self.db = db
        self.reader = reader
        self.store = store

    async def verify(self, candidate_hash: str) -> VerificationResult:
        candidate_hash = (candidate_hash or "").strip().lower()
        async with self.db.get_session() as session:
            student = await self.store.get_student_by_hash(session, candidate_hash)
            if student is None:
                logger.info("Verification: hash %s not in local records", candidate_hash[:16])
                return VerificationResult(message="Certificate not found in university records")
            batch = await self.store.get_batch(session, student.batch_id)

        tx_id = student.transaction_hash or (batch.transaction_id if batch else None)
        if not tx_id:
            return VerificationResult(
                database_check=True,
                message="Certificate not recorded on blockchain",
            )

        try:
            lookup = await self.reader.read_metadata(tx_id)
        except httpx.HTTPError as exc:
            logger.warning("Ledger indexer unavailable while verifying %s: %s", tx_id, exc,
                           extra={"transaction_id": tx_id})
            return VerificationResult(
                database_check=True,
                message="Blockchain indexer unavailable; try again later",
                blockchain_details=self._link(tx_id),
            )

        if lookup.state is LookupState.NOT_INDEXED:
            return VerificationResult(
                database_check=True,
                message="Transaction is pending indexing on the blockchain; try again shortly",
                blockchain_details=self._link(tx_id),
            )
        if lookup.state is LookupState.NOT_FOUND:
            return VerificationResult(
                database_check=True,
                message="Transaction not found on Cardano blockchain",
                blockchain_details=self._link(tx_id),
            )

        commitment: CertificateCommitment = lookup.commitment
        hash_match = commitment.contains(candidate_hash)
        batch_match = commitment.batch_id == student.batch_id
        issuer_valid = (
            commitment.issuer == self.settings.issuer
            and commitment.authority == self.settings.authority
        )
        is_valid = hash_match and batch_match and issuer_valid

        if is_valid:
            message = "Certificate is valid and verified on Cardano blockchain"
        elif not hash_match:
            message = "Certificate hash is not part of the recorded batch commitment"
        elif not batch_match:
            message = "Certificate belongs to a different batch than the commitment"
        else:
            message = "Commitment was not issued by the expected authority"

        logger.info(
            "Verification of %s: valid=%s hash=%s batch=%s issuer=%s",
            candidate_hash[:16], is_valid, hash_match, batch_match, issuer_valid,
            extra={"batch_id": student.batch_id, "transaction_id": tx_id},
        )
        return VerificationResult(
            is_valid=is_valid,
            database_check=True,
            blockchain_check=True,
            hash_match=hash_match,
            batch_match=batch_match,
            issuer_valid=issuer_valid,
            message=message,
            certificate=self._certificate(student, batch, tx_id) if is_valid else None,
            blockchain_details=await self._details(tx_id),
        )

    async def search(
        self,
        student_id: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> list[dict[str, Any]]:
        """Certified records by student id, or by first and last name together.

        Raises ValidationError when neither a student id nor both names are given.
        """
        if not student_id and not (first_name and last_name):
            raise ValidationError("Either student ID or both first name and last name are required")
        async with self.db.get_session() as session:
            students = await self.store.search_students(
                session, student_id=student_id, first_name=first_name, last_name=last_name,
            )
            return [
                certificate_summary(
                    s, await self.store.get_batch(session, s.batch_id), self.settings.issuer,
                )
                for s in students
            ]

    async def certificate_for_student(self, student_id: str) -> dict[str, Any] | None:
        async with self.db.get_session() as session:
            student = await self.store.get_certified_by_student_id(session, student_id)
            if student is None:
                return None
            batch = await self.store.get_batch(session, student.batch_id)
            summary = certificate_summary(student, batch, self.settings.issuer)
        summary["has_pdf"] = student.certificate_pdf is not None
        return summary

    def _certificate(
        self, student: StudentRecordModel, batch: BatchModel | None, tx_id: str,
    ) -> dict[str, Any]:
        summary = certificate_summary(student, batch, self.settings.issuer)
        summary["cardano_tx_id"] = tx_id
        summary["blockchain_explorer"] = self.settings.explorer_url(tx_id)
        return summary

    def _link(self, tx_id: str) -> dict[str, Any]:
        return {"transaction_id": tx_id, "explorer_url": self.settings.explorer_url(tx_id)}

    async def _details(self, tx_id: str) -> dict[str, Any]:
        details = self._link(tx_id)
        try:
            info = await self.reader.transaction_details(tx_id)
        except httpx.HTTPError as exc:
            logger.debug("Could not load details for %s: %s", tx_id, exc)
            return details
        if info:
            details.update({
                "block_height": info.get("block_height"),
                "block_time": info.get("block_time"),
                "confirmations": info.get("confirmations", 0),
            })
        return details
