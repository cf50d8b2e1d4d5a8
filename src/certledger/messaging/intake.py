"""Batch intake — turns private channel messages into stored batches."""

import json
import logging
from typing import Any

import pydantic

from certledger.common.config import CertLedgerSettings
from certledger.common.exceptions import ValidationError
from certledger.issuance.models import BatchModel, InboxMessageModel
from certledger.issuance.schemas import BatchSubmission
from certledger.issuance.store import CertificateStore

logger = logging.getLogger(__name__)

SUBMISSION_TYPES = ("STUDENT_BATCH_SUBMISSION", "STUDENT_BATCH_SUBMISSION_WITH_METADATA")


def decode_value(value: Any) -> dict[str, Any]:
    """Data values arrive either as JSON text or as an already-decoded object."""
    if isinstance(value, (bytes, str)):
        try:
            value = json.loads(value)
        except ValueError as exc:
            raise ValidationError(f"Message payload is not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise ValidationError("Message payload must be a JSON object")
    return value


def parse_submission(value: Any) -> tuple[BatchSubmission, dict[str, Any]]:
    """Validate a batch submission payload.

    Returns the submission and the decoded envelope (``type``, ``from``,
    ``to``, ``summary``). Raises ValidationError for anything malformed.
    """
    envelope = decode_value(value)
    if envelope.get("type") not in SUBMISSION_TYPES:
        raise ValidationError(f"Unsupported message type: {envelope.get('type')!r}")
    batch = envelope.get("batch")
    if not isinstance(batch, dict):
        raise ValidationError("Submission carries no batch")
    try:
        submission = BatchSubmission.model_validate(batch)
    except pydantic.ValidationError as exc:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationError(f"Invalid batch submission: {errors}") from exc
    return submission, envelope


class BatchIntake:
    """Reads submissions addressed to this organization off the private channel.

    Delivery is at-least-once, so both the inbox and batch creation are
    idempotent: by message id and by batch id.
    """

    def __init__(self, settings: CertLedgerSettings, channel, store: CertificateStore):
        self.settings = settings
        self.channel = channel
        self.store = store

    async def _load(self, message: dict[str, Any]) -> tuple[BatchSubmission, dict[str, Any]]:
        refs = message.get("data") or []
        if not refs:
            raise ValidationError("Message carries no data")
        items = await self.channel.retrieve_data(refs[:1])
        return parse_submission(items[0].get("value"))

    async def sync_inbox(self, session) -> list[InboxMessageModel]:
        """Record new submission messages in the inbox and return the inbox."""
        messages = await self.channel.get_messages(self.settings.inbox_fetch_limit)
        for message in messages:
            if message.get("local"):
                continue
            header = message.get("header", {})
            try:
                submission, envelope = await self._load(message)
            except ValidationError as exc:
                logger.debug("Skipping message %s: %s", header.get("id"), exc)
                continue
            if envelope.get("to") not in (None, self.settings.organization_name):
                continue
            _, created = await self.store.upsert_inbox_message(
                session,
                header["id"],
                heading=f"New Batch: {submission.metadata.batch_name}",
                sender=envelope.get("from", header.get("author", "")),
                message_type=envelope["type"],
                batch_id=submission.batch_id,
                received_at=header.get("created"),
            )
            if created:
                logger.info(
                    "New batch submission %s from %s", header["id"], envelope.get("from"),
                    extra={"batch_id": submission.batch_id},
                )
        return await self.store.list_inbox(session)

    async def find_message(self, message_id: str) -> dict[str, Any] | None:
        messages = await self.channel.get_messages(self.settings.inbox_fetch_limit)
        for message in messages:
            if message.get("header", {}).get("id") == message_id:
                return message
        return None

    async def ingest(self, session, message_id: str) -> BatchModel:
        """Store the batch carried by ``message_id``; returns the existing batch on redelivery."""
        existing = await self.store.get_batch_by_message(session, message_id)
        if existing is not None:
            return existing

        message = await self.find_message(message_id)
        if message is None:
            raise ValidationError(f"Message {message_id} not found on the channel")
        submission, envelope = await self._load(message)
        header = message.get("header", {})

        await self.store.upsert_inbox_message(
            session,
            message_id,
            heading=f"New Batch: {submission.metadata.batch_name}",
            sender=envelope.get("from", header.get("author", "")),
            message_type=envelope["type"],
            batch_id=submission.batch_id,
            received_at=header.get("created"),
        )

        batch = None
        if submission.batch_id:
            batch = await self.store.get_batch(session, submission.batch_id)
        if batch is None:
            batch = await self.store.create_batch(
                session, submission,
                message_id=message_id,
                default_university=self.settings.default_university,
            )
            logger.info(
                "Ingested batch %s (%d students) from message %s",
                batch.batch_id, len(submission.students), message_id,
                extra={"batch_id": batch.batch_id},
            )
        else:
            logger.info("Batch %s already ingested; ignoring redelivery", batch.batch_id)
        await self.store.mark_processed(session, message_id, batch.batch_id)
        return batch
