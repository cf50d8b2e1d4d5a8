"""Issuance API router — batches, inbox, certificate documents and ledger health."""

import base64
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from certledger.common.exceptions import (
    BatchNotFoundError,
    CertLedgerError,
    ChannelError,
    CommitFailedError,
    InsufficientFundsError,
    NotificationError,
    RenderError,
    ValidationError,
)
from certledger.common.security import require_api_key
from certledger.issuance.models import BatchModel
from certledger.issuance.pipeline import IssuanceOutcome
from certledger.issuance.schemas import (
    BatchDetailResponse,
    BatchResponse,
    BatchStatusUpdate,
    BatchSubmission,
    CertificatePdfResponse,
    InboxMessageResponse,
    IssuanceResponse,
    IssuedStudent,
    LedgerStatusResponse,
    ProcessLogResponse,
    StudentResponse,
)

router = APIRouter()


def _get_db():
    from certledger.deps import get_db
    return get_db()


def _get_store():
    from certledger.deps import get_store
    return get_store()


def _get_pipeline():
    from certledger.deps import get_pipeline
    return get_pipeline()


def _get_intake():
    from certledger.deps import get_intake
    return get_intake()


def _get_committer():
    from certledger.deps import get_committer
    return get_committer()


def _http_error(exc: CertLedgerError) -> HTTPException:
    if isinstance(exc, BatchNotFoundError):
        return HTTPException(status_code=404, detail=exc.message)
    if isinstance(exc, (ValidationError, RenderError)):
        return HTTPException(status_code=400, detail=exc.message)
    if isinstance(exc, InsufficientFundsError):
        return HTTPException(status_code=402, detail=exc.message)
    if isinstance(exc, (CommitFailedError, NotificationError, ChannelError)):
        return HTTPException(status_code=502, detail=exc.message)
    return HTTPException(status_code=500, detail=exc.message)


def _batch_response(batch: BatchModel, students_count: int) -> BatchResponse:
    return BatchResponse.model_validate(batch).model_copy(
        update={"students_count": students_count}
    )


def _issuance_response(outcome: IssuanceOutcome) -> IssuanceResponse:
    if outcome.already_issued:
        message = f"Batch already issued in transaction {outcome.transaction_id}"
    elif outcome.status == "completed":
        message = f"Issued {len(outcome.certificates)} certificates"
    else:
        message = "Certificates committed to the ledger with warnings"
    return IssuanceResponse(
        success=outcome.success,
        status=outcome.status,
        batch_id=outcome.batch_id,
        batch_name=outcome.batch_name,
        students_processed=len(outcome.certificates),
        transaction_id=outcome.transaction_id,
        explorer_url=outcome.explorer_url,
        students=[
            IssuedStudent(
                student_id=c.student_id,
                name=c.name,
                certificate_hash=c.certificate_hash,
                certificate_id=c.certificate_id,
                transaction_hash=c.transaction_hash,
                blob_id=c.blob_id,
            )
            for c in outcome.certificates
        ],
        warnings=outcome.warnings,
        message=message,
    )


# ── Batches ──

@router.get("/batches", response_model=list[BatchResponse])
async def list_batches(
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    _=Depends(require_api_key),
):
    store = _get_store()
    async with _get_db().get_session() as session:
        batches = await store.list_batches(session, status=status, limit=limit)
        return [
            _batch_response(b, await store.count_students(session, b.batch_id))
            for b in batches
        ]


@router.post("/batches", response_model=BatchResponse, status_code=201)
async def submit_batch(body: BatchSubmission, _=Depends(require_api_key)):
    from certledger.common.config import get_settings

    store = _get_store()
    async with _get_db().get_session() as session:
        try:
            batch = await store.create_batch(
                session, body, default_university=get_settings().default_university,
            )
        except ValidationError as e:
            raise HTTPException(status_code=409, detail=e.message)
        return _batch_response(batch, len(body.students))


@router.get("/batches/{batch_id}", response_model=BatchDetailResponse)
async def get_batch(batch_id: str, _=Depends(require_api_key)):
    store = _get_store()
    async with _get_db().get_session() as session:
        batch = await store.get_batch(session, batch_id)
        if batch is None:
            raise HTTPException(status_code=404, detail="Batch not found")
        students = await store.get_students(session, batch_id)
        return BatchDetailResponse(
            **_batch_response(batch, len(students)).model_dump(),
            students=[StudentResponse.model_validate(s) for s in students],
        )


@router.get("/batches/{batch_id}/students", response_model=list[StudentResponse])
async def get_batch_students(batch_id: str, _=Depends(require_api_key)):
    store = _get_store()
    async with _get_db().get_session() as session:
        if await store.get_batch(session, batch_id) is None:
            raise HTTPException(status_code=404, detail="Batch not found")
        students = await store.get_students(session, batch_id)
        return [StudentResponse.model_validate(s) for s in students]


@router.get("/batches/{batch_id}/logs", response_model=list[ProcessLogResponse])
async def get_batch_logs(batch_id: str, _=Depends(require_api_key)):
    store = _get_store()
    async with _get_db().get_session() as session:
        logs = await store.get_process_logs(session, batch_id)
        return [ProcessLogResponse.model_validate(entry) for entry in logs]


@router.patch("/batches/{batch_id}/status", response_model=BatchResponse)
async def update_batch_status(
    batch_id: str, body: BatchStatusUpdate, _=Depends(require_api_key)
):
    store = _get_store()
    async with _get_db().get_session() as session:
        try:
            batch = await store.update_batch_status(
                session, batch_id, body.status, notes=body.notes, performed_by="admin",
            )
        except CertLedgerError as e:
            raise _http_error(e)
        return _batch_response(batch, await store.count_students(session, batch_id))


@router.post("/batches/{batch_id}/issue", response_model=IssuanceResponse)
async def issue_batch(
    batch_id: str,
    notify: bool = Query(True),
    _=Depends(require_api_key),
):
    try:
        outcome = await _get_pipeline().issue(batch_id, notify=notify)
    except CertLedgerError as e:
        raise _http_error(e)
    return _issuance_response(outcome)


@router.post("/batches/{batch_id}/notify", response_model=IssuanceResponse)
async def notify_batch(batch_id: str, _=Depends(require_api_key)):
    try:
        outcome = await _get_pipeline().notify_batch(batch_id)
    except CertLedgerError as e:
        raise _http_error(e)
    return _issuance_response(outcome)


# ── Inbox ──

@router.get("/inbox", response_model=list[InboxMessageResponse])
async def list_inbox(
    viewed: Optional[bool] = Query(None),
    _=Depends(require_api_key),
):
    async with _get_db().get_session() as session:
        try:
            messages = await _get_intake().sync_inbox(session)
        except httpx.HTTPError as e:
            raise HTTPException(status_code=502, detail=f"Private channel unavailable: {e}")
        return [
            InboxMessageResponse(
                message_id=m.message_id,
                heading=m.heading,
                sender=m.sender,
                message_type=m.message_type,
                batch_id=m.batch_id,
                viewed=m.viewed,
                processed=m.processed,
                received_at=m.received_at,
            )
            for m in messages
            if viewed is None or m.viewed == viewed
        ]


@router.post("/inbox/{message_id}/ingest", response_model=BatchResponse)
async def ingest_message(message_id: str, _=Depends(require_api_key)):
    store = _get_store()
    async with _get_db().get_session() as session:
        try:
            batch = await _get_intake().ingest(session, message_id)
        except CertLedgerError as e:
            raise _http_error(e)
        except httpx.HTTPError as e:
            raise HTTPException(status_code=502, detail=f"Private channel unavailable: {e}")
        return _batch_response(batch, await store.count_students(session, batch.batch_id))


@router.post("/inbox/{message_id}/issue", response_model=IssuanceResponse)
async def issue_from_message(message_id: str, _=Depends(require_api_key)):
    async with _get_db().get_session() as session:
        try:
            batch = await _get_intake().ingest(session, message_id)
        except CertLedgerError as e:
            raise _http_error(e)
        except httpx.HTTPError as e:
            raise HTTPException(status_code=502, detail=f"Private channel unavailable: {e}")
        batch_id = batch.batch_id
    try:
        outcome = await _get_pipeline().issue(batch_id)
    except CertLedgerError as e:
        raise _http_error(e)
    return _issuance_response(outcome)


@router.post("/inbox/{message_id}/viewed", status_code=204)
async def mark_message_viewed(message_id: str, _=Depends(require_api_key)):
    async with _get_db().get_session() as session:
        if not await _get_store().mark_viewed(session, message_id):
            raise HTTPException(status_code=404, detail="Message not found")


# ── Certificate documents ──

@router.get("/certificates/{certificate_hash}/download")
async def download_certificate(certificate_hash: str):
    async with _get_db().get_session() as session:
        student = await _get_store().get_student_by_hash(session, certificate_hash.lower())
    if student is None or student.certificate_pdf is None:
        raise HTTPException(status_code=404, detail="Certificate not found")
    filename = f"{student.certificate_id or student.student_id}.pdf"
    return Response(
        content=student.certificate_pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/certificates/{certificate_hash}/pdf", response_model=CertificatePdfResponse)
async def certificate_pdf(certificate_hash: str):
    from certledger.common.config import get_settings

    async with _get_db().get_session() as session:
        student = await _get_store().get_student_by_hash(session, certificate_hash.lower())
    if student is None or student.certificate_pdf is None:
        raise HTTPException(status_code=404, detail="Certificate not found")
    return CertificatePdfResponse(
        student_id=student.student_id,
        student_name=student.full_name,
        course=student.course,
        certificate_id=student.certificate_id,
        pdf_base64=base64.b64encode(student.certificate_pdf).decode(),
        download_url=f"{get_settings().api_prefix}/certificates/{student.certificate_hash}/download",
    )


# ── Ledger ──

@router.get("/ledger/status", response_model=LedgerStatusResponse)
async def ledger_status(_=Depends(require_api_key)):
    try:
        status = await _get_committer().status()
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"Ledger node unavailable: {e}")
    return LedgerStatusResponse(**status)
