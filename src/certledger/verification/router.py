"""Public verification API — no authentication required."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from certledger.common.exceptions import ValidationError
from certledger.verification.engine import VerificationResult
from certledger.verification.schemas import (
    BlockchainDetails,
    SearchResponse,
    StudentCertificateResponse,
    VerificationResponse,
    VerificationSteps,
    VerifyRequest,
    certificate_info,
)

router = APIRouter(prefix="/verify", tags=["verification"])


def _get_engine():
    from certledger.deps import get_verification_engine
    return get_verification_engine()


def _prefix() -> str:
    from certledger.common.config import get_settings
    return get_settings().api_prefix


def _to_response(result: VerificationResult) -> VerificationResponse:
    return VerificationResponse(
        is_valid=result.is_valid,
        message=result.message,
        certificate=certificate_info(result.certificate, _prefix()) if result.certificate else None,
        verification_steps=VerificationSteps(
            database_check=result.database_check,
            blockchain_check=result.blockchain_check,
            hash_match=result.hash_match,
            batch_match=result.batch_match,
            issuer_valid=result.issuer_valid,
        ),
        blockchain_details=BlockchainDetails(**result.blockchain_details)
        if result.blockchain_details else None,
    )


@router.post("/certificate", response_model=VerificationResponse)
async def verify_certificate(body: VerifyRequest):
    result = await _get_engine().verify(body.certificate_hash)
    return _to_response(result)


@router.get("/certificate/hash/{certificate_hash}", response_model=VerificationResponse)
async def verify_certificate_by_hash(certificate_hash: str):
    result = await _get_engine().verify(certificate_hash)
    return _to_response(result)


@router.get("/search", response_model=SearchResponse)
async def search_certificates(
    student_id: Optional[str] = Query(None, alias="studentId"),
    first_name: Optional[str] = Query(None, alias="firstName"),
    last_name: Optional[str] = Query(None, alias="lastName"),
):
    try:
        summaries = await _get_engine().search(student_id, first_name, last_name)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    if not summaries:
        return SearchResponse(
            found=False, message="No certified student found with the provided information",
        )
    prefix = _prefix()
    return SearchResponse(
        found=True, certificates=[certificate_info(s, prefix) for s in summaries],
    )


@router.get("/student/{student_id}", response_model=StudentCertificateResponse)
async def student_certificate(student_id: str):
    summary = await _get_engine().certificate_for_student(student_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Certified student not found")
    return StudentCertificateResponse(certificate=certificate_info(summary, _prefix()))
