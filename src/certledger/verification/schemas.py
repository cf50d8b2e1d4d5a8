"""Public verification schemas; serialized with camelCase field names."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class _Camel(BaseModel):
    model_config = {"populate_by_name": True}


class VerifyRequest(_Camel):
    certificate_hash: str = Field(..., min_length=1, max_length=128, alias="certificateHash")


class VerificationSteps(_Camel):
    database_check: bool = Field(False, alias="databaseCheck")
    blockchain_check: bool = Field(False, alias="blockchainCheck")
    hash_match: bool = Field(False, alias="hashMatch")
    batch_match: bool = Field(False, alias="batchMatch")
    issuer_valid: bool = Field(False, alias="issuerValid")


class CertificateInfo(_Camel):
    student_name: str = Field(..., alias="studentName")
    student_id: str = Field(..., alias="studentId")
    course: str
    gpa: Optional[float] = None
    graduation_date: str = Field(..., alias="graduationDate")
    university: Optional[str] = None
    batch_id: Optional[str] = Field(None, alias="batchId")
    batch_name: Optional[str] = Field(None, alias="batchName")
    faculty: Optional[str] = None
    academic_year: Optional[str] = Field(None, alias="academicYear")
    semester: Optional[str] = None
    certificate_id: Optional[str] = Field(None, alias="certificateId")
    certificate_hash: Optional[str] = Field(None, alias="certificateHash")
    certified_at: Optional[str] = Field(None, alias="certifiedAt")
    issued_by: str = Field(..., alias="issuedBy")
    cardano_tx_id: Optional[str] = Field(None, alias="cardanoTxId")
    blockchain_explorer: Optional[str] = Field(None, alias="blockchainExplorer")
    verification_url: Optional[str] = Field(None, alias="verificationUrl")
    download_url: Optional[str] = Field(None, alias="downloadUrl")


class BlockchainDetails(_Camel):
    transaction_id: str = Field(..., alias="transactionId")
    explorer_url: Optional[str] = Field(None, alias="explorerUrl")
    block_height: Optional[int] = Field(None, alias="blockHeight")
    block_time: Optional[int] = Field(None, alias="timestamp")
    confirmations: int = 0


class VerificationResponse(_Camel):
    is_valid: bool = Field(..., alias="isValid")
    message: str
    certificate: Optional[CertificateInfo] = None
    verification_steps: VerificationSteps = Field(..., alias="verificationSteps")
    blockchain_details: Optional[BlockchainDetails] = Field(None, alias="blockchainDetails")


class SearchResponse(_Camel):
    found: bool
    certificates: list[CertificateInfo] = []
    message: str = ""


class StudentCertificateResponse(_Camel):
    success: bool = True
    certificate: CertificateInfo


def certificate_info(summary: dict[str, Any], api_prefix: str = "") -> CertificateInfo:
    info = CertificateInfo(**summary)
    if info.certificate_hash:
        info.verification_url = f"{api_prefix}/verify/certificate/hash/{info.certificate_hash}"
        if summary.get("has_pdf"):
            info.download_url = f"{api_prefix}/certificates/{info.certificate_hash}/download"
    return info
