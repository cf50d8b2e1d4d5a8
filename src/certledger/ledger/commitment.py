"""
Certificate batch commitment: the metadata written to the ledger.

Wire shape, stored under a numeric metadata label (674 by default):

    {"674": {"type": "certificate-batch-hashes", "issuer": ..., "batch_id": ...,
             "batch_name": ..., "academic_year": ..., "semester": ...,
             "faculty": ..., "certificate_count": N, "hashes": [...],
             "issued_at": ..., "authority": ...}}

Indexers hand the metadata back in one of three shapes (wrapped under the
label, bare, or inside a list of entries); ``normalize_metadata`` folds all
of them into the bare object.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from certledger.common.exceptions import ValidationError

COMMITMENT_TYPE = "certificate-batch-hashes"
DEFAULT_LABEL = 674

# Cardano caps every metadata string at 64 bytes.
MAX_METADATA_STRING_BYTES = 64

HASH_PATTERN = re.compile(r"^[0-9a-f]{64}$")

_STRING_FIELDS = (
    "issuer", "authority", "batch_id", "batch_name",
    "academic_year", "semester", "faculty", "issued_at",
)


@dataclass(frozen=True)
class CertificateCommitment:
    issuer: str
    authority: str
    batch_id: str
    batch_name: str
    academic_year: str
    semester: str
    faculty: str
    hashes: tuple[str, ...]
    issued_at: str
    certificate_count: int
    type: str = COMMITMENT_TYPE

    def contains(self, certificate_hash: str) -> bool:
        return certificate_hash in self.hashes

    def to_dict(self) -> dict[str, Any]:
        """Wire form; key names are shared byte-for-byte with verification."""
        return {
            "type": self.type,
            "issuer": self.issuer,
            "batch_id": self.batch_id,
            "batch_name": self.batch_name,
            "academic_year": self.academic_year,
            "semester": self.semester,
            "faculty": self.faculty,
            "certificate_count": self.certificate_count,
            "hashes": list(self.hashes),
            "issued_at": self.issued_at,
            "authority": self.authority,
        }

    def to_metadata(self, label: int = DEFAULT_LABEL) -> dict[int, dict[str, Any]]:
        return {label: self.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CertificateCommitment":
        """Parse a bare commitment object. Raises ValueError on a malformed one."""
        if not isinstance(data, dict) or data.get("type") != COMMITMENT_TYPE:
            raise ValueError("Not a certificate batch commitment")
        hashes = data.get("hashes")
        if not isinstance(hashes, list) or not all(isinstance(h, str) for h in hashes):
            raise ValueError("Commitment 'hashes' must be a list of strings")
        count = data.get("certificate_count", len(hashes))
        try:
            count = int(count)
        except (TypeError, ValueError) as exc:
            raise ValueError("Commitment 'certificate_count' must be an integer") from exc
        return cls(
            issuer=str(data.get("issuer", "")),
            authority=str(data.get("authority", "")),
            batch_id=str(data.get("batch_id", "")),
            batch_name=str(data.get("batch_name", "")),
            academic_year=str(data.get("academic_year", "")),
            semester=str(data.get("semester", "")),
            faculty=str(data.get("faculty", "")),
            hashes=tuple(hashes),
            issued_at=str(data.get("issued_at", "")),
            certificate_count=count,
        )


def build_commitment(
    *,
    issuer: str,
    authority: str,
    batch_id: str,
    batch_name: str,
    hashes: list[str],
    academic_year: str,
    semester: str,
    faculty: str,
    issued_at: datetime | None = None,
) -> CertificateCommitment:
    """Assemble a commitment, stamping ``issued_at`` with the current UTC time."""
    stamp = (issued_at or datetime.now(timezone.utc)).isoformat().replace("+00:00", "Z")
    return CertificateCommitment(
        issuer=issuer,
        authority=authority,
        batch_id=batch_id,
        batch_name=batch_name,
        academic_year=academic_year,
        semester=semester,
        faculty=faculty,
        hashes=tuple(hashes),
        issued_at=stamp,
        certificate_count=len(hashes),
    )


def validate_hashes(hashes: list[str]) -> None:
    """Reject empty, malformed or duplicated hash lists."""
    if not hashes:
        raise ValidationError("Cannot commit an empty hash list")
    for h in hashes:
        if not isinstance(h, str) or not HASH_PATTERN.match(h):
            raise ValidationError(f"Not a lowercase SHA-256 hex digest: {h!r}")
    if len(set(hashes)) != len(hashes):
        raise ValidationError("Duplicate certificate hashes in batch")


def validate_for_ledger(commitment: CertificateCommitment) -> None:
    """Check the commitment fits the ledger's metadata limits."""
    validate_hashes(list(commitment.hashes))
    if commitment.certificate_count != len(commitment.hashes):
        raise ValidationError("certificate_count does not match number of hashes")
    for field in _STRING_FIELDS:
        value = getattr(commitment, field)
        if len(value.encode("utf-8")) > MAX_METADATA_STRING_BYTES:
            raise ValidationError(
                f"Commitment field '{field}' exceeds {MAX_METADATA_STRING_BYTES} bytes"
            )


def normalize_metadata(raw: Any, label: int = DEFAULT_LABEL) -> dict[str, Any] | None:
    """Return the bare commitment object from any indexer shape, or None."""
    if isinstance(raw, list):
        for item in raw:
            if not isinstance(item, dict):
                continue
            if "json_metadata" in item:
                if str(item.get("label")) != str(label):
                    continue
                found = normalize_metadata(item["json_metadata"], label)
            else:
                found = normalize_metadata(item, label)
            if found is not None:
                return found
        return None

    if not isinstance(raw, dict):
        return None
    for key in (str(label), label):
        if key in raw:
            return normalize_metadata(raw[key], label)
    if raw.get("type") == COMMITMENT_TYPE:
        return raw
    return None


def parse_commitment(raw: Any, label: int = DEFAULT_LABEL) -> CertificateCommitment | None:
    """Normalize and parse indexer metadata; None when no valid commitment is present."""
    data = normalize_metadata(raw, label)
    if data is None:
        return None
    try:
        return CertificateCommitment.from_dict(data)
    except ValueError:
        return None
