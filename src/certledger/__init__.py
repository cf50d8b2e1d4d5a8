"""CertLedger: academic certificates anchored to the Cardano ledger."""

from certledger.documents.renderer import CertificateData, content_hash, render_certificate
from certledger.ledger.commitment import CertificateCommitment, normalize_metadata, parse_commitment

__all__ = [
    "CertificateData",
    "CertificateCommitment",
    "content_hash",
    "normalize_metadata",
    "parse_commitment",
    "render_certificate",
]
__version__ = "0.1.0"
