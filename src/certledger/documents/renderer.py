"""
Certificate document rendering and content hashing.

Certificates are rendered to PDF with reportlab in invariant mode: the
document carries no creation timestamp and no random file identifier, so
identical input always yields byte-identical output. The content hash is
SHA-256 over the raw PDF bytes, which lets anyone holding the document
re-derive the hash without trusting reported metadata.
"""

import hashlib
import io
from dataclasses import dataclass
from datetime import date, datetime

from reportlab.lib.colors import HexColor, white
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from certledger.common.exceptions import RenderError

PAGE_WIDTH, PAGE_HEIGHT = landscape(A4)

PRIMARY = HexColor("#003366")
ACCENT = HexColor("#DAA520")
TEXT_DARK = HexColor("#2C3E50")
TEXT_LIGHT = HexColor("#5D6D7E")
BACKGROUND = HexColor("#F8F9FA")

REQUIRED_FIELDS = (
    "student_id",
    "student_name",
    "course",
    "graduation_date",
    "batch_id",
    "batch_name",
    "certificate_id",
    "issued_at",
)


@dataclass(frozen=True)
class CertificateData:
    """Everything printed on a certificate."""

    student_id: str
    student_name: str
    course: str
    gpa: float
    graduation_date: str
    university: str
    batch_id: str
    batch_name: str
    academic_year: str
    semester: str
    faculty: str
    issued_by: str
    issued_at: str
    certificate_id: str


def make_certificate_id(batch_id: str, student_id: str, issued_at: datetime) -> str:
    """Build the certificate id: ``CERT_<batch>_<student>_<epoch-ms>``."""
    return f"CERT_{batch_id}_{student_id}_{int(issued_at.timestamp() * 1000)}"


def _parse_date(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value[:10])
    except (TypeError, ValueError) as exc:
        raise RenderError(f"'{field}' is not an ISO date: {value!r}") from exc


def _parse_timestamp(value: str, field: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError) as exc:
        raise RenderError(f"'{field}' is not an ISO timestamp: {value!r}") from exc


def _check(data: CertificateData) -> tuple[date, datetime]:
    for field in REQUIRED_FIELDS:
        value = getattr(data, field)
        if not isinstance(value, str) or not value.strip():
            raise RenderError(f"Certificate field '{field}' is required")
    try:
        gpa = float(data.gpa)
    except (TypeError, ValueError) as exc:
        raise RenderError(f"GPA must be numeric, got {data.gpa!r}") from exc
    if not 0.0 <= gpa <= 4.0:
        raise RenderError(f"GPA must be between 0.0 and 4.0, got {gpa}")
    return (
        _parse_date(data.graduation_date, "graduation_date"),
        _parse_timestamp(data.issued_at, "issued_at"),
    )


def _y(top_mm: float) -> float:
    """Convert a distance from the top edge (mm) to a reportlab y coordinate."""
    return PAGE_HEIGHT - top_mm * mm


def _centred(c: canvas.Canvas, top_mm: float, text: str) -> None:
    c.drawCentredString(PAGE_WIDTH / 2, _y(top_mm), text)


def _band(c: canvas.Canvas, top_mm: float, height_mm: float, color) -> None:
    c.setFillColor(color)
    c.rect(0, _y(top_mm + height_mm), PAGE_WIDTH, height_mm * mm, stroke=0, fill=1)


def _panel(c: canvas.Canvas, left_mm, top_mm, width_mm, height_mm, color, stroke=None) -> None:
    c.setFillColor(color)
    if stroke is not None:
        c.setStrokeColor(stroke)
    c.roundRect(
        left_mm * mm, _y(top_mm + height_mm), width_mm * mm, height_mm * mm,
        2 * mm, stroke=1 if stroke is not None else 0, fill=1,
    )


def render_certificate(data: CertificateData) -> bytes:
    """Render a certificate to PDF bytes.

    Raises:
        RenderError: a required field is missing or malformed.
    """
    graduation, issued = _check(data)

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT), invariant=1)
    c.setTitle(f"Certificate {data.certificate_id}")
    c.setAuthor(data.issued_by)
    c.setSubject(data.course)

    c.setFillColor(BACKGROUND)
    c.rect(0, 0, PAGE_WIDTH, PAGE_HEIGHT, stroke=0, fill=1)
    _band(c, 0, 8, PRIMARY)
    _band(c, 8, 2, ACCENT)

    # Header
    c.setFillColor(PRIMARY)
    c.setFont("Helvetica-Bold", 18)
    _centred(c, 25, data.university.upper())
    c.setFillColor(TEXT_LIGHT)
    c.setFont("Helvetica", 10)
    _centred(c, 32, "Academic Registry & Student Records")

    # Title
    c.setLineWidth(0.5 * mm)
    _panel(c, 60, 45, 177, 20, white, stroke=ACCENT)
    c.setFillColor(PRIMARY)
    c.setFont("Times-Bold", 28)
    _centred(c, 58, "CERTIFICATE OF COMPLETION")
    c.setStrokeColor(ACCENT)
    c.setLineWidth(1)
    c.line(80 * mm, _y(70), 217 * mm, _y(70))

    # Body
    c.setFillColor(TEXT_DARK)
    c.setFont("Helvetica", 14)
    _centred(c, 85, "This is to certify that")
    c.setFillColor(PRIMARY)
    c.setFont("Times-Bold", 26)
    _centred(c, 100, data.student_name.upper())
    c.setFillColor(TEXT_DARK)
    c.setFont("Helvetica", 13)
    _centred(c, 112, "has successfully completed the degree program in")
    c.setFillColor(PRIMARY)
    c.setFont("Helvetica-Bold", 20)
    _centred(c, 125, data.course)

    _panel(c, 50, 135, 197, 25, HexColor("#F8F8F8"))
    c.setFillColor(TEXT_DARK)
    c.setFont("Helvetica", 12)
    _centred(c, 145, f"Faculty of {data.faculty}")
    _centred(c, 152, f"Academic Year: {data.academic_year} - {data.semester}")
    c.setFillColor(ACCENT)
    c.setFont("Helvetica-Bold", 12)
    _centred(c, 159, f"Grade Point Average: {float(data.gpa):.2f}/4.0")
    c.setFillColor(TEXT_DARK)
    c.setFont("Helvetica-Oblique", 11)
    _centred(c, 170, f"Conferred on {graduation.day} {graduation.strftime('%B %Y')}")

    # Ledger notice
    _panel(c, 60, 175, 177, 15, PRIMARY)
    c.setFillColor(white)
    c.setFont("Helvetica-Bold", 12)
    _centred(c, 182, "BLOCKCHAIN VERIFIED CERTIFICATE")
    c.setFont("Helvetica", 9)
    _centred(c, 187, "This certificate is recorded on the Cardano blockchain for verification")

    # Footer
    _band(c, 192, 18, HexColor("#F5F5F5"))
    c.setFillColor(TEXT_LIGHT)
    c.setFont("Helvetica", 8)
    c.drawString(15 * mm, _y(198), f"Certificate ID: {data.certificate_id}")
    c.drawString(15 * mm, _y(203), f"Batch: {data.batch_name}")
    c.drawString(200 * mm, _y(198), f"Student ID: {data.student_id}")
    c.drawString(200 * mm, _y(203), f"Issued: {issued.strftime('%d/%m/%Y')}")
    c.setFillColor(TEXT_DARK)
    c.setFont("Helvetica-Oblique", 9)
    _centred(c, 198, f"Digitally Verified & Authenticated by {data.issued_by}")
    _band(c, 208, 2, ACCENT)

    c.showPage()
    c.save()
    return buffer.getvalue()


def content_hash(document: bytes) -> str:
    """SHA-256 hex digest over raw document bytes."""
    return hashlib.sha256(document).hexdigest()
