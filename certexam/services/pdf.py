from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.pdfgen import canvas

BORDER = colors.HexColor("#1a5276")
INK = colors.HexColor("#1f2933")
MUTED = colors.HexColor("#5d6d7e")

@dataclass
class CertificateContent:
    holder_name: str
    level: str
    certificate_id: str
    issued_at: datetime
    verify_url: str
    issuer: str = "Test School"

def _centered(c: canvas.Canvas, y: float, text: str, font: str, size: int, color=INK) -> None:
    width, _ = landscape(A4)
    c.setFont(font, size)
    c.setFillColor(color)
    c.drawCentredString(width / 2, y, text)

def render_certificate_pdf(content: CertificateContent) -> bytes:
    """Draw a one-page landscape A4 certificate and return the PDF bytes."""
    buf = BytesIO()
    width, height = landscape(A4)
    c = canvas.Canvas(buf, pagesize=(width, height))
    c.setTitle(f"Certificate {content.certificate_id}")
    c.setAuthor(content.issuer)

    # double frame
    c.setStrokeColor(BORDER)
    c.setLineWidth(6)
    c.rect(20, 20, width - 40, height - 40)
    c.setLineWidth(1.5)
    c.rect(34, 34, width - 68, height - 68)

    # watermark
    c.saveState()
    c.setFillColor(BORDER)
    c.setFillAlpha(0.1)
    c.setFont("Helvetica-Bold", 90)
    c.translate(width / 2, height / 2)
    c.rotate(30)
    c.drawCentredString(0, -30, content.issuer.upper())
    c.restoreState()

    _centered(c, height - 110, "CERTIFICATE OF ACHIEVEMENT", "Helvetica-Bold", 34, BORDER)
    _centered(c, height - 160, "This is to certify that", "Helvetica", 16, MUTED)
    _centered(c, height - 210, content.holder_name.upper(), "Helvetica-Bold", 30)
    _centered(c, height - 250, "has successfully completed the assessment and demonstrated", "Helvetica", 15, MUTED)
    _centered(c, height - 290, f"{content.level} Digital Competency", "Helvetica-Bold", 24, BORDER)

    awarded = f"{content.issued_at:%B} {content.issued_at.day}, {content.issued_at.year}"
    _centered(c, height - 335, f"Awarded on: {awarded}", "Helvetica", 13)
    _centered(c, height - 355, f"Certificate ID: {content.certificate_id}", "Helvetica", 13)

    # signature lines
    c.setStrokeColor(INK)
    c.setLineWidth(0.8)
    for x, title in ((width * 0.25, "Director of Assessments"), (width * 0.75, "Chief Executive Officer")):
        c.line(x - 100, 120, x + 100, 120)
        c.setFont("Helvetica", 11)
        c.setFillColor(INK)
        c.drawCentredString(x, 104, title)

    _centered(c, 70, f"Verify at: {content.verify_url}", "Helvetica-Oblique", 10, MUTED)

    c.setFont("Helvetica", 4)
    c.setFillColor(MUTED)
    c.drawString(40, 42, f"SECURITY::{content.certificate_id}::{int(content.issued_at.replace(tzinfo=timezone.utc).timestamp())}::DO_NOT_COPY")

    c.showPage()
    c.save()
    return buf.getvalue()
