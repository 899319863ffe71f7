"""Invoice PDF rendering with reportlab."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import Any

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from geodiag.utils.time import utcnow

# Characters the reportlab base fonts cannot draw.
REPLACEMENTS = {
    "\u2013": "-",
    "\u2014": "-",
    "\u2212": "-",
    "\u00a0": " ",
    "\u2018": "'",
    "\u2019": "'",
    "\u201c": '"',
    "\u201d": '"',
}


def _sanitize(text: Any) -> str:
    value = "" if text is None else str(text)
    for source, target in REPLACEMENTS.items():
        value = value.replace(source, target)
    return value


def format_amount(amount: Decimal | float | int | str) -> str:
    """``150`` -> ``"150.00 €"``."""

    return f"{Decimal(str(amount)).quantize(Decimal('0.01'))} €"


def generate_invoice_pdf(order: Any, company: Any, offer: Any, *, issued_at: datetime | None = None) -> bytes:
    """Render the invoice for a paid order and return the PDF bytes.

    ``order``, ``company`` and ``offer`` may be ORM rows or their read schemas;
    only attribute access is used.
    """

    issued_at = issued_at or utcnow()
    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    pdf.setTitle(f"Facture {order.order_number}")
    width, height = A4
    left = 20 * mm
    right = width - 20 * mm
    y = height - 25 * mm

    pdf.setFont("Helvetica-Bold", 24)
    pdf.drawCentredString(width / 2, y, "FACTURE")
    y -= 18 * mm

    pdf.setFont("Helvetica-Bold", 11)
    pdf.drawString(left, y, _sanitize(company.name))
    pdf.setFont("Helvetica", 10)
    for line in (company.address, company.email):
        if line:
            y -= 5 * mm
            pdf.drawString(left, y, _sanitize(line))

    y -= 12 * mm
    pdf.drawString(left, y, f"Facture N° : {_sanitize(order.order_number)}")
    y -= 5 * mm
    pdf.drawString(left, y, f"Date : {issued_at:%d/%m/%Y}")

    y -= 15 * mm
    pdf.setFont("Helvetica-Bold", 10)
    pdf.drawString(left, y, "Description")
    pdf.drawRightString(right, y, "Montant")
    y -= 2 * mm
    pdf.line(left, y, right, y)

    y -= 7 * mm
    pdf.setFont("Helvetica", 10)
    description = f"Abonnement Geodiag - {offer.name} ({offer.duration_months} mois)"
    pdf.drawString(left, y, _sanitize(description))
    pdf.drawRightString(right, y, format_amount(order.amount))

    y -= 4 * mm
    pdf.line(left, y, right, y)
    y -= 8 * mm
    pdf.setFont("Helvetica-Bold", 12)
    pdf.drawString(left, y, "TOTAL")
    pdf.drawRightString(right, y, format_amount(order.amount))

    pdf.setFont("Helvetica-Oblique", 10)
    pdf.drawCentredString(width / 2, 25 * mm, "Merci pour votre confiance.")

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


def invoice_filename(order_id: int) -> str:
    return f"facture-geodiag-{order_id}.pdf"


__all__ = ["generate_invoice_pdf", "invoice_filename", "format_amount"]
