"""SMTP delivery of the license confirmation email."""
from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Any

from geodiag.config import Settings, get_settings
from geodiag.services.invoices import invoice_filename

logger = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    """Raised when the SMTP server refuses or cannot be reached."""


def build_license_email(
    sender: str,
    company: Any,
    license_: Any,
    pdf_bytes: bytes,
) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = company.email
    message["Subject"] = f"Votre licence Geodiag pour {company.name} est activée !"

    expires = f"{license_.expires_at:%d/%m/%Y}" if license_.expires_at else "-"
    message.set_content(
        "\n".join(
            [
                "Bonjour,",
                "",
                f"Merci pour votre achat. La licence de {company.name} est maintenant active.",
                f"Elle expire le {expires}.",
                "",
                f"Code de licence : {license_.qr_code_payload}",
                "",
                "Vous trouverez votre facture en pièce jointe.",
                "",
                "L'équipe Geodiag",
            ]
        )
    )
    message.add_attachment(
        pdf_bytes,
        maintype="application",
        subtype="pdf",
        filename=invoice_filename(license_.order_id),
    )
    return message


class EmailSender:
    """Thin SMTP client configured from ``EMAIL_*`` settings."""

    def __init__(self, settings: Settings | None = None, smtp_factory=smtplib.SMTP) -> None:
        self.settings = settings or get_settings()
        self._smtp_factory = smtp_factory

    def send(self, message: EmailMessage) -> None:
        settings = self.settings
        try:
            with self._smtp_factory(
                settings.EMAIL_HOST, settings.EMAIL_PORT, timeout=settings.EMAIL_TIMEOUT_SECONDS
            ) as smtp:
                if settings.EMAIL_USER:
                    smtp.starttls()
                    smtp.login(settings.EMAIL_USER, settings.EMAIL_PASSWORD or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(
                "Email delivery failed",
                extra={"to": message["To"], "subject": message["Subject"], "error": str(exc)},
            )
            raise EmailDeliveryError(str(exc)) from exc
        logger.info("Email sent", extra={"to": message["To"], "subject": message["Subject"]})

    def send_license_and_invoice(self, company: Any, license_: Any, pdf_bytes: bytes) -> None:
        self.send(build_license_email(self.settings.EMAIL_FROM, company, license_, pdf_bytes))


__all__ = ["EmailSender", "EmailDeliveryError", "build_license_email"]
