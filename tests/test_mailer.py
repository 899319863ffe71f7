"""Tests for SMTP delivery of the license email."""
import smtplib
from datetime import UTC, datetime
from types import SimpleNamespace

import pytest

from geodiag.config import Settings
from geodiag.services.mailer import EmailDeliveryError, EmailSender, build_license_email

COMPANY = SimpleNamespace(name="Garage Martin", email="contact@garage-martin.fr")
LICENSE = SimpleNamespace(order_id=11, qr_code_payload="LIC-3-abc", expires_at=datetime(2027, 3, 1, tzinfo=UTC))


class FakeSMTP:
    instances: list["FakeSMTP"] = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port, self.timeout = host, port, timeout
        self.logged_in = None
        self.tls = False
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, message):
        self.messages.append(message)


class RefusingSMTP(FakeSMTP):
    def send_message(self, message):
        raise smtplib.SMTPRecipientsRefused({message["To"]: (550, b"no such user")})


def _settings(**overrides) -> Settings:
    values = {"EMAIL_HOST": "smtp.test", "EMAIL_PORT": 2525, "EMAIL_FROM": "licences@geodiag.fr"}
    values.update(overrides)
    return Settings(**values)


def test_license_email_content():
    message = build_license_email("licences@geodiag.fr", COMPANY, LICENSE, b"%PDF-1.4")

    assert message["Subject"] == "Votre licence Geodiag pour Garage Martin est activée !"
    assert message["To"] == "contact@garage-martin.fr"
    body = message.get_body(preferencelist=("plain",)).get_content()
    assert "LIC-3-abc" in body
    assert "01/03/2027" in body
    attachments = list(message.iter_attachments())
    assert [part.get_filename() for part in attachments] == ["facture-geodiag-11.pdf"]
    assert attachments[0].get_content_type() == "application/pdf"


def test_sender_uses_configured_server():
    FakeSMTP.instances.clear()
    sender = EmailSender(_settings(EMAIL_USER="mailer", EMAIL_PASSWORD="pw"), smtp_factory=FakeSMTP)

    sender.send_license_and_invoice(COMPANY, LICENSE, b"%PDF-1.4")

    smtp = FakeSMTP.instances[-1]
    assert (smtp.host, smtp.port) == ("smtp.test", 2525)
    assert smtp.tls is True
    assert smtp.logged_in == ("mailer", "pw")
    assert smtp.messages[0]["From"] == "licences@geodiag.fr"


def test_sender_without_credentials_skips_login():
    FakeSMTP.instances.clear()
    EmailSender(_settings(), smtp_factory=FakeSMTP).send_license_and_invoice(COMPANY, LICENSE, b"%PDF")

    assert FakeSMTP.instances[-1].logged_in is None


def test_smtp_failure_is_wrapped():
    sender = EmailSender(_settings(), smtp_factory=RefusingSMTP)

    with pytest.raises(EmailDeliveryError):
        sender.send_license_and_invoice(COMPANY, LICENSE, b"%PDF")
