"""Tests for payment processing: atomicity, idempotency and license issuance."""
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import checkout_completed_event, session_payload
from geodiag.config import get_settings
from geodiag.models import AuditLog, Job, JobState, License, LicenseStatus, Order, OrderStatus, Payment
from geodiag.models import PaymentMethod, PaymentStatus
from geodiag.services.notifications import PAYMENT_SUCCEEDED_JOB, NotificationDispatcher
from geodiag.services.payments import PROCESS_PAYMENT_JOB, PaymentService, amount_from_cents
from geodiag.utils.errors import BadRequestError, ConflictError, InternalProcessingError, NotFoundError
from geodiag.utils.time import add_months, as_utc, utcnow
from geodiag.worker import register_handlers


def _refresh(db_session, order: Order) -> Order:
    db_session.expire_all()
    return db_session.get(Order, order.id)


def test_amount_total_in_cents_is_converted():
    assert amount_from_cents(15000) == Decimal("150.00")
    assert amount_from_cents(1999) == Decimal("19.99")
    with pytest.raises(BadRequestError):
        amount_from_cents(None)


def test_successful_payment_completes_order_and_issues_license(
    payment_service, db_session, make_tenant, make_offer, make_order
):
    tenant = make_tenant()
    offer = make_offer(duration_months=12)
    order = make_order(tenant.company, offer)
    session = session_payload(order, amount_total=15000)

    before = utcnow()
    result = payment_service.process_successful_payment(session)

    assert result.success is True
    assert result.notification == "queued"
    assert _refresh(db_session, order).status == OrderStatus.COMPLETED

    payment = db_session.query(Payment).filter_by(order_id=order.id).one()
    assert payment.amount == Decimal("150.00")
    assert payment.gateway_ref == session["payment_intent"]
    assert payment.status == PaymentStatus.COMPLETED
    assert payment.method == PaymentMethod.CARD

    license_ = db_session.query(License).filter_by(order_id=order.id).one()
    assert license_.status == LicenseStatus.ACTIVE
    assert license_.company_id == tenant.company.id
    assert license_.qr_code_payload.startswith(f"LIC-{tenant.company.id}-")
    assert result.license.id == license_.id

    expires_at = as_utc(license_.expires_at)
    assert add_months(before, 12) - timedelta(seconds=5) <= expires_at <= add_months(utcnow(), 12)

    actions = {row.action for row in db_session.query(AuditLog).all()}
    assert {"PAYMENT_COMPLETED", "LICENSE_ISSUED"} <= actions


def test_failure_during_license_issuance_rolls_back_everything(
    gateway, job_queue, dispatcher, session_factory, db_session, make_tenant, make_offer, make_order
):
    def broken_issuer(db, order, offer):
        raise RuntimeError("license store unavailable")

    service = PaymentService(
        gateway=gateway,
        job_queue=job_queue,
        dispatcher=dispatcher,
        session_factory=session_factory,
        issue_license=broken_issuer,
    )
    tenant = make_tenant()
    order = make_order(tenant.company, make_offer())

    with pytest.raises(InternalProcessingError) as excinfo:
        service.process_successful_payment(session_payload(order))

    assert excinfo.value.details == {"order_id": order.id}
    assert _refresh(db_session, order).status == OrderStatus.PENDING
    assert db_session.query(Payment).count() == 0
    assert db_session.query(License).count() == 0
    assert db_session.query(Job).count() == 0


def test_notification_failure_does_not_undo_payment(
    gateway, job_queue, mailer, session_factory, db_session, make_tenant, make_offer, make_order
):
    mailer.fail = True
    dispatcher = NotificationDispatcher(mailer, job_queue=job_queue, session_factory=session_factory, mode="inline")
    service = PaymentService(
        gateway=gateway,
        job_queue=job_queue,
        dispatcher=dispatcher,
        session_factory=session_factory,
    )
    tenant = make_tenant()
    order = make_order(tenant.company, make_offer())

    result = service.process_successful_payment(session_payload(order))

    assert result.success is True
    assert result.notification == "failed"
    assert _refresh(db_session, order).status == OrderStatus.COMPLETED
    assert db_session.query(License).filter_by(order_id=order.id).count() == 1


def test_dispatcher_crash_is_logged_not_raised(
    gateway, job_queue, session_factory, db_session, make_tenant, make_offer, make_order
):
    class ExplodingDispatcher:
        mode = "inline"

        def dispatch(self, payload):
            raise RuntimeError("queue unreachable")

    service = PaymentService(
        gateway=gateway,
        job_queue=job_queue,
        dispatcher=ExplodingDispatcher(),
        session_factory=session_factory,
    )
    tenant = make_tenant()
    order = make_order(tenant.company, make_offer())

    result = service.process_successful_payment(session_payload(order))

    assert result.notification == "failed"
    assert _refresh(db_session, order).status == OrderStatus.COMPLETED


def test_missing_order_reference_is_bad_request(payment_service):
    with pytest.raises(BadRequestError) as excinfo:
        payment_service.process_successful_payment({"id": "cs_x", "metadata": {}, "amount_total": 100})
    assert excinfo.value.code == "ORDER_REFERENCE_MISSING"


def test_unknown_order_propagates_not_found(payment_service, db_session):
    with pytest.raises(NotFoundError):
        payment_service.process_successful_payment(
            {"id": "cs_x", "metadata": {"orderId": "424242"}, "amount_total": 100}
        )
    assert db_session.query(Payment).count() == 0


def test_cancelled_order_is_not_paid(payment_service, db_session, make_tenant, make_offer, make_order):
    tenant = make_tenant()
    order = make_order(tenant.company, make_offer(), status=OrderStatus.CANCELLED)

    with pytest.raises(ConflictError):
        payment_service.process_successful_payment(session_payload(order))

    assert db_session.query(Payment).count() == 0


def test_already_completed_order_is_not_licensed_twice(
    payment_service, db_session, make_tenant, make_offer, make_order
):
    tenant = make_tenant()
    order = make_order(tenant.company, make_offer())

    first = payment_service.process_successful_payment(session_payload(order))
    second = payment_service.process_successful_payment(session_payload(order))

    assert second.notification == "duplicate"
    assert second.license.id == first.license.id
    assert db_session.query(Payment).count() == 1
    assert db_session.query(License).count() == 1


def test_end_to_end_webhook_to_email(
    payment_service, job_queue, mailer, db_session, make_tenant, make_offer, make_order
):
    tenant = make_tenant()
    offer = make_offer(name="Atelier", price="150.00", duration_months=12)
    order = make_order(tenant.company, offer)

    job_id = payment_service.queue_payment_webhook(checkout_completed_event(order, event_id="evt_e2e"))
    assert job_id is not None

    assert job_queue.drain(PROCESS_PAYMENT_JOB) == 1
    assert job_queue.drain(PAYMENT_SUCCEEDED_JOB) == 1

    assert _refresh(db_session, order).status == OrderStatus.COMPLETED
    license_ = db_session.query(License).filter_by(order_id=order.id).one()
    assert len(mailer.sent) == 1
    sent = mailer.sent[0]
    assert sent["to"] == tenant.company.email
    assert sent["license"] == license_.qr_code_payload
    assert sent["pdf"].startswith(b"%PDF")

    states = {job.job_type: job.state for job in db_session.query(Job).all()}
    assert states == {PROCESS_PAYMENT_JOB: JobState.COMPLETED, PAYMENT_SUCCEEDED_JOB: JobState.COMPLETED}


def test_duplicate_delivery_issues_a_single_license(
    payment_service, job_queue, db_session, make_tenant, make_offer, make_order
):
    tenant = make_tenant()
    order = make_order(tenant.company, make_offer())
    event = checkout_completed_event(order, event_id="evt_twice")

    payment_service.queue_payment_webhook(event)
    with pytest.raises(ConflictError):
        payment_service.queue_payment_webhook(event)

    assert job_queue.drain(PROCESS_PAYMENT_JOB) == 1
    assert db_session.query(Job).filter_by(job_type=PROCESS_PAYMENT_JOB).count() == 1
    assert db_session.query(Payment).count() == 1
    assert db_session.query(License).count() == 1


def test_failing_notification_job_is_retried_and_payment_stays(
    payment_service, job_queue, mailer, db_session, make_tenant, make_offer, make_order
):
    tenant = make_tenant()
    order = make_order(tenant.company, make_offer())
    payment_service.queue_payment_webhook(checkout_completed_event(order))
    job_queue.drain(PROCESS_PAYMENT_JOB)

    mailer.fail = True
    assert job_queue.drain(PAYMENT_SUCCEEDED_JOB) == 3

    notification_job = db_session.query(Job).filter_by(job_type=PAYMENT_SUCCEEDED_JOB).one()
    assert notification_job.state == JobState.FAILED
    assert "smtp unavailable" in notification_job.last_error
    assert _refresh(db_session, order).status == OrderStatus.COMPLETED
    assert db_session.query(Payment).count() == 1


def test_queued_notification_is_written_with_the_payment(
    payment_service, db_session, make_tenant, make_offer, make_order
):
    tenant = make_tenant()
    order = make_order(tenant.company, make_offer())

    payment_service.process_successful_payment(session_payload(order))

    job = db_session.query(Job).filter_by(job_type=PAYMENT_SUCCEEDED_JOB).one()
    assert job.state == JobState.AVAILABLE
    assert job.payload["order"]["id"] == order.id
    assert job.payload["company"]["email"] == tenant.company.email


def test_failed_notification_enqueue_rolls_back_and_payment_job_retries(
    gateway, job_queue, mailer, session_factory, db_session, make_tenant, make_offer, make_order
):
    class FlakyDispatcher(NotificationDispatcher):
        failures_left = 1

        def enqueue(self, db, payload):
            if self.failures_left:
                self.failures_left -= 1
                raise RuntimeError("jobs table locked")
            return super().enqueue(db, payload)

    dispatcher = FlakyDispatcher(mailer, job_queue=job_queue, session_factory=session_factory)
    service = PaymentService(
        gateway=gateway,
        job_queue=job_queue,
        dispatcher=dispatcher,
        session_factory=session_factory,
    )
    register_handlers(job_queue, service, dispatcher, get_settings())
    tenant = make_tenant()
    order = make_order(tenant.company, make_offer())
    service.queue_payment_webhook(checkout_completed_event(order))

    assert job_queue.work_once(PROCESS_PAYMENT_JOB) is True
    assert _refresh(db_session, order).status == OrderStatus.PENDING
    assert db_session.query(Payment).count() == 0
    assert db_session.query(License).count() == 0
    payment_job = db_session.query(Job).filter_by(job_type=PROCESS_PAYMENT_JOB).one()
    assert payment_job.state == JobState.AVAILABLE
    assert payment_job.last_error is not None
    assert db_session.query(Job).filter_by(job_type=PAYMENT_SUCCEEDED_JOB).count() == 0

    assert job_queue.work_once(PROCESS_PAYMENT_JOB) is True
    assert _refresh(db_session, order).status == OrderStatus.COMPLETED
    assert db_session.query(Job).filter_by(job_type=PAYMENT_SUCCEEDED_JOB).count() == 1

    assert job_queue.drain(PAYMENT_SUCCEEDED_JOB) == 1
    assert len(mailer.sent) == 1
    assert mailer.sent[0]["to"] == tenant.company.email
