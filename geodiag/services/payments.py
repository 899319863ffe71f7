"""Payment orchestration: checkout, webhook intake and order completion."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

from sqlalchemy.orm import Session, sessionmaker

from geodiag import db as db_module
from geodiag.models import (
    Company,
    License,
    Offer,
    Order,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    UserRole,
)
from geodiag.schemas.company import CompanyRead
from geodiag.schemas.license import LicenseRead
from geodiag.schemas.offer import OfferRead
from geodiag.schemas.order import OrderRead
from geodiag.schemas.payment import NotificationPayload
from geodiag.services.job_queue import JobQueue, QueuedJob
from geodiag.services.licenses import create_license_for_order, get_license_for_order
from geodiag.services.notifications import NotificationDispatcher
from geodiag.services.psp_stripe import CheckoutSession
from geodiag.services.webhook_events import record_event
from geodiag.utils.audit import actor_from_user, log_audit
from geodiag.utils.errors import (
    ApiError,
    BadRequestError,
    ConflictError,
    ForbiddenError,
    InternalProcessingError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

PROCESS_PAYMENT_JOB = "process_successful_payment"
CHECKOUT_COMPLETED_EVENT = "checkout.session.completed"
CENTS = Decimal("100")


class CheckoutGateway(Protocol):
    def create_checkout_session(self, order: Order, offer: Offer) -> CheckoutSession: ...


LicenseIssuer = Callable[[Session, Order, Offer], License]


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    license: LicenseRead
    notification: str


def amount_from_cents(amount_total: Any) -> Decimal:
    """``15000`` -> ``Decimal("150.00")``."""

    if amount_total is None or isinstance(amount_total, bool):
        raise BadRequestError("Session amount_total is missing.", code="AMOUNT_MISSING")
    try:
        return (Decimal(str(amount_total)) / CENTS).quantize(Decimal("0.01"))
    except InvalidOperation as exc:
        raise BadRequestError("Session amount_total is invalid.", code="AMOUNT_INVALID") from exc


def _session_job_payload(session: dict[str, Any]) -> dict[str, Any]:
    metadata = session.get("metadata") or {}
    return {
        "id": session.get("id"),
        "metadata": {"orderId": metadata.get("orderId"), "companyId": metadata.get("companyId")},
        "payment_intent": session.get("payment_intent"),
        "amount_total": session.get("amount_total"),
    }


def _order_id_from_session(session: dict[str, Any]) -> int:
    raw = (session.get("metadata") or {}).get("orderId")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise BadRequestError(
            "Session metadata does not reference an order.",
            code="ORDER_REFERENCE_MISSING",
            details={"session_id": session.get("id")},
        ) from exc


class PaymentService:
    """Move an order from checkout to a paid, licensed state.

    Collaborators are injected so the HTTP layer, the worker and the tests can
    each wire their own gateway, queue, dispatcher and session factory.
    """

    def __init__(
        self,
        *,
        gateway: CheckoutGateway,
        job_queue: JobQueue,
        dispatcher: NotificationDispatcher,
        session_factory: sessionmaker[Session] | None = None,
        issue_license: LicenseIssuer = create_license_for_order,
    ) -> None:
        self.gateway = gateway
        self.job_queue = job_queue
        self.dispatcher = dispatcher
        self._session_factory = session_factory
        self._issue_license = issue_license

    def _unit_of_work(self):
        return db_module.unit_of_work(self._session_factory)

    def create_checkout_session(self, db: Session, order_id: int, current_user: Any) -> CheckoutSession:
        """Open a gateway checkout for an order of the caller's company."""

        if current_user.role != UserRole.ADMIN:
            raise ForbiddenError("Only company administrators can pay for orders.", code="ADMIN_REQUIRED")

        order = db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found.", code="ORDER_NOT_FOUND", details={"order_id": order_id})
        if order.company_id != current_user.company_id:
            logger.warning(
                "Checkout attempted on another company's order",
                extra={"order_id": order_id, "user_id": current_user.user_id},
            )
            raise ForbiddenError("Order does not belong to your company.", code="ORDER_FORBIDDEN")

        offer = db.get(Offer, order.offer_id)
        if offer is None:
            raise NotFoundError("Offer not found.", code="OFFER_NOT_FOUND", details={"offer_id": order.offer_id})

        session = self.gateway.create_checkout_session(order, offer)
        log_audit(
            db,
            actor=actor_from_user(current_user),
            action="CHECKOUT_SESSION_CREATED",
            entity="Order",
            entity_id=order.id,
            data={"session_id": session.session_id, "amount": str(order.amount)},
        )
        db.commit()
        logger.info(
            "Checkout session created",
            extra={"order_id": order.id, "company_id": order.company_id, "session_id": session.session_id},
        )
        return session

    def queue_payment_webhook(self, event: dict[str, Any]) -> int | None:
        """Record the event id and enqueue the payment job in one transaction.

        Raises ``ConflictError`` when the event was already recorded; nothing is
        enqueued in that case. Returns the job id, or None for event types that
        are only recorded.
        """

        event_id = event.get("id")
        event_type = event.get("type")
        job_id: int | None = None
        with self._unit_of_work() as db:
            record_event(db, event_id, event_type)
            if event_type == CHECKOUT_COMPLETED_EVENT:
                session = (event.get("data") or {}).get("object") or {}
                job_id = self.job_queue.enqueue(db, PROCESS_PAYMENT_JOB, _session_job_payload(session))

        logger.info(
            "Payment webhook accepted",
            extra={"event_id": event_id, "event_type": event_type, "job_id": job_id},
        )
        return job_id

    def process_successful_payment(self, session: dict[str, Any]) -> PaymentResult:
        """Record the payment, complete the order and issue its license atomically.

        In queued mode the notification job is written in the same transaction.
        Inline notification happens after the commit; its failures are logged
        and never undo the payment.
        """

        order_id = _order_id_from_session(session)
        amount = amount_from_cents(session.get("amount_total"))

        try:
            with self._unit_of_work() as db:
                order = db.get(Order, order_id, with_for_update=True)
                if order is None:
                    raise NotFoundError("Order not found.", code="ORDER_NOT_FOUND", details={"order_id": order_id})

                if order.status == OrderStatus.COMPLETED:
                    existing = get_license_for_order(db, order.id)
                    if existing is not None:
                        logger.info(
                            "Order already completed; payment ignored",
                            extra={"order_id": order.id, "license_id": existing.id},
                        )
                        return PaymentResult(
                            success=True,
                            license=LicenseRead.model_validate(existing),
                            notification="duplicate",
                        )
                elif order.status == OrderStatus.CANCELLED:
                    raise ConflictError(
                        "Cancelled orders cannot be paid.",
                        code="ORDER_NOT_PAYABLE",
                        details={"order_id": order.id},
                    )

                payment = Payment(
                    order_id=order.id,
                    gateway_ref=session.get("payment_intent"),
                    amount=amount,
                    status=PaymentStatus.COMPLETED,
                    method=PaymentMethod.CARD,
                )
                db.add(payment)
                order.status = OrderStatus.COMPLETED
                db.flush()

                offer = db.get(Offer, order.offer_id)
                if offer is None:
                    raise NotFoundError(
                        "Offer not found.", code="OFFER_NOT_FOUND", details={"offer_id": order.offer_id}
                    )

                license_ = self._issue_license(db, order, offer)
                log_audit(
                    db,
                    actor="system:webhook",
                    action="PAYMENT_COMPLETED",
                    entity="Payment",
                    entity_id=payment.id,
                    data={"order_id": order.id, "amount": str(amount), "gateway_ref": payment.gateway_ref},
                )
                log_audit(
                    db,
                    actor="system:webhook",
                    action="LICENSE_ISSUED",
                    entity="License",
                    entity_id=license_.id,
                    data={"order_id": order.id, "qr_code_payload": license_.qr_code_payload},
                )
                db.flush()

                company = db.get(Company, order.company_id)
                snapshot = NotificationPayload(
                    order=OrderRead.model_validate(order),
                    company=CompanyRead.model_validate(company) if company is not None else None,
                    offer=OfferRead.model_validate(offer),
                    license=LicenseRead.model_validate(license_),
                )
                if self.dispatcher.mode == "queued":
                    # Commits or rolls back together with the payment.
                    self.dispatcher.enqueue(db, snapshot)
        except ApiError:
            raise
        except Exception as exc:
            logger.exception("Payment processing failed", extra={"order_id": order_id})
            raise InternalProcessingError(
                "Payment processing failed.", details={"order_id": order_id}
            ) from exc

        logger.info(
            "Order completed",
            extra={"order_id": order_id, "license_id": snapshot.license.id, "amount": str(amount)},
        )
        notification = "queued" if self.dispatcher.mode == "queued" else self._notify(snapshot)
        return PaymentResult(success=True, license=snapshot.license, notification=notification)

    def _notify(self, snapshot: NotificationPayload) -> str:
        try:
            return self.dispatcher.dispatch(snapshot)
        except Exception:  # noqa: BLE001 - the payment is committed; only log
            logger.exception("Post-payment notification failed", extra={"order_id": snapshot.order.id})
            return "failed"

    def handle_payment_job(self, job: QueuedJob) -> None:
        result = self.process_successful_payment(job.payload)
        logger.info(
            "Payment job processed",
            extra={"job_id": job.id, "license_id": result.license.id, "notification": result.notification},
        )


__all__ = [
    "PaymentService",
    "PaymentResult",
    "PROCESS_PAYMENT_JOB",
    "CHECKOUT_COMPLETED_EVENT",
    "amount_from_cents",
]
