"""Test configuration."""
import os
from collections.abc import AsyncIterator, Callable, Iterator
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete
from sqlalchemy.orm import Session

# --- Default env, before the settings are built
os.environ.setdefault("DATABASE_URL", "sqlite:///./geodiag_test.db")
os.environ.setdefault("GEODIAG_ENV", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_geodiag")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_geodiag")
os.environ.setdefault("FRONTEND_URL", "https://app.geodiag.test")
os.environ.setdefault("WORKER_ENABLED", "false")

from geodiag import db  # noqa: E402
from geodiag.config import get_settings  # noqa: E402
from geodiag.db import get_db  # noqa: E402
from geodiag.deps import get_payment_service, get_stripe_client  # noqa: E402
from geodiag.main import app  # noqa: E402
from geodiag.models import ApiKey, Base, Company, Offer, Order, OrderStatus, User, UserRole  # noqa: E402
from geodiag.services.job_queue import JobQueue, RetryPolicy  # noqa: E402
from geodiag.services.notifications import NotificationDispatcher  # noqa: E402
from geodiag.services.payments import PaymentService  # noqa: E402
from geodiag.services.psp_stripe import CheckoutSession, StripeClient  # noqa: E402
from geodiag.utils.apikey import hash_key  # noqa: E402
from geodiag.worker import register_handlers  # noqa: E402

DB_PATH = Path("./geodiag_test.db")


def _run_migrations() -> None:
    cfg = Config(str(Path(__file__).resolve().parents[1] / "alembic.ini"))
    cfg.attributes["configure_logger"] = False
    cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")


# --- (1) Fresh DB file for the session
if DB_PATH.exists():
    DB_PATH.unlink()

# --- (2) Schema comes from Alembic only
_run_migrations()
db.init_engine()


class FakeGateway:
    """Checkout gateway double recording every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[int, int]] = []

    def create_checkout_session(self, order, offer) -> CheckoutSession:
        self.calls.append((order.id, offer.id))
        session_id = f"cs_test_{order.id}"
        return CheckoutSession(session_id=session_id, url=f"https://checkout.stripe.test/{session_id}")


@dataclass
class FakeMailer:
    fail: bool = False
    sent: list[dict] = field(default_factory=list)

    def send_license_and_invoice(self, company, license_, pdf_bytes: bytes) -> None:
        if self.fail:
            raise RuntimeError("smtp unavailable")
        self.sent.append({"to": company.email, "license": license_.qr_code_payload, "pdf": pdf_bytes})


@dataclass
class Tenant:
    company: Company
    admin: User
    technician: User
    admin_headers: dict[str, str]
    technician_headers: dict[str, str]


@pytest.fixture(autouse=True)
def clean_tables() -> Iterator[None]:
    yield
    with db.get_engine().begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(delete(table))


@pytest.fixture
def session_factory():
    return db.get_sessionmaker()


@pytest.fixture
def db_session(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def override_db_dependency(db_session: Session) -> Iterator[None]:
    def _get_db() -> Iterator[Session]:
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def job_queue(session_factory) -> JobQueue:
    return JobQueue(session_factory, retry_policy=RetryPolicy(max_attempts=3, backoff_seconds=0))


@pytest.fixture
def dispatcher(mailer, job_queue, session_factory) -> NotificationDispatcher:
    return NotificationDispatcher(mailer, job_queue=job_queue, session_factory=session_factory, mode="queued")


@pytest.fixture
def payment_service(gateway, job_queue, dispatcher, session_factory) -> PaymentService:
    service = PaymentService(
        gateway=gateway,
        job_queue=job_queue,
        dispatcher=dispatcher,
        session_factory=session_factory,
    )
    register_handlers(job_queue, service, dispatcher, get_settings())
    return service


@pytest.fixture(autouse=True)
def override_services(payment_service) -> Iterator[None]:
    app.dependency_overrides[get_payment_service] = lambda: payment_service
    app.dependency_overrides[get_stripe_client] = lambda: StripeClient(get_settings())
    yield
    app.dependency_overrides.pop(get_payment_service, None)
    app.dependency_overrides.pop(get_stripe_client, None)


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


def _issue_key(db_session: Session, user: User) -> dict[str, str]:
    token = f"geo_{uuid4().hex}"
    db_session.add(
        ApiKey(user_id=user.id, name=f"key-{user.id}", prefix=token[:10], key_hash=hash_key(token), is_active=True)
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_tenant(db_session: Session) -> Callable[..., Tenant]:
    """Factory creating a company with one admin and one technician, both with API keys."""

    def _factory(name: str = "Garage") -> Tenant:
        suffix = uuid4().hex[:8]
        company = Company(
            name=f"{name} {suffix}",
            address="12 rue des Lilas, 75011 Paris",
            email=f"contact-{suffix}@example.com",
        )
        admin = User(company=company, email=f"admin-{suffix}@example.com", role=UserRole.ADMIN)
        technician = User(company=company, email=f"tech-{suffix}@example.com", role=UserRole.TECHNICIAN)
        db_session.add_all([company, admin, technician])
        db_session.flush()
        admin_headers = _issue_key(db_session, admin)
        technician_headers = _issue_key(db_session, technician)
        db_session.commit()
        return Tenant(company, admin, technician, admin_headers, technician_headers)

    return _factory


@pytest.fixture
def make_offer(db_session: Session) -> Callable[..., Offer]:
    def _factory(
        *,
        name: str = "Pro",
        price: str = "150.00",
        duration_months: int = 12,
        is_public: bool = True,
    ) -> Offer:
        offer = Offer(
            name=name,
            description=f"{name} plan",
            price=Decimal(price),
            duration_months=duration_months,
            max_users=5,
            is_public=is_public,
        )
        db_session.add(offer)
        db_session.commit()
        return offer

    return _factory


@pytest.fixture
def make_order(db_session: Session) -> Callable[..., Order]:
    def _factory(company: Company, offer: Offer, status: OrderStatus = OrderStatus.PENDING) -> Order:
        order = Order(
            company_id=company.id,
            offer_id=offer.id,
            order_number=f"ORD-TEST-{uuid4().hex[:8]}",
            amount=offer.price,
            status=status,
        )
        db_session.add(order)
        db_session.commit()
        return order

    return _factory


def checkout_completed_event(order: Order, *, event_id: str | None = None, amount_total: int = 15000) -> dict:
    """A ``checkout.session.completed`` event as the gateway sends it."""

    return {
        "id": event_id or f"evt_{uuid4().hex}",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": f"cs_test_{order.id}",
                "object": "checkout.session",
                "metadata": {"orderId": str(order.id), "companyId": str(order.company_id)},
                "payment_intent": f"pi_{uuid4().hex[:12]}",
                "amount_total": amount_total,
                "currency": "eur",
            }
        },
    }


def session_payload(order: Order, amount_total: int = 15000) -> dict:
    return checkout_completed_event(order, amount_total=amount_total)["data"]["object"]
