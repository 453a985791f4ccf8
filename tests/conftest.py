import hashlib
import hmac
import json
import os
import time
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("EMAIL_SEND_IMMEDIATELY", "false")

import pytest
from fastapi.testclient import TestClient

from valence.core.config import settings
from valence.core.errors import UpstreamError
from valence.core.security import create_access_token
from valence.db.session import Base
from valence.main import create_app
from valence.models.audit_log import AuditLog  # noqa: F401
from valence.models.availability import AvailabilityWindow  # noqa: F401
from valence.models.booking import Booking
from valence.models.connected_account import ConnectedAccount
from valence.models.email_log import EmailLog  # noqa: F401
from valence.models.message import BookingMessage  # noqa: F401
from valence.models.review import Review  # noqa: F401
from valence.models.service import Service
from valence.models.user import User
from valence.models.webhook_event import ProcessedWebhookEvent  # noqa: F401
from valence.services.payment_gateway import Hold, StripeConfig, StripeGateway
from valence.services.pricing import quote


class FakeGateway(StripeGateway):
    """Records every platform call; webhook verification is the real one."""

    def __init__(self):
        super().__init__(StripeConfig(secret_key="sk_test_dummy", webhook_secret=settings.STRIPE_WEBHOOK_SECRET))
        self.holds: dict[str, dict] = {}
        self.voided: list[str] = []
        self.captures: list[tuple[str, str]] = []
        self.transfer_calls: list[dict] = []
        self.transfers: dict[str, str] = {}
        self.accounts: list[str] = []
        self.fail: set[str] = set()
        self.next_hold_id: str | None = None

    def create_hold(self, *, amount_minor, metadata, idempotency_key):
        if "create_hold" in self.fail:
            raise UpstreamError("Failed to create payment intent")
        pi_id = self.next_hold_id or f"pi_{len(self.holds) + 1}"
        self.holds[pi_id] = {
            "amount": amount_minor,
            "metadata": dict(metadata),
            "capture_method": "manual",
            "idempotency_key": idempotency_key,
            "status": "requires_payment_method",
        }
        return Hold(id=pi_id, client_secret=f"{pi_id}_secret_abc", status="requires_payment_method")

    def void_hold(self, payment_intent_id):
        if "void_hold" in self.fail:
            raise UpstreamError("Failed to void payment intent")
        self.voided.append(payment_intent_id)
        self.holds.setdefault(payment_intent_id, {})["status"] = "canceled"
        return "canceled"

    def capture_hold(self, payment_intent_id, *, idempotency_key):
        if "capture_hold" in self.fail:
            raise UpstreamError("Failed to capture payment")
        self.captures.append((payment_intent_id, idempotency_key))
        return "succeeded"

    def create_transfer(self, *, amount_minor, destination, idempotency_key, source_transaction=None,
                        transfer_group=None, metadata=None):
        if "create_transfer" in self.fail:
            raise UpstreamError("Failed to transfer funds to provider")
        self.transfer_calls.append({
            "amount": amount_minor,
            "destination": destination,
            "idempotency_key": idempotency_key,
            "source_transaction": source_transaction,
        })
        # Same key, same transfer: what Stripe does with idempotency keys.
        if idempotency_key not in self.transfers:
            self.transfers[idempotency_key] = f"tr_{len(self.transfers) + 1}"
        return self.transfers[idempotency_key]

    def create_connected_account(self, *, email, profile_url):
        acct = f"acct_{len(self.accounts) + 1}"
        self.accounts.append(acct)
        return acct

    def create_onboarding_link(self, account_id, *, refresh_url, return_url):
        return f"https://connect.stripe.test/setup/{account_id}"

    def create_login_link(self, account_id):
        return f"https://connect.stripe.test/express/{account_id}"


@pytest.fixture
def app():
    application = create_app(settings)
    Base.metadata.create_all(application.state.engine)
    application.state.payments = FakeGateway()
    yield application
    application.state.engine.dispose()


@pytest.fixture
def gateway(app) -> FakeGateway:
    return app.state.payments


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def make_user(db, role: str, email: str | None = None) -> User:
    u = User(
        id=str(uuid.uuid4()),
        email=email or f"{role}-{uuid.uuid4().hex[:8]}@example.com",
        full_name=role.title(),
        role=role,
        password_hash="not-a-real-hash",
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


def auth(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


@pytest.fixture
def customer(db) -> User:
    return make_user(db, "customer")


@pytest.fixture
def provider(db) -> User:
    return make_user(db, "provider")


@pytest.fixture
def stranger(db) -> User:
    return make_user(db, "customer")


@pytest.fixture
def payout_account(db, provider) -> ConnectedAccount:
    acct = ConnectedAccount(id=str(uuid.uuid4()), user_id=provider.id, stripe_account_id="acct_provider",
                            payouts_enabled=True, charges_enabled=True, details_submitted=True)
    db.add(acct)
    db.commit()
    return acct


def make_booking(db, customer: User, provider: User, *, status="pending", price="100.00",
                 payment_intent_id: str | None = None, start: datetime | None = None, hours: int = 1) -> Booking:
    q = quote(Decimal(price))
    start = start or datetime.now(timezone.utc) + timedelta(days=2)
    bid = str(uuid.uuid4())
    b = Booking(
        id=bid,
        service_id="svc_1",
        customer_id=customer.id,
        provider_id=provider.id,
        price=q.price,
        platform_fee=q.platform_fee,
        total_amount=q.total_amount,
        provider_payout=q.provider_payout,
        currency="usd",
        start_time=start,
        end_time=start + timedelta(hours=hours),
        duration_minutes=60 * hours,
        payment_intent_id=payment_intent_id or f"pi_{bid[:8]}",
        status=status,
    )
    db.add(b)
    db.commit()
    return b


def reload(db, model, pk):
    db.expire_all()
    return db.get(model, pk)


def sign_payload(payload: str, secret: str | None = None, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header the way Stripe does: HMAC-SHA256 over "<t>.<payload>"."""
    secret = secret or settings.STRIPE_WEBHOOK_SECRET
    ts = timestamp or int(time.time())
    sig = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def stripe_event(event_type: str, obj: dict, event_id: str | None = None) -> str:
    return json.dumps({
        "id": event_id or f"evt_{uuid.uuid4().hex[:12]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    })


def post_event(client, payload: str, signature: str | None = None):
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = signature if signature is not None else sign_payload(payload)
    return client.post("/api/v1/webhooks/stripe", content=payload, headers=headers)


def make_service(db, provider: User, *, price="100.00", active=True) -> Service:
    s = Service(id=str(uuid.uuid4()), provider_id=provider.id, title="Lawn mowing", description="Front and back",
                category="garden", price=Decimal(price), duration_minutes=120, is_active=active)
    db.add(s)
    db.commit()
    return s


@pytest.fixture
def service(db, provider) -> Service:
    return make_service(db, provider)
