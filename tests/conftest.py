import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

import jazjo.domain.models  # noqa: F401  registers the tables on Base
from jazjo.core.config import Settings
from jazjo.core.errors import AuthenticationError, UpstreamError
from jazjo.domain.models import Product, Profile
from jazjo.domain.schemas import AuthSession, CheckoutSession, Identity
from jazjo.infrastructure.database import Base, build_engine, build_session_factory
from jazjo.infrastructure.paymongo_gateway import compute_signature
from jazjo.infrastructure.repositories.sql_repositories import (
    SqlOrderRepository,
    SqlPaymentRepository,
    SqlProductRepository,
    SqlProfileRepository,
)
from jazjo.interfaces.IAuthProvider import IAuthProvider
from jazjo.interfaces.IPaymentGateway import IPaymentGateway
from jazjo.main import build_services, create_app

WEBHOOK_SECRET = "whsk_test_secret"

CUSTOMER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_CUSTOMER_ID = "44444444-4444-4444-4444-444444444444"
STAFF_ID = "22222222-2222-2222-2222-222222222222"
ADMIN_ID = "33333333-3333-3333-3333-333333333333"

TOKENS = {
    "customer-token": CUSTOMER_ID,
    "other-token": OTHER_CUSTOMER_ID,
    "staff-token": STAFF_ID,
    "admin-token": ADMIN_ID,
}


class FakeGateway(IPaymentGateway):
    """Records checkout requests; verifies signatures with the real HMAC scheme."""

    def __init__(self, secret=WEBHOOK_SECRET):
        self.secret = secret
        self.sessions = []
        self.fail = False
        self.counter = 0

    def create_checkout_session(self, order_code, line_items, success_url, cancel_url):
        if self.fail:
            raise UpstreamError("Failed to create PayMongo checkout session")
        self.counter += 1
        session_id = f"cs_test_{self.counter}"
        self.sessions.append({
            "order_code": order_code,
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "session_id": session_id,
        })
        return CheckoutSession(session_id=session_id, checkout_url=f"https://checkout.paymongo.test/{session_id}")

    def verify_webhook_signature(self, raw_body, signature_header):
        parts = dict(p.split("=", 1) for p in (signature_header or "").split(",") if "=" in p)
        if not parts.get("t") or not (parts.get("te") or parts.get("li")):
            return False
        expected = compute_signature(self.secret, parts["t"], raw_body)
        return expected in (parts.get("te"), parts.get("li"))


class FakeAuth(IAuthProvider):
    def __init__(self, tokens=None, passwords=None):
        self.tokens = dict(tokens or TOKENS)
        self.passwords = dict(passwords or {})

    def password_login(self, email, password):
        if self.passwords.get(email) != password:
            raise AuthenticationError("Invalid login credentials")
        return AuthSession(access_token=f"token-for-{email}", refresh_token="refresh", expires_in=3600)

    def get_user(self, access_token):
        user_id = self.tokens.get(access_token)
        if not user_id:
            raise AuthenticationError("Invalid token")
        return Identity(user_id=user_id)


@pytest.fixture
def test_settings():
    return Settings(_env_file=None, APP_BASE_URL="http://shop.test", STATIC_DIR="does-not-exist")


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def seed(session_factory):
    session = session_factory()
    session.add_all([
        Product(id="prod-1", sku="P001", name="Ube Jam", category="Spreads", unit="case",
                price=Decimal("55"), stock_cases=20, image_url="/img/ube.png"),
        Product(id="prod-2", sku="P002", name="Coconut Vinegar", category="Condiments", unit="case",
                price=Decimal("400"), stock_cases=8),
        Product(id="prod-3", sku="P003", name="Dried Mango", category="Snacks", unit="case",
                price=Decimal("250"), stock_cases=0),
        Product(id="prod-4", sku="P004", name="Old Stock", category="Snacks", unit="case",
                price=Decimal("10"), stock_cases=50, is_active=False),
        Profile(user_id=CUSTOMER_ID, email="cora@example.com", role="customer", full_name="Cora Cruz",
                contact="09170000000", address="12 Mabini St"),
        Profile(user_id=OTHER_CUSTOMER_ID, email="ben@example.com", role="customer", full_name="Ben Reyes"),
        Profile(user_id=STAFF_ID, email="sam@example.com", role="staff", full_name="Sam Staff"),
        Profile(user_id=ADMIN_ID, email="ada@example.com", role="admin", full_name="Ada Admin"),
    ])
    session.commit()
    session.close()


@pytest.fixture
def products(session_factory, seed):
    return SqlProductRepository(session_factory)


@pytest.fixture
def orders(session_factory, seed):
    return SqlOrderRepository(session_factory)


@pytest.fixture
def payments(session_factory, seed):
    return SqlPaymentRepository(session_factory)


@pytest.fixture
def profiles(session_factory, seed):
    return SqlProfileRepository(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def auth():
    return FakeAuth(passwords={"cora@example.com": "secret123"})


class CountingRng:
    """Stands in for random.Random so order codes never collide within a test."""

    def __init__(self, start=100):
        self.value = start - 1

    def randint(self, low, high):
        self.value += 1
        return self.value


@pytest.fixture
def services(products, orders, payments, profiles, gateway, auth, test_settings):
    services = build_services(products, orders, payments, profiles, gateway, auth, test_settings)
    services.builder.rng = CountingRng()
    return services


@pytest.fixture
def client(services, test_settings):
    return TestClient(create_app(services, test_settings))


@pytest.fixture
def customer(profiles):
    return profiles.find_by_user_id(CUSTOMER_ID)


@pytest.fixture
def staff(profiles):
    return profiles.find_by_user_id(STAFF_ID)


@pytest.fixture
def admin(profiles):
    return profiles.find_by_user_id(ADMIN_ID)


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


def paid_event(order_code=None, session_id="cs_test_1", event_id="evt_1", payment_id="pay_1",
               event_type="checkout_session.payment.paid"):
    """A PayMongo checkout_session.payment.paid envelope."""
    metadata = {"order_code": order_code} if order_code else {}
    return {
        "data": {
            "id": event_id,
            "type": "event",
            "attributes": {
                "type": event_type,
                "livemode": False,
                "data": {
                    "id": session_id,
                    "type": "checkout_session",
                    "attributes": {
                        "metadata": metadata,
                        "payments": [{"id": payment_id, "type": "payment", "attributes": {"status": "paid"}}],
                    },
                },
            },
        }
    }


def signed(payload, secret=WEBHOOK_SECRET, timestamp="1700000000"):
    """Raw body plus a matching Paymongo-Signature header (test-mode slot)."""
    body = json.dumps(payload).encode()
    signature = compute_signature(secret, timestamp, body)
    return body, f"t={timestamp},te={signature},li="
