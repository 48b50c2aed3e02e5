import hashlib
import hmac
import json
import os
import time
from decimal import Decimal

# storefront.database builds its engine from DATABASE_URL at import
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from storefront import models
from storefront.config import Settings
from storefront.database import Base, build_engine, get_db
from storefront.main import create_app
from storefront.payments import PaymentGateway, PaymentProviderError, ProcessorSession

WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_TOKEN = "test-admin-token"
PASSWORD = "correct horse battery"

SHIPPING_ADDRESS = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "phone": "5551234567",
    "address": "12 Analytical Way",
    "city": "London",
    "state": "LDN",
    "zip_code": "10001",
    "country": "UK",
}


class FakeGateway(PaymentGateway):
    """In-memory stand-in for Stripe checkout sessions."""

    def __init__(self):
        self.sessions = {}
        self.created = []
        self.fail = False

    def create_checkout_session(self, line_items, metadata, success_url, cancel_url, customer_email=None):
        if self.fail:
            raise PaymentProviderError("processor unavailable")
        number = len(self.sessions) + 1
        session = ProcessorSession(
            id=f"cs_test_{number}",
            url=f"https://checkout.stripe.test/cs_test_{number}",
            payment_status="unpaid",
            payment_intent=f"pi_test_{number}",
            metadata=dict(metadata),
        )
        self.sessions[session.id] = session
        self.created.append({
            "line_items": line_items,
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
        })
        return session

    def retrieve_checkout_session(self, session_id):
        if session_id not in self.sessions:
            raise PaymentProviderError("No such checkout session")
        return self.sessions[session_id]

    def mark_paid(self, session_id):
        self.sessions[session_id].payment_status = "paid"


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    return Settings(
        seed_catalog=False,
        maintenance_interval_seconds=0,
        bcrypt_rounds=4,
        stripe_secret_key="sk_test_dummy",
        stripe_webhook_secret=WEBHOOK_SECRET,
        admin_api_token=ADMIN_TOKEN,
        public_base_url="http://shop.test",
    )


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(settings, session_factory, gateway):
    app = create_app(settings, session_factory=session_factory)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.payment_gateway = gateway
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_client(app):
    """New TestClient (own cookie jar) for the same app."""
    return lambda: TestClient(app)


def register(client, email, password=PASSWORD):
    response = client.post("/api/auth/register", json={"email": email, "password": password, "first_name": "Test"})
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def alice(make_client):
    client = make_client()
    client.user = register(client, "alice@example.com")
    return client


@pytest.fixture
def bob(make_client):
    client = make_client()
    client.user = register(client, "bob@example.com")
    return client


@pytest.fixture
def category(db):
    category = models.Category(name="Rings", slug="rings", description="Rings")
    db.add(category)
    db.commit()
    return category


@pytest.fixture
def make_product(db, category):
    counter = {"n": 0}

    def make(price="100.00", **fields):
        counter["n"] += 1
        n = counter["n"]
        data = {
            "slug": f"product-{n}",
            "name": f"Product {n}",
            "description": f"Description of product {n}",
            "price": Decimal(price),
            "category_id": category.id,
            "images": [f"https://img.test/{n}.jpg"],
            "stock_quantity": 5,
        }
        data.update(fields)
        product = models.Product(**data)
        db.add(product)
        db.commit()
        return product

    return make


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Stripe-Signature header value for `payload`."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type, obj, event_id="evt_test_1"):
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


def post_event(client, event, secret=WEBHOOK_SECRET):
    payload = json.dumps(event).encode("utf-8")
    return client.post(
        "/api/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": sign_payload(payload, secret), "Content-Type": "application/json"},
    )


def start_checkout(client):
    response = client.post("/api/checkout", json={"shipping_address": SHIPPING_ADDRESS})
    assert response.status_code == 200, response.text
    return response.json()
