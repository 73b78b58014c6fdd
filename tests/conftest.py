# tests/conftest.py
import hashlib
import hmac
import json
import os
import time

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-jwt"
os.environ["ENVIRONMENT"] = "test"

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clinicdesk import crud, models, schemas, security
from clinicdesk.database import Base, get_db
from clinicdesk.exceptions import ApiError
from clinicdesk.limiter import limiter
from clinicdesk.main import app
from clinicdesk.services.email_service import EmailService, get_email_service
from clinicdesk.services.generative_client import GenerativeTextClient, get_ai_client
from clinicdesk.services.payment_gateway import PaymentGateway, get_payment_gateway
from clinicdesk.services.plan_service import PlanService

WEBHOOK_SECRET = "whsec_test_secret"

engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakePaymentGateway(PaymentGateway):
    """In-memory Stripe stand-in; webhook signatures are still verified for real."""

    def __init__(self):
        super().__init__(secret_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET, currency="usd")
        self.intents = {}
        self.cancelled_subscriptions = []

    def create_payment_intent(self, amount, currency=None, metadata=None):
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents[intent_id] = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret",
            "status": "requires_payment_method",
            "amount": amount,
            "currency": currency or self.currency,
            "metadata": metadata or {},
        }
        return dict(self.intents[intent_id])

    def retrieve_payment_intent(self, payment_intent_id):
        if payment_intent_id not in self.intents:
            raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Payment provider error: No such payment_intent")
        return dict(self.intents[payment_intent_id])

    def succeed(self, payment_intent_id):
        self.intents[payment_intent_id]["status"] = "succeeded"

    def cancel_subscription(self, stripe_subscription_id):
        self.cancelled_subscriptions.append(stripe_subscription_id)


class FakeEmailService(EmailService):

    def __init__(self):
        super().__init__(api_key=None, sender_email="billing@clinicdesk.app")
        self.sent = []

    def send_email(self, to_email, subject, html_content):
        self.sent.append({"to": to_email, "subject": subject, "html": html_content})
        return {"success": True, "message": "Email sent successfully", "simulated": False}


class FakeAIClient(GenerativeTextClient):

    def __init__(self, reply="Subject: Checking in\n\nHi there,\nHope you are well."):
        super().__init__(api_key=None, model="test-model")
        self.enabled = True
        self.reply = reply
        self.calls = []

    def generate(self, system_prompt, messages):
        self.calls.append({"system_prompt": system_prompt, "messages": messages})
        return self.reply


def sign_webhook(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def webhook_payload(event_type: str, data_object: dict) -> bytes:
    return json.dumps({
        "id": "evt_test_1",
        "object": "event",
        "type": event_type,
        "data": {"object": data_object},
    }).encode("utf-8")


def auth_headers(user: models.User) -> dict:
    token = security.create_access_token({"sub": user.username, "user_id": user.id, "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


def make_user(db, username: str, role: models.UserRole = models.UserRole.user) -> models.User:
    return crud.create_user(
        db,
        schemas.UserCreate(username=username, email=f"{username}@example.com", password="secret123"),
        role=role,
    )


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    PlanService(session).seed_default_plans()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def gateway():
    return FakePaymentGateway()


@pytest.fixture()
def email_service():
    return FakeEmailService()


@pytest.fixture()
def ai_client():
    return FakeAIClient()


@pytest.fixture()
def client(db, gateway, email_service, ai_client):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_email_service] = lambda: email_service
    app.dependency_overrides[get_ai_client] = lambda: ai_client
    limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def owner(db):
    return make_user(db, "owner")


@pytest.fixture()
def clinic(db, owner):
    return crud.create_clinic(db, schemas.ClinicCreate(name="Harbor Clinic", email="hello@harbor-clinic.com"), owner)


@pytest.fixture()
def owner_headers(owner, clinic):
    return auth_headers(owner)


@pytest.fixture()
def platform_admin(db):
    return make_user(db, "platformadmin", role=models.UserRole.super_admin)


@pytest.fixture()
def admin_headers(platform_admin):
    return auth_headers(platform_admin)


@pytest.fixture()
def client_payload():
    def build(index: int = 1, **overrides):
        payload = {
            "first_name": "Jane",
            "last_name": f"Doe{index}",
            "email": f"jane{index}@example.com",
            "phone_number": "+15550100",
        }
        payload.update(overrides)
        return payload
    return build


@pytest.fixture()
def create_client(client, owner_headers, client_payload):
    def create(index: int = 1, **overrides):
        response = client.post("/api/v1/clients", json=client_payload(index, **overrides), headers=owner_headers)
        assert response.status_code == 201, response.text
        return response.json()
    return create


@pytest.fixture()
def headers_for():
    return auth_headers


@pytest.fixture()
def signed_webhook():
    def build(event_type: str, data_object: dict, secret: str = WEBHOOK_SECRET):
        payload = webhook_payload(event_type, data_object)
        return payload, {"stripe-signature": sign_webhook(payload, secret), "content-type": "application/json"}
    return build


@pytest.fixture()
def invoice_payload():
    def build(client_id: int, **overrides):
        payload = {
            "client_id": client_id,
            "items": [{"description": "Therapy session", "quantity": 2, "unit_price": 50, "total": 100}],
            "subtotal": 100,
            "tax": 10,
            "total": 110,
            "due_date": "2030-01-31",
        }
        payload.update(overrides)
        return payload
    return build
