"""
Pytest configuration and shared fixtures.

Test environment variables are set here before any app import; values that
are already present in the environment win. Settings are reloaded so the
app picks them up.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_birthday.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("PAYMENT_MODE", "simulate")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from app.config import get_settings
get_settings.cache_clear()

from app.collaborators import Collaborators, SimulatedPaymentGateway
from app.dependencies import get_collaborators
from app.main import app
from app.storage import Base, engine

from fakes import FakeEmailSender, FakeGenerator, FakeSmsSender
from memory_store import MemoryStore


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def sms_sender():
    return FakeSmsSender()


@pytest.fixture
def collaborators(generator, email_sender, sms_sender):
    return Collaborators(
        text=generator,
        image=generator,
        payments=SimulatedPaymentGateway(),
        email=email_sender,
        sms=sms_sender,
    )


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture(scope="function")
def client(collaborators):
    """Create test client with fresh database and fake providers for each test."""
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_collaborators] = lambda: collaborators

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def recipient_body() -> dict:
    return {
        "recipientName": "Sam",
        "relationshipRole": "friend",
        "personality": "sarcastic, loves coffee",
    }


@pytest.fixture
def message_id(client, recipient_body) -> int:
    response = client.post("/api/generate-message", json=recipient_body)
    assert response.status_code == 200
    return response.json()["id"]


@pytest.fixture
def purchase_id(client, message_id) -> int:
    response = client.post(
        "/api/create-purchase", json={"email": "a@b.com", "messageId": message_id}
    )
    assert response.status_code == 200
    return response.json()["purchaseId"]
