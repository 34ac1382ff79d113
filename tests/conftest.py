import random

import pytest
from fastapi.testclient import TestClient

from config import Config
from database import DocumentStore, init_db, make_engine
from main import create_app


class FakeMailer:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, to_addrs, subject, body, attachments=None):
        if self.fail:
            raise RuntimeError("SMTP unavailable")
        self.sent.append({"to": to_addrs, "subject": subject, "body": body, "attachments": attachments or []})


class FakeGateway:
    """Stands in for StripeGateway; webhook events are queued by the test."""

    def __init__(self):
        self.next_event = None
        self.subscriptions = {}
        self.checkouts = []

    def construct_event(self, payload, signature):
        return self.next_event

    def subscription_metadata(self, subscription_id):
        return self.subscriptions.get(subscription_id, {})

    def create_checkout_session(self, **kwargs):
        self.checkouts.append(kwargs)
        return "https://checkout.stripe.test/session"


class FakePayPal:
    """Stands in for PayPalGateway; captures and webhook verdicts are set by the test."""

    def __init__(self):
        self.signature_valid = True
        self.capture = {"id": "CAPTURE-1", "status": "COMPLETED", "purchase_units": []}
        self.captured = []

    def verify_webhook(self, headers, event):
        return self.signature_valid

    def capture_order(self, order_id):
        self.captured.append(order_id)
        return self.capture


@pytest.fixture
def store():
    engine = make_engine("sqlite://")
    init_db(engine)
    return DocumentStore(engine)


@pytest.fixture
def config(tmp_path):
    return Config(
        database_url="sqlite://",
        storage_dir=str(tmp_path / "storage"),
        public_base_url="http://testserver",
        signing_secret="test-signing-secret",
        admin_api_key="admin-secret",
    )


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def paypal():
    return FakePayPal()


@pytest.fixture
def app(config, mailer, gateway, paypal):
    return create_app(config, mailer=mailer, gateway=gateway, paypal_gateway=paypal, rng=random.Random(42))


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def app_store(app, client):
    return app.state.store


def registration_doc(registration_id="R1", payment_status="pending_bank_transfer", attendees=None, **extra):
    attendees = attendees if attendees is not None else [
        {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@example.com", "jobTitle": "CEO"},
        {"firstName": "Alan", "lastName": "Turing", "email": "alan@example.com", "jobTitle": "CTO"},
    ]
    return {
        "registrationId": registration_id,
        "invoiceNumber": f"RDV-2026-{registration_id}",
        "billingInfo": {
            "company": "Acme MGA",
            "billingEmail": "billing@acme.example",
            "country": "BE",
            "organizationType": "MGA",
        },
        "attendees": attendees,
        "pricePerTicket": 500,
        "subtotal": 500 * len(attendees),
        "vatRate": 0,
        "vatAmount": 0,
        "totalPrice": 500 * len(attendees),
        "discount": 0,
        "paymentStatus": payment_status,
        "createdAt": "2026-05-01T10:00:00+00:00",
        **extra,
    }


@pytest.fixture
def make_registration():
    return registration_doc
