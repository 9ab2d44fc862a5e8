"""Shared test fixtures for the CodeMarket test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- gateway: FakeGateway installed as the app's payment gateway
- marketplace: a seller with a paid and a free repo, plus two buyers
- login: puts a user id into the test client's Flask-Login session
- make_order: pending order bound to a payment intent the gateway knows
"""

import dataclasses
import json
from datetime import datetime, timezone

import pytest
import stripe
from flask import g

from codemarket import create_app
from codemarket.errors import IntentNotFound
from codemarket.extensions import db as _db
from codemarket.models.repo import Repo
from codemarket.models.seller import SellerProfile
from codemarket.models.user import User
from codemarket.services import order_ledger
from codemarket.services.payment_gateway import EXTENSION_KEY, PaymentIntent

PAID_PRICE = 4900


class FakeGateway:
    """In-memory stand-in for PaymentGateway.

    Intents are registered with add_intent(); retrieve_intent() of any
    other id raises IntentNotFound like the real gateway does for
    Stripe's resource_missing. Webhook signatures are valid only when the
    header is "valid_sig".
    """

    currency = "myr"

    def __init__(self):
        self.intents = {}
        self.created = []
        self.cancelled = []

    def add_intent(self, intent_id, amount, status="succeeded", metadata=None):
        intent = PaymentIntent(
            id=intent_id,
            status=status,
            amount=amount,
            currency=self.currency,
            client_secret=f"{intent_id}_secret_test",
            metadata=dict(metadata or {}),
        )
        self.intents[intent_id] = intent
        return intent

    def set_status(self, intent_id, status):
        self.intents[intent_id] = dataclasses.replace(self.intents[intent_id], status=status)

    def create_intent(self, amount, metadata=None):
        intent_id = f"pi_test_{len(self.created) + 1}"
        self.created.append(intent_id)
        return self.add_intent(intent_id, amount, "requires_payment_method", metadata)

    def retrieve_intent(self, intent_id):
        if intent_id not in self.intents:
            raise IntentNotFound(payment_intent_id=intent_id)
        return self.intents[intent_id]

    def cancel_intent(self, intent_id):
        self.retrieve_intent(intent_id)
        self.cancelled.append(intent_id)
        self.set_status(intent_id, "canceled")
        return self.intents[intent_id]

    def construct_webhook_event(self, payload, sig_header):
        if sig_header != "valid_sig":
            raise stripe.SignatureVerificationError(
                "No signatures found matching the expected signature for payload",
                sig_header,
            )
        return json.loads(payload)


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture(autouse=True)
def gateway(app, monkeypatch):
    """Swap the app's Stripe-backed gateway for a FakeGateway."""
    fake = FakeGateway()
    monkeypatch.setitem(app.extensions, EXTENSION_KEY, fake)
    return fake


@pytest.fixture
def login(client):
    """Return a function that logs the test client in as a user id."""

    def _login(user_id):
        with client.session_transaction() as sess:
            sess["_user_id"] = user_id
            sess["_fresh"] = True
        # Requests reuse the fixture's app context; drop the cached user.
        g.pop("_login_user", None)

    return _login


@pytest.fixture
def marketplace(db_session):
    """Seed a seller (payouts enabled) with a paid and a free repo, and two buyers.

    Returns plain IDs so tests can use them after the session expires
    the objects.
    """
    seller_user = User(email="seller@test.local", full_name="Sam Seller", role="seller")
    buyer = User(email="buyer@test.local", full_name="Bea Buyer")
    other_buyer = User(email="other@test.local", full_name="Otto Other")
    db_session.add_all([seller_user, buyer, other_buyer])
    db_session.flush()

    profile = SellerProfile(
        user_id=seller_user.id,
        business_name="Sam's Components",
        payouts_enabled=True,
        verified_at=datetime.now(timezone.utc),
    )
    paid_repo = Repo(
        owner_id=seller_user.id,
        name="Fancy Navbar",
        price=PAID_PRICE,
        status="active",
    )
    free_repo = Repo(
        owner_id=seller_user.id,
        name="Starter Buttons",
        price=0,
        status="active",
    )
    db_session.add_all([profile, paid_repo, free_repo])
    db_session.commit()

    return {
        "seller_user_id": seller_user.id,
        "seller_id": profile.id,
        "buyer_id": buyer.id,
        "other_buyer_id": other_buyer.id,
        "repo_id": paid_repo.id,
        "free_repo_id": free_repo.id,
        "price": PAID_PRICE,
    }


@pytest.fixture
def make_order(db_session, gateway, marketplace):
    """Return a factory for committed pending orders with a known intent.

    The intent is registered on the fake gateway as already succeeded
    unless `intent_status` says otherwise.
    """

    def _make(intent_id="pi_1", buyer_id=None, amount=PAID_PRICE,
              intent_status="succeeded", intent_amount=None):
        order = order_ledger.create_order(
            db_session,
            buyer_id or marketplace["buyer_id"],
            marketplace["repo_id"],
            amount,
            intent_id,
        )
        db_session.commit()
        gateway.add_intent(
            intent_id,
            amount if intent_amount is None else intent_amount,
            status=intent_status,
        )
        return order.id

    return _make
