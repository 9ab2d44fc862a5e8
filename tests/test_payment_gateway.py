"""Tests for the Stripe payment gateway wrapper.

The stripe SDK is patched; no network calls are made.
"""

import json
from unittest.mock import patch

import pytest
import stripe

from codemarket import create_app
from codemarket.errors import IntentNotFound, PaymentGatewayError
from codemarket.services.payment_gateway import (
    EXTENSION_KEY,
    PaymentGateway,
    PaymentIntent,
    get_payment_gateway,
)

INTENT = {
    "id": "pi_123",
    "object": "payment_intent",
    "status": "succeeded",
    "amount": 4900,
    "currency": "myr",
    "client_secret": "pi_123_secret_abc",
    "metadata": {"repo_id": "r1"},
}


@pytest.fixture
def real_gateway():
    return PaymentGateway("sk_test_123", webhook_secret="whsec_123", currency="myr")


class TestRetrieveIntent:

    @patch("codemarket.services.payment_gateway.stripe.PaymentIntent.retrieve")
    def test_returns_payment_intent(self, mock_retrieve, real_gateway):
        mock_retrieve.return_value = INTENT

        intent = real_gateway.retrieve_intent("pi_123")

        mock_retrieve.assert_called_once_with("pi_123", api_key="sk_test_123")
        assert intent == PaymentIntent(
            id="pi_123",
            status="succeeded",
            amount=4900,
            currency="myr",
            client_secret="pi_123_secret_abc",
            metadata={"repo_id": "r1"},
        )
        assert intent.succeeded

    @patch("codemarket.services.payment_gateway.stripe.PaymentIntent.retrieve")
    def test_missing_intent(self, mock_retrieve, real_gateway):
        mock_retrieve.side_effect = stripe.InvalidRequestError(
            "No such payment_intent: 'pi_nope'", "intent", code="resource_missing"
        )

        with pytest.raises(IntentNotFound) as exc:
            real_gateway.retrieve_intent("pi_nope")
        assert exc.value.context == {"payment_intent_id": "pi_nope"}

    @patch("codemarket.services.payment_gateway.stripe.PaymentIntent.retrieve")
    def test_other_invalid_request(self, mock_retrieve, real_gateway):
        mock_retrieve.side_effect = stripe.InvalidRequestError(
            "Invalid API key", None, code="api_key_invalid"
        )

        with pytest.raises(PaymentGatewayError):
            real_gateway.retrieve_intent("pi_123")

    @patch("codemarket.services.payment_gateway.stripe.PaymentIntent.retrieve")
    def test_connection_error(self, mock_retrieve, real_gateway):
        mock_retrieve.side_effect = stripe.APIConnectionError("connection reset")

        with pytest.raises(PaymentGatewayError) as exc:
            real_gateway.retrieve_intent("pi_123")
        assert exc.value.status_code == 502


class TestCreateAndCancel:

    @patch("codemarket.services.payment_gateway.stripe.PaymentIntent.create")
    def test_create_intent(self, mock_create, real_gateway):
        mock_create.return_value = dict(INTENT, status="requires_payment_method")

        intent = real_gateway.create_intent(4900, metadata={"repo_id": "r1"})

        kwargs = mock_create.call_args.kwargs
        assert kwargs["amount"] == 4900
        assert kwargs["currency"] == "myr"
        assert kwargs["automatic_payment_methods"] == {"enabled": True}
        assert kwargs["metadata"] == {"repo_id": "r1"}
        assert kwargs["api_key"] == "sk_test_123"
        assert intent.client_secret == "pi_123_secret_abc"
        assert not intent.succeeded

    @patch("codemarket.services.payment_gateway.stripe.PaymentIntent.create")
    def test_create_intent_failure(self, mock_create, real_gateway):
        mock_create.side_effect = stripe.CardError("declined", None, code="card_declined")

        with pytest.raises(PaymentGatewayError):
            real_gateway.create_intent(4900)

    @patch("codemarket.services.payment_gateway.stripe.PaymentIntent.cancel")
    def test_cancel_intent(self, mock_cancel, real_gateway):
        mock_cancel.return_value = dict(INTENT, status="canceled")

        intent = real_gateway.cancel_intent("pi_123")

        mock_cancel.assert_called_once_with("pi_123", api_key="sk_test_123")
        assert intent.status == "canceled"


class TestWebhookEvents:

    @patch("codemarket.services.payment_gateway.stripe.WebhookSignature.verify_header")
    def test_verified_payload_is_parsed(self, mock_verify, real_gateway):
        payload = json.dumps({"id": "evt_1", "type": "payment_intent.succeeded"})

        event = real_gateway.construct_webhook_event(payload, "t=1,v1=abc")

        mock_verify.assert_called_once_with(payload, "t=1,v1=abc", "whsec_123")
        assert event == {"id": "evt_1", "type": "payment_intent.succeeded"}

    @patch("codemarket.services.payment_gateway.stripe.WebhookSignature.verify_header")
    def test_bad_signature_raises(self, mock_verify, real_gateway):
        mock_verify.side_effect = stripe.SignatureVerificationError("bad", "t=1,v1=abc")

        with pytest.raises(stripe.SignatureVerificationError):
            real_gateway.construct_webhook_event("{}", "t=1,v1=abc")


class TestGatewayRegistration:

    def test_app_builds_gateway_from_config(self):
        app = create_app("testing")
        gateway = app.extensions[EXTENSION_KEY]

        assert isinstance(gateway, PaymentGateway)
        assert gateway.currency == app.config["CHECKOUT_CURRENCY"]

    def test_get_payment_gateway_uses_current_app(self, app, gateway):
        with app.app_context():
            assert get_payment_gateway() is gateway
