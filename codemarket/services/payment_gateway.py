"""Payment gateway: the only module that calls Stripe.

Responsible for:
- Creating payment intents for repo checkouts
- Retrieving and cancelling payment intents
- Verifying webhook signatures

One PaymentGateway is built per application in create_app() and stored in
app.extensions. Request handlers fetch it with get_payment_gateway() and
pass it into the services explicitly; services never import it.

The API key is passed on every call instead of being assigned to
stripe.api_key, so two apps in one process cannot leak keys into each
other.
"""

import json
import logging
from dataclasses import dataclass, field

import stripe
from flask import current_app

from codemarket.errors import IntentNotFound, PaymentGatewayError

logger = logging.getLogger(__name__)

EXTENSION_KEY = "payment_gateway"


def _field(obj, name, default=None):
    """Read a field from a Stripe object or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _as_dict(obj):
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    return obj.to_dict()


@dataclass(frozen=True)
class PaymentIntent:
    """The parts of a Stripe PaymentIntent the checkout flow reads."""

    id: str
    status: str
    amount: int
    currency: str
    client_secret: str = None
    metadata: dict = field(default_factory=dict)

    @property
    def succeeded(self):
        return self.status == "succeeded"

    @classmethod
    def from_stripe(cls, obj):
        return cls(
            id=_field(obj, "id"),
            status=_field(obj, "status"),
            amount=int(_field(obj, "amount") or 0),
            currency=_field(obj, "currency"),
            client_secret=_field(obj, "client_secret"),
            metadata=_as_dict(_field(obj, "metadata")),
        )


class PaymentGateway:
    """Thin wrapper around the Stripe PaymentIntent API."""

    def __init__(self, api_key, webhook_secret=None, currency="myr"):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self.currency = currency

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config["STRIPE_SECRET_KEY"],
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            currency=config.get("CHECKOUT_CURRENCY", "myr"),
        )

    def create_intent(self, amount, metadata=None):
        """Create a card payment intent for `amount` minor units.

        Raises PaymentGatewayError on any Stripe failure.
        """
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=self.currency,
                automatic_payment_methods={"enabled": True},
                metadata=metadata or {},
                api_key=self._api_key,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe intent creation failed (amount={amount}): {e}")
            raise PaymentGatewayError(amount=amount) from e
        return PaymentIntent.from_stripe(intent)

    def retrieve_intent(self, intent_id):
        """Fetch a payment intent by id.

        Raises IntentNotFound if Stripe has no such intent,
        PaymentGatewayError for every other Stripe failure.
        """
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self._api_key)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                raise IntentNotFound(payment_intent_id=intent_id) from e
            logger.error(f"Stripe rejected intent lookup {intent_id}: {e}")
            raise PaymentGatewayError(payment_intent_id=intent_id) from e
        except stripe.StripeError as e:
            logger.error(f"Stripe intent lookup failed for {intent_id}: {e}")
            raise PaymentGatewayError(payment_intent_id=intent_id) from e
        return PaymentIntent.from_stripe(intent)

    def cancel_intent(self, intent_id):
        """Cancel a payment intent that has not been paid yet."""
        try:
            intent = stripe.PaymentIntent.cancel(intent_id, api_key=self._api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe intent cancel failed for {intent_id}: {e}")
            raise PaymentGatewayError(payment_intent_id=intent_id) from e
        return PaymentIntent.from_stripe(intent)

    def construct_webhook_event(self, payload, sig_header):
        """Verify a webhook signature and return the event as a plain dict.

        Raises stripe.SignatureVerificationError on an invalid signature.
        """
        stripe.WebhookSignature.verify_header(
            payload, sig_header, self._webhook_secret
        )
        return json.loads(payload)


def get_payment_gateway():
    """Return the gateway built for the current app."""
    return current_app.extensions[EXTENSION_KEY]
