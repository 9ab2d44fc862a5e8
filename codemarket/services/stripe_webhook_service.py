"""Stripe webhook handling for payment intents.

Responsible for:
- Idempotency via the stripe_events table
- Dispatching payment_intent.* events to handlers
- Settling orders whose buyer closed the tab before the client call
- Recording requires_action / failed / canceled intents on the ledger

Signature verification happens in the blueprint through
PaymentGateway.construct_webhook_event(); events reaching this module
are trusted.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from codemarket.errors import (
    AlreadyProcessed,
    CheckoutError,
    PaymentGatewayError,
    SettlementFailed,
)
from codemarket.models.audit import AuditEvent
from codemarket.models.stripe_event import StripeEvent
from codemarket.services import order_ledger
from codemarket.services.settlement_service import settle

logger = logging.getLogger(__name__)


def handle_webhook_event(session, gateway, event):
    """Process a verified Stripe webhook event.

    Idempotency: checks stripe_events table before processing.
    If the event was already processed, returns immediately.

    Returns (success: bool, message: str). success=False asks Stripe
    to redeliver later.
    """
    event_id = event["id"]
    event_type = event["type"]

    existing = session.scalars(
        select(StripeEvent).where(StripeEvent.stripe_event_id == event_id)
    ).first()
    if existing:
        logger.info(f"Duplicate webhook event {event_id}, skipping")
        return True, "already_processed"

    outcome = "ignored"
    handler = _HANDLERS.get(event_type)
    if handler:
        intent = event["data"]["object"]
        try:
            outcome = handler(session, gateway, intent)
        except (SettlementFailed, PaymentGatewayError) as e:
            # Transient: leave the event unrecorded so the redelivery retries.
            session.rollback()
            logger.error(f"Error handling {event_type} ({event_id}): {e.kind}")
            return False, e.kind
        except CheckoutError as e:
            session.rollback()
            logger.warning(
                f"{event_type} for intent {intent.get('id')} rejected: {e.kind}"
            )
            outcome = "rejected"

    session.add(StripeEvent(
        stripe_event_id=event_id,
        event_type=event_type,
        outcome=outcome,
    ))
    try:
        session.commit()
    except IntegrityError:
        # A concurrent delivery of the same event recorded it first.
        session.rollback()
        return True, "already_processed"

    logger.info(f"Webhook {event_id} ({event_type}): {outcome}")
    return True, outcome


# ──────────────────────────────────────────────
# Event Handlers
# ──────────────────────────────────────────────

def _handle_intent_succeeded(session, gateway, intent):
    """Settle the order on the buyer's behalf.

    The intent is re-read from Stripe inside settle(); the event body is
    only used to find the order.
    """
    order = order_ledger.find_by_payment_intent(session, intent["id"])
    if order is None:
        logger.warning(f"payment_intent.succeeded for unknown intent {intent['id']}")
        return "order_missing"

    try:
        settle(session, gateway, order.buyer_id, intent["id"], source="webhook")
    except AlreadyProcessed:
        return "already_settled"
    return "settled"


def _handle_intent_requires_action(session, gateway, intent):
    return _record_status(session, intent, "requires_action", "order.requires_action")


def _handle_intent_payment_failed(session, gateway, intent):
    return _record_status(session, intent, "failed", "order.failed")


def _handle_intent_canceled(session, gateway, intent):
    return _record_status(session, intent, "cancelled", "order.cancelled")


def _record_status(session, intent, new_status, action):
    order = order_ledger.find_by_payment_intent(session, intent["id"], lock=True)
    if order is None:
        logger.warning(f"{action} for unknown intent {intent['id']}")
        return "order_missing"

    if not order_ledger.transition(session, order.id, new_status):
        return "ignored"

    metadata = {"payment_intent_id": intent["id"], "source": "webhook"}
    error = intent.get("last_payment_error") or {}
    if error.get("message"):
        metadata["error"] = error["message"]

    session.add(AuditEvent(
        actor_user_id=None,
        order_id=order.id,
        action=action,
        metadata_=metadata,
    ))
    return "status_changed"


_HANDLERS = {
    "payment_intent.succeeded": _handle_intent_succeeded,
    "payment_intent.requires_action": _handle_intent_requires_action,
    "payment_intent.payment_failed": _handle_intent_payment_failed,
    "payment_intent.canceled": _handle_intent_canceled,
}
