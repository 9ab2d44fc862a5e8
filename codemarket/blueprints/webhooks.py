"""Webhooks blueprint: /stripe/webhooks

Receives Stripe webhook events. CSRF-exempt.
Raw body is required for signature verification.
"""

import logging

import stripe
from flask import Blueprint, jsonify, request

from codemarket.extensions import db
from codemarket.services.payment_gateway import get_payment_gateway
from codemarket.services.stripe_webhook_service import handle_webhook_event

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/stripe")


@webhooks_bp.route("/webhooks", methods=["POST"])
def stripe_webhook():
    """Verify the Stripe signature, then hand the event to the webhook service.

    200 acknowledges the event (including duplicates and events we do
    not act on). 500 makes Stripe retry.
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        return jsonify({"error": "Missing signature"}), 400

    gateway = get_payment_gateway()
    try:
        event = gateway.construct_webhook_event(payload, sig_header)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return jsonify({"error": "Invalid signature"}), 400

    success, message = handle_webhook_event(db.session, gateway, event)
    if success:
        return jsonify({"status": message}), 200

    logger.error(f"Webhook processing failed: {message}")
    return jsonify({"error": message}), 500
