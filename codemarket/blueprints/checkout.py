"""Checkout blueprint: /checkout/*

JSON API used by the storefront's card form.

Routes:
- POST /checkout                     : start a checkout for a repo
- POST /checkout/process-payment     : settle a confirmed payment intent
- POST /checkout/<order_id>/cancel   : abandon an unpaid order
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from codemarket.decorators import buyer_required
from codemarket.errors import InvalidInput
from codemarket.extensions import db, limiter
from codemarket.services.checkout_service import abort_checkout, init_checkout
from codemarket.services.payment_gateway import get_payment_gateway
from codemarket.services.settlement_service import settle

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__, url_prefix="/checkout")


def _string_field(name):
    """Return a non-empty string field from the JSON body or raise InvalidInput."""
    data = request.get_json(silent=True)
    value = data.get(name) if isinstance(data, dict) else None
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(field=name)
    return value.strip()


# ──────────────────────────────────────────────
# POST /checkout
# ──────────────────────────────────────────────

@checkout_bp.route("", methods=["POST"])
@limiter.limit("20 per minute")
@buyer_required
def start():
    """Create the payment intent + pending order (or grant a free repo)."""
    repo_id = _string_field("repoId")
    result = init_checkout(db.session, get_payment_gateway(), current_user.id, repo_id)
    return jsonify(result), 200


# ──────────────────────────────────────────────
# POST /checkout/process-payment
# ──────────────────────────────────────────────

@checkout_bp.route("/process-payment", methods=["POST"])
@limiter.limit("30 per minute")
@buyer_required
def process_payment():
    """Settle the order after the browser confirmed the card payment.

    Safe to retry: a second call for the same intent answers 409
    already_processed and changes nothing.
    """
    payment_intent_id = _string_field("paymentIntentId")
    result = settle(
        db.session, get_payment_gateway(), current_user.id, payment_intent_id
    )
    return jsonify(result.to_dict()), 200


# ──────────────────────────────────────────────
# POST /checkout/<order_id>/cancel
# ──────────────────────────────────────────────

@checkout_bp.route("/<order_id>/cancel", methods=["POST"])
@buyer_required
def cancel(order_id):
    order = abort_checkout(db.session, get_payment_gateway(), current_user.id, order_id)
    return jsonify({"success": True, "order": order.to_dict()}), 200
