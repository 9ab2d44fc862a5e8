"""Settlement service: turns a succeeded payment intent into a paid order.

Responsible for:
- Confirming the intent with the payment processor
- Validating the order bound to it (owner, status, amount)
- Atomically: marking the order succeeded, granting repo access,
  rolling revenue into the seller's sales aggregate, crediting the
  seller's balance, and writing the audit row
- Sending the purchase receipt once the transaction has committed

The client path (POST /checkout/process-payment) and the webhook path
(payment_intent.succeeded) both call settle(). Whichever arrives first
settles the order; the other gets AlreadyProcessed.
"""

import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from codemarket.errors import (
    AccessGrantFailed,
    AlreadyProcessed,
    AmountMismatch,
    CheckoutError,
    IntentNotSucceeded,
    OrderNotFound,
    OrderNotSettleable,
    SettlementFailed,
)
from codemarket.models.audit import AuditEvent
from codemarket.models.order import Order
from codemarket.models.user import User
from codemarket.services import access_grants, catalog, order_ledger
from codemarket.services.sales_aggregates import (
    credit_seller_balance,
    period_for,
    upsert_increment,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    order_id: str

    def to_dict(self):
        return {"success": True, "orderId": self.order_id}


def settle(session, gateway, buyer_id, payment_intent_id, now=None,
           granularity=None, source="client"):
    """Settle the order bound to `payment_intent_id` for `buyer_id`.

    Args:
        session: SQLAlchemy session; committed on success, rolled back on
            any failure after the order lookup.
        gateway: PaymentGateway used to confirm the intent.
        buyer_id: The authenticated buyer (or, for webhooks, the order's buyer).
        payment_intent_id: Stripe payment intent id.
        now: Settlement time for the aggregate period (defaults to now, UTC).
        granularity: "day" or "month"; defaults to SALES_PERIOD.
        source: "client" or "webhook", recorded on the audit row.

    Returns:
        SettlementResult with the settled order id.

    Raises:
        IntentNotFound, IntentNotSucceeded, OrderNotFound, AlreadyProcessed,
        OrderNotSettleable, AmountMismatch, RepoNotFound, SellerUnavailable,
        AccessGrantFailed, PaymentGatewayError, SettlementFailed.
    """
    # The processor is asked first; nothing in the database is touched
    # for an intent that has not been paid.
    intent = gateway.retrieve_intent(payment_intent_id)
    if not intent.succeeded:
        raise IntentNotSucceeded(
            payment_intent_id=payment_intent_id, intent_status=intent.status
        )

    if granularity is None:
        granularity = current_app.config.get("SALES_PERIOD", "day")

    order_id = None
    try:
        order = order_ledger.find_by_payment_intent(
            session, payment_intent_id, lock=True
        )
        if order is None or order.buyer_id != buyer_id:
            raise OrderNotFound(buyer_id=buyer_id, payment_intent_id=payment_intent_id)
        order_id = order.id

        if order.status == "succeeded":
            raise AlreadyProcessed(order_id=order_id)
        if order.status not in Order.SETTLEABLE_STATUSES:
            raise OrderNotSettleable(order_id=order_id, status=order.status)
        if intent.amount != order.total_amount:
            raise AmountMismatch(
                order_id=order_id,
                intent_amount=intent.amount,
                order_amount=order.total_amount,
            )

        repo = catalog.get_repo(session, order.repo_id)
        seller = catalog.get_payout_seller(session, repo)

        if not order_ledger.transition_to_succeeded(session, order_id):
            # Lost the race to a concurrent settlement of the same intent.
            raise AlreadyProcessed(order_id=order_id)

        _grant_access(session, order)

        upsert_increment(
            session, seller.id, period_for(now, granularity), order.total_amount
        )
        credit_seller_balance(session, seller.id, order.total_amount)

        session.add(AuditEvent(
            actor_user_id=buyer_id if source == "client" else None,
            order_id=order_id,
            action="order.settled",
            metadata_={
                "payment_intent_id": payment_intent_id,
                "repo_id": repo.id,
                "seller_id": seller.id,
                "amount": order.total_amount,
                "source": source,
            },
        ))
        session.commit()
    except CheckoutError as e:
        session.rollback()
        logger.warning(f"Settlement rejected for intent {payment_intent_id}: {e.kind}")
        raise
    except Exception as e:
        session.rollback()
        logger.error(
            f"Settlement rolled back: order={order_id} buyer={buyer_id} "
            f"intent={payment_intent_id}: {e}",
            exc_info=True,
        )
        raise SettlementFailed(
            order_id=order_id, buyer_id=buyer_id, payment_intent_id=payment_intent_id
        ) from e

    logger.info(f"Order {order_id} settled via {source} (intent {payment_intent_id})")
    _send_receipt(session, order_id)
    return SettlementResult(order_id=order_id)


def _grant_access(session, order):
    if access_grants.has_access(session, order.buyer_id, order.repo_id):
        return
    try:
        access_grants.create_grant(session, order.buyer_id, order.repo_id, order.id)
    except IntegrityError as e:
        logger.error(
            f"Access grant insert failed for order {order.id}: {e}", exc_info=True
        )
        raise AccessGrantFailed(
            order_id=order.id, buyer_id=order.buyer_id, repo_id=order.repo_id
        ) from e


def _send_receipt(session, order_id):
    """Email the buyer a receipt. Never fails the settlement."""
    if not current_app.config.get("SEND_PURCHASE_RECEIPTS"):
        return
    try:
        from codemarket.services.email_service import send_purchase_receipt

        order = session.get(Order, order_id)
        buyer = session.get(User, order.buyer_id)
        if buyer and buyer.email:
            send_purchase_receipt(order, buyer, order.repo)
    except Exception as e:
        # The order is already committed; a missing receipt is not an error for the buyer.
        logger.error(f"Failed to send receipt for order {order_id}: {e}")
