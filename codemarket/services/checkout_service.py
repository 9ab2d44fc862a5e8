"""Checkout service: starting and aborting a repo purchase.

init_checkout() creates the payment intent and the pending order the
settlement service later completes. Free repos skip the processor and
are granted on the spot.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from codemarket.errors import (
    AccessGrantFailed,
    AlreadyOwned,
    AlreadyProcessed,
    OrderNotFound,
    OrderNotSettleable,
    OwnRepoCheckout,
    PaymentGatewayError,
)
from codemarket.models.audit import AuditEvent
from codemarket.models.order import Order
from codemarket.services import access_grants, catalog, order_ledger

logger = logging.getLogger(__name__)


def init_checkout(session, gateway, buyer_id, repo_id):
    """Start a checkout of `repo_id` for `buyer_id`.

    Returns a response dict. For paid repos it carries the intent's
    client secret for the browser to confirm the card payment.

    Raises:
        RepoNotFound, OwnRepoCheckout, AlreadyOwned, SellerUnavailable,
        AccessGrantFailed, PaymentGatewayError.
    """
    repo = catalog.get_purchasable_repo(session, repo_id)
    if repo.owner_id == buyer_id:
        raise OwnRepoCheckout(buyer_id=buyer_id, repo_id=repo_id)
    if access_grants.has_access(session, buyer_id, repo_id):
        raise AlreadyOwned(buyer_id=buyer_id, repo_id=repo_id)
    seller = catalog.get_payout_seller(session, repo)

    if repo.price == 0:
        return _claim_free_repo(session, buyer_id, repo)

    intent = gateway.create_intent(
        repo.price,
        metadata={"buyer_id": buyer_id, "repo_id": repo.id, "seller_id": seller.id},
    )

    try:
        order = order_ledger.create_order(
            session, buyer_id, repo.id, repo.price, intent.id
        )
        session.add(AuditEvent(
            actor_user_id=buyer_id,
            order_id=order.id,
            action="checkout.started",
            metadata_={"payment_intent_id": intent.id, "amount": repo.price},
        ))
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.error(f"Could not record order for intent {intent.id}", exc_info=True)
        # No order points at the intent, so it can never settle; release it.
        try:
            gateway.cancel_intent(intent.id)
        except PaymentGatewayError:
            logger.warning(f"Orphaned payment intent {intent.id} left uncancelled")
        raise

    logger.info(f"Checkout started: order {order.id} for repo {repo.id} by {buyer_id}")
    return {
        "success": True,
        "clientSecret": intent.client_secret,
        "paymentIntentId": intent.id,
        "orderId": order.id,
    }


def _claim_free_repo(session, buyer_id, repo):
    try:
        order = order_ledger.create_order(
            session, buyer_id, repo.id, 0, None, status="succeeded"
        )
        access_grants.create_grant(session, buyer_id, repo.id, order.id)
        session.add(AuditEvent(
            actor_user_id=buyer_id,
            order_id=order.id,
            action="order.free_claimed",
            metadata_={"repo_id": repo.id},
        ))
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise AccessGrantFailed(buyer_id=buyer_id, repo_id=repo.id) from e

    logger.info(f"Free repo {repo.id} granted to {buyer_id} (order {order.id})")
    return {
        "success": True,
        "orderId": order.id,
        "free": True,
        "message": "Access granted to free repo",
    }


def abort_checkout(session, gateway, buyer_id, order_id):
    """Cancel a buyer's unpaid order and its payment intent.

    Returns:
        The cancelled Order.

    Raises:
        OrderNotFound: no such live order for this buyer.
        AlreadyProcessed: the order has already been paid.
        OrderNotSettleable: the order is already cancelled or failed.
        PaymentGatewayError: the processor refused the cancel.
    """
    order = session.get(Order, order_id)
    if order is None or order.deleted_at is not None or order.buyer_id != buyer_id:
        raise OrderNotFound(order_id=order_id, buyer_id=buyer_id)
    if order.status == "succeeded":
        raise AlreadyProcessed(order_id=order_id)
    if order.is_terminal:
        raise OrderNotSettleable(order_id=order_id, status=order.status)

    if order.payment_intent_id:
        gateway.cancel_intent(order.payment_intent_id)

    if not order_ledger.transition(session, order_id, "cancelled"):
        session.rollback()
        raise AlreadyProcessed(order_id=order_id)

    session.add(AuditEvent(
        actor_user_id=buyer_id,
        order_id=order_id,
        action="order.cancelled",
        metadata_={"payment_intent_id": order.payment_intent_id},
    ))
    session.commit()

    logger.info(f"Order {order_id} cancelled by buyer {buyer_id}")
    return order
