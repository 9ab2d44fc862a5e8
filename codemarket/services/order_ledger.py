"""Order ledger: persistence and status transitions for orders.

Every function takes the caller's session and flushes but does NOT
commit: the settlement and checkout services own the transaction.

Status changes are conditional UPDATEs (`... WHERE status IN (...)`).
The database decides which of two racing writers wins; the loser sees
zero affected rows and gets False back.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm.util import identity_key

from codemarket.models.order import Order

logger = logging.getLogger(__name__)


def create_order(session, buyer_id, repo_id, total_amount, payment_intent_id,
                 status="pending"):
    """Insert a new order.

    Args:
        session: SQLAlchemy session of the surrounding unit of work.
        buyer_id: Buyer user UUID string.
        repo_id: Repo UUID string.
        total_amount: Amount in minor units (>= 0).
        payment_intent_id: Stripe payment intent id, or None for free repos.
        status: Initial status, one of Order.STATUSES.

    Returns:
        The created Order.

    Raises:
        ValueError: If status or amount is invalid.
    """
    if status not in Order.STATUSES:
        raise ValueError(
            f"Invalid status '{status}'. Must be one of: {', '.join(Order.STATUSES)}"
        )
    if total_amount < 0:
        raise ValueError("Order total cannot be negative.")

    order = Order(
        buyer_id=buyer_id,
        repo_id=repo_id,
        total_amount=total_amount,
        payment_intent_id=payment_intent_id,
        status=status,
    )
    session.add(order)
    session.flush()
    return order


def find_by_payment_intent(session, payment_intent_id, lock=False):
    """Return the live order bound to a payment intent, or None.

    With lock=True the row is read with SELECT ... FOR UPDATE and stays
    locked until the caller's transaction ends (no-op on SQLite).
    """
    stmt = select(Order).where(
        Order.payment_intent_id == payment_intent_id,
        Order.deleted_at.is_(None),
    )
    if lock:
        stmt = stmt.with_for_update()
    return session.scalars(stmt).first()


def transition_to_succeeded(session, order_id):
    """Move a pending / requires_action order to succeeded.

    Returns:
        True if this call performed the transition, False if the order
        was already terminal (or does not exist).
    """
    return _conditional_update(
        session, order_id, Order.SETTLEABLE_STATUSES, "succeeded"
    )


def transition(session, order_id, new_status):
    """Apply a non-settlement transition (requires_action, cancelled, failed).

    Returns:
        True if the order moved, False if its current status does not
        allow it (terminal, or already in new_status).

    Raises:
        ValueError: For unknown targets or for "succeeded", which only
            transition_to_succeeded() may set.
    """
    if new_status == "succeeded":
        raise ValueError("Use transition_to_succeeded() to settle an order.")

    sources = [
        status for status, allowed in Order.VALID_TRANSITIONS.items()
        if new_status in allowed
    ]
    if not sources:
        raise ValueError(
            f"Invalid status '{new_status}'. Must be one of: {', '.join(Order.STATUSES)}"
        )
    return _conditional_update(session, order_id, sources, new_status)


def _conditional_update(session, order_id, from_statuses, new_status):
    result = session.execute(
        update(Order)
        .where(Order.id == order_id, Order.status.in_(from_statuses))
        .values(status=new_status, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    moved = result.rowcount == 1

    # Keep an already-loaded instance in step with the row we just wrote.
    order = session.identity_map.get(identity_key(Order, order_id))
    if order is not None:
        session.refresh(order, ["status", "updated_at"])

    if not moved:
        logger.info(f"Order {order_id} not moved to {new_status} (not in {from_statuses})")
    return moved


def list_orders_for_buyer(session, buyer_id):
    """Return a buyer's orders, newest first, excluding soft-deleted ones."""
    return session.scalars(
        select(Order)
        .where(Order.buyer_id == buyer_id, Order.deleted_at.is_(None))
        .order_by(Order.created_at.desc())
    ).all()


def soft_delete(session, order_id):
    """Mark an order as deleted for retention. Returns False if not found."""
    order = session.get(Order, order_id)
    if order is None:
        return False
    if order.deleted_at is None:
        order.deleted_at = datetime.now(timezone.utc)
        session.flush()
    return True
