"""Sales aggregate store: seller revenue rollups and balance credits.

Responsible for:
- Mapping a timestamp to its aggregate period (day or month, UTC)
- Incrementing (seller, period) revenue/count in a single SQL statement
- Crediting the seller's running payout balance
- Reading aggregates back for the seller sales report

Increments are done by the database (`col = col + :amount`), never by
reading a value into Python and writing it back, so concurrent
settlements for the same seller cannot lose updates.

Functions do NOT commit; the caller commits.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update

from codemarket.models.sales import SalesAggregate
from codemarket.models.seller import SellerProfile

PERIODS = ("day", "month")


def period_for(moment=None, granularity="day"):
    """Return the period key (a date) that `moment` falls into.

    Naive datetimes are taken to be UTC.
    """
    if granularity not in PERIODS:
        raise ValueError(
            f"Invalid period '{granularity}'. Must be one of: {', '.join(PERIODS)}"
        )
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)

    day = moment.date()
    if granularity == "month":
        return day.replace(day=1)
    return day


def _dialect_insert(session):
    """Return the INSERT construct that supports ON CONFLICT for this database."""
    dialect = session.get_bind(mapper=SalesAggregate).dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Sales aggregate upsert not supported on {dialect}")
    return insert


def upsert_increment(session, seller_id, period, amount):
    """Add one sale of `amount` minor units to (seller_id, period).

    Creates the row on first sale in the period. Runs as one
    INSERT ... ON CONFLICT DO UPDATE statement.

    Raises:
        ValueError: If amount is negative (aggregates never decrease).
    """
    if amount < 0:
        raise ValueError("Sales aggregates cannot be decremented.")

    table = SalesAggregate.__table__
    insert = _dialect_insert(session)
    now = datetime.now(timezone.utc)

    stmt = insert(table).values(
        id=str(uuid.uuid4()),
        seller_id=seller_id,
        period=period,
        revenue=amount,
        sales_count=1,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["seller_id", "period"],
        set_={
            "revenue": table.c.revenue + stmt.excluded.revenue,
            "sales_count": table.c.sales_count + stmt.excluded.sales_count,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    session.execute(stmt)


def credit_seller_balance(session, seller_id, amount):
    """Add `amount` minor units to the seller's payout balance.

    Raises:
        ValueError: If amount is negative.
        LookupError: If the seller profile row does not exist.
    """
    if amount < 0:
        raise ValueError("Seller balance credits cannot be negative.")

    result = session.execute(
        update(SellerProfile)
        .where(SellerProfile.id == seller_id)
        .values(balance=SellerProfile.balance + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise LookupError(f"Seller profile {seller_id} not found")


def get_aggregate(session, seller_id, period):
    return session.scalars(
        select(SalesAggregate).where(
            SalesAggregate.seller_id == seller_id,
            SalesAggregate.period == period,
        ).execution_options(populate_existing=True)
    ).first()


def list_aggregates(session, seller_id, start=None, end=None):
    """Return a seller's aggregates with start <= period <= end, oldest first."""
    stmt = select(SalesAggregate).where(SalesAggregate.seller_id == seller_id)
    if start is not None:
        stmt = stmt.where(SalesAggregate.period >= start)
    if end is not None:
        stmt = stmt.where(SalesAggregate.period <= end)
    stmt = stmt.order_by(SalesAggregate.period).execution_options(populate_existing=True)
    return session.scalars(stmt).all()
