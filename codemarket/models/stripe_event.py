"""Stripe event model (webhook idempotency table).

Every handled webhook is recorded by its Stripe event ID together with
what we did with it. A redelivered event finds its row and is
acknowledged without touching orders again.
"""

import uuid

from codemarket.extensions import db


class StripeEvent(db.Model):
    __tablename__ = "stripe_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    stripe_event_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(255), nullable=False
    )  # e.g. "payment_intent.succeeded"
    outcome = db.Column(
        db.String(50), nullable=False, default="ignored"
    )  # settled | already_settled | status_changed | order_missing | rejected | ignored
    processed_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<StripeEvent {self.stripe_event_id} ({self.event_type}: {self.outcome})>"
