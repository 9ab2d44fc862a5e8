"""Order model.

One purchase attempt by a buyer for one repo, bound to a Stripe payment
intent. Status transitions are enforced by services/order_ledger.py with
conditional UPDATEs, so two concurrent writers can never both move the
same order out of a non-terminal state.

Orders are never hard-deleted; deleted_at marks retention removal.
"""

import uuid

from codemarket.extensions import db


class Order(db.Model):
    __tablename__ = "orders"

    STATUSES = ["pending", "requires_action", "succeeded", "cancelled", "failed"]

    # -- States settlement may move to "succeeded" --
    SETTLEABLE_STATUSES = ["pending", "requires_action"]

    TERMINAL_STATUSES = ["succeeded", "cancelled", "failed"]

    # -- Valid status transitions (enforced in order_ledger) --
    VALID_TRANSITIONS = {
        "pending": ["requires_action", "succeeded", "cancelled", "failed"],
        "requires_action": ["succeeded", "cancelled", "failed"],
    }

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    buyer_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    repo_id = db.Column(
        db.String(36), db.ForeignKey("repos.id"), nullable=False
    )
    total_amount = db.Column(db.Integer, nullable=False)  # minor units
    status = db.Column(
        db.String(20), default="pending", nullable=False
    )  # pending | requires_action | succeeded | cancelled | failed
    payment_intent_id = db.Column(
        db.String(255), unique=True, nullable=True
    )  # e.g. "pi_3Abc..."; null for free repos
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.CheckConstraint(
            "total_amount >= 0", name="ck_orders_total_non_negative"
        ),
    )

    # --- Relationships ---
    buyer = db.relationship("User", back_populates="orders")
    repo = db.relationship("Repo", back_populates="orders")

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "repoId": self.repo_id,
            "totalAmount": self.total_amount,
            "status": self.status,
            "paymentIntentId": self.payment_intent_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Order {self.id} ({self.status})>"
