"""Audit event model.

Order lifecycle actions (checkout started, settled, cancelled, failed)
are written in the same transaction as the change they describe, so a
rolled-back settlement leaves no audit row behind.
"""

import uuid

from codemarket.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    actor_user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )  # None for webhook-driven (system) actions
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id"), nullable=True
    )
    action = db.Column(db.String(255), nullable=False)  # e.g. "order.settled"
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # extra context, named metadata_ to avoid the declarative attribute
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<AuditEvent {self.action}>"
