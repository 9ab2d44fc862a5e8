"""Access grant model.

A row here is what unlocks a repo's content for a buyer. Unique per
(user_id, repo_id); written once by settlement (or free checkout), never
updated or deleted.
"""

import uuid

from codemarket.extensions import db


class AccessGrant(db.Model):
    __tablename__ = "access_grants"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    repo_id = db.Column(
        db.String(36), db.ForeignKey("repos.id"), nullable=False
    )
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id"), nullable=True
    )  # the order that paid for it
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "repo_id", name="uq_access_user_repo"),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="access_grants")

    def __repr__(self):
        return f"<AccessGrant user={self.user_id} repo={self.repo_id}>"
