"""Repo model.

A purchasable code component listed by a seller. Checkout and settlement
only read it (price, owner, status); listing and moderation live
elsewhere.
"""

import uuid

from codemarket.extensions import db


class Repo(db.Model):
    __tablename__ = "repos"

    STATUSES = ["pending", "active", "rejected", "bannedUser"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    owner_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Integer, default=0, nullable=False)  # minor units
    status = db.Column(
        db.String(20), default="pending", nullable=False
    )  # pending | active | rejected | bannedUser
    visibility = db.Column(
        db.String(20), default="public", nullable=False
    )  # public | private
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_repos_price_non_negative"),
    )

    # --- Relationships ---
    owner = db.relationship("User", back_populates="repos")
    orders = db.relationship("Order", back_populates="repo", lazy="dynamic")

    @property
    def is_purchasable(self):
        return self.deleted_at is None and self.status == "active"

    def __repr__(self):
        return f"<Repo {self.name} ({self.status})>"
