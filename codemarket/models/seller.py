"""Seller profile model.

One per selling user. Revenue is attributed to the profile, not the user:
sales aggregates and the running payout balance hang off this row.
payouts_enabled=False means the seller has been deselected for payouts
and their repos cannot be settled.
"""

import uuid

from codemarket.extensions import db


class SellerProfile(db.Model):
    __tablename__ = "seller_profiles"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), unique=True, nullable=False
    )
    business_name = db.Column(db.String(255), nullable=False)
    business_email = db.Column(db.String(255), nullable=True)
    payouts_enabled = db.Column(db.Boolean, default=True, nullable=False)
    balance = db.Column(
        db.BigInteger, default=0, nullable=False
    )  # minor units, only ever credited by settlement
    stripe_account_id = db.Column(db.String(255), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="seller_profile")
    sales_aggregates = db.relationship(
        "SalesAggregate", back_populates="seller", lazy="dynamic"
    )

    def __repr__(self):
        return f"<SellerProfile {self.business_name} payouts={self.payouts_enabled}>"
