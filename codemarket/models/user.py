"""User model.

Accounts are created elsewhere (registration is not part of this service);
here we only need identity, role and the flags that decide whether the
account may buy. Flask-Login integration via UserMixin.
"""

import uuid
from datetime import datetime, timezone

from flask_login import UserMixin

from codemarket.extensions import db


def _as_utc(dt):
    # SQLite hands back naive datetimes; treat them as UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class User(UserMixin, db.Model):
    __tablename__ = "users"

    ROLES = ["user", "seller", "moderator", "admin"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(255))
    role = db.Column(
        db.String(20), default="user", nullable=False
    )  # user | seller | moderator | admin
    email_verified = db.Column(db.Boolean, default=False)
    banned_until = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    seller_profile = db.relationship(
        "SellerProfile", back_populates="user", uselist=False
    )
    repos = db.relationship("Repo", back_populates="owner", lazy="dynamic")
    orders = db.relationship("Order", back_populates="buyer", lazy="dynamic")
    access_grants = db.relationship(
        "AccessGrant", back_populates="user", lazy="dynamic"
    )

    @property
    def is_banned(self):
        if self.banned_until is None:
            return False
        return _as_utc(self.banned_until) > datetime.now(timezone.utc)

    @property
    def is_active(self):
        """Flask-Login hook: only deleted accounts are inactive.

        Banned users stay logged in so buyer routes can answer 403
        account_restricted rather than 401.
        """
        return self.deleted_at is None

    @property
    def can_purchase(self):
        return self.is_active and not self.is_banned

    def __repr__(self):
        return f"<User {self.email}>"
