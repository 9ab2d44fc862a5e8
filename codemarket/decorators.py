"""
Custom route decorators for access control.

- buyer_required: logged in AND the account may purchase (not banned,
  not deleted).
- seller_required: buyer_required AND the user has a seller profile.
  The profile is placed on g.seller.
"""

from functools import wraps

from flask import g
from flask_login import current_user, login_required

from codemarket.errors import AccountRestricted


def buyer_required(f):
    """Require login + an account in good standing."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not current_user.can_purchase:
            raise AccountRestricted(user_id=current_user.id)
        return f(*args, **kwargs)

    return decorated


def seller_required(f):
    """Require buyer_required + a seller profile."""

    @wraps(f)
    @buyer_required
    def decorated(*args, **kwargs):
        from codemarket.extensions import db
        from codemarket.services.catalog import get_seller_for_user

        seller = get_seller_for_user(db.session, current_user.id)
        if seller is None:
            raise AccountRestricted(
                "Only sellers can view sales reports.", user_id=current_user.id
            )
        g.seller = seller
        return f(*args, **kwargs)

    return decorated
