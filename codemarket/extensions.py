"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
The payment gateway is not one of these: it needs the Stripe key at
construction time and is built per app in create_app().
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit, applied per-route
    storage_uri="memory://",
)


@login_manager.user_loader
def load_user(user_id):
    """Load user by ID from session. Soft-deleted users have no session."""
    from codemarket.models.user import User

    user = db.session.get(User, user_id)
    if user is None or user.deleted_at is not None:
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized():
    """JSON API: no login page to redirect to."""
    from codemarket.errors import Unauthenticated

    raise Unauthenticated()
