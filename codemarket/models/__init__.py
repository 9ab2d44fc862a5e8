# Models package: import all models here so Alembic can discover them.

from codemarket.models.user import User  # noqa: F401
from codemarket.models.seller import SellerProfile  # noqa: F401
from codemarket.models.repo import Repo  # noqa: F401
from codemarket.models.order import Order  # noqa: F401
from codemarket.models.access import AccessGrant  # noqa: F401
from codemarket.models.sales import SalesAggregate  # noqa: F401
from codemarket.models.stripe_event import StripeEvent  # noqa: F401
from codemarket.models.audit import AuditEvent  # noqa: F401
