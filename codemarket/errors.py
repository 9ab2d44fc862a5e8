"""Checkout error taxonomy.

Every failure the checkout and settlement services can report is one of
the classes below. The HTTP layer maps them by `kind` and `status_code`
(see create_app), never by message text.

`context` holds correlation identifiers (order_id, buyer_id,
payment_intent_id, ...) for logs. It is never rendered to the client.
"""


class CheckoutError(Exception):
    kind = "checkout_error"
    status_code = 400
    message = "Checkout could not be completed."

    def __init__(self, message=None, **context):
        self.message = message or type(self).message
        self.context = context
        super().__init__(self.message)

    def to_dict(self):
        return {"success": False, "error": self.kind, "message": self.message}

    def __repr__(self):
        return f"<{type(self).__name__} {self.kind} {self.context}>"


class Unauthenticated(CheckoutError):
    kind = "unauthenticated"
    status_code = 401
    message = "User not authenticated"


class AccountRestricted(CheckoutError):
    kind = "account_restricted"
    status_code = 403
    message = "This account cannot make purchases."


class InvalidInput(CheckoutError):
    kind = "invalid_input"
    status_code = 400
    message = "Invalid input data"


class IntentNotFound(CheckoutError):
    kind = "intent_not_found"
    status_code = 404
    message = "Payment intent not found"


class IntentNotSucceeded(CheckoutError):
    kind = "intent_not_succeeded"
    status_code = 400
    message = "Payment not completed"


class OrderNotFound(CheckoutError):
    kind = "order_not_found"
    status_code = 404
    message = "Order not found"


class AlreadyProcessed(CheckoutError):
    kind = "already_processed"
    status_code = 409
    message = "Payment has already been processed"


class OrderNotSettleable(CheckoutError):
    """Order is cancelled or failed; a new checkout is required."""

    kind = "order_not_settleable"
    status_code = 409
    message = "This order can no longer be paid. Please start a new checkout."


class AmountMismatch(CheckoutError):
    kind = "amount_mismatch"
    status_code = 400
    message = "Payment amount does not match the order total"


class RepoNotFound(CheckoutError):
    kind = "repo_not_found"
    status_code = 404
    message = "Repo not found"


class SellerUnavailable(CheckoutError):
    kind = "seller_unavailable"
    status_code = 400
    message = "Seller is not available to receive payments"


class OwnRepoCheckout(CheckoutError):
    kind = "own_repo"
    status_code = 400
    message = "You cannot access your own repo through checkout"


class AlreadyOwned(CheckoutError):
    kind = "already_owned"
    status_code = 409
    message = "You already have access to this repo"


class AccessGrantFailed(CheckoutError):
    kind = "access_grant_failed"
    status_code = 400
    message = "Failed to grant access to the repo"


class PaymentGatewayError(CheckoutError):
    kind = "payment_gateway_error"
    status_code = 502
    message = "Payment provider is unavailable. Please try again."


class SettlementFailed(CheckoutError):
    kind = "settlement_failed"
    status_code = 500
    message = "Payment could not be settled. Please try again."
