"""Error taxonomy for checkout and order creation.

Hard-fail errors (``ValidationError``, ``AuthenticationError``,
``UpstreamGatewayError``, ``PersistenceError``) abort the current request or
order-creation run. ``BestEffortError`` and its subclasses are raised by
ancillary steps and are logged, never propagated, by the order engine.
"""


class CheckoutServiceError(Exception):
    """Base class for every error this service raises on purpose."""


class ValidationError(CheckoutServiceError):
    """A required field is missing or malformed."""


class EmptyCartError(ValidationError):
    def __init__(self, cart_id: str):
        super().__init__("No cart items found")
        self.cart_id = cart_id


class AuthenticationError(CheckoutServiceError):
    """Webhook signature missing, invalid, or not verifiable."""


class UpstreamGatewayError(CheckoutServiceError):
    """The payment gateway call failed."""


class SessionNotFoundError(UpstreamGatewayError):
    pass


class ConflictError(CheckoutServiceError):
    """An order already exists for the checkout session."""

    def __init__(self, session_id: str):
        super().__init__(f"Order already exists for session {session_id}")
        self.session_id = session_id


class PersistenceError(CheckoutServiceError):
    """A database read or write failed."""


class BestEffortError(CheckoutServiceError):
    pass


class NotificationError(BestEffortError):
    pass


class EventPublishError(BestEffortError):
    pass
