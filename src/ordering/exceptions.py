"""Error taxonomy for cart and checkout operations.

Every error subclasses the Protean exception a caller would already catch
(``ObjectNotFoundError`` for unknown carts, ``ValidationError`` for invalid
state or input) and carries a stable ``code`` plus the HTTP status an API
layer should answer with. Declines share the 400 status with invalid input
and are told apart by ``code``.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError

from payments.authorization.port import AuthorizationServiceError, MalformedCardTokenError

__all__ = [
    "AlreadyCheckedOutError",
    "AuthorizationServiceError",
    "CartNotFoundError",
    "EmptyCartError",
    "InvalidCartStateError",
    "MalformedCardTokenError",
    "PaymentDeclinedError",
]


class CartNotFoundError(ObjectNotFoundError):
    code = "CART_NOT_FOUND"
    http_status = 404

    def __init__(self, cart_id) -> None:
        self.cart_id = cart_id
        super().__init__({"cart_id": [f"Shopping cart {cart_id} not found"]})


class InvalidCartStateError(ValidationError):
    """The cart is not in a state that allows the operation."""

    code = "INVALID_STATE"
    http_status = 400

    def __init__(self, cart_id, message: str = "Cannot add items to a checked-out cart", field: str = "status") -> None:
        self.cart_id = cart_id
        super().__init__({field: [message]})


class EmptyCartError(InvalidCartStateError):
    code = "EMPTY_CART"

    def __init__(self, cart_id) -> None:
        super().__init__(cart_id, "Cannot checkout an empty cart", field="items")


class AlreadyCheckedOutError(InvalidCartStateError):
    code = "ALREADY_CHECKED_OUT"

    def __init__(self, cart_id) -> None:
        super().__init__(cart_id, "Cart has already been checked out")


class PaymentDeclinedError(ValidationError):
    """The card was well formed but the authorization service declined it."""

    code = "PAYMENT_DECLINED"
    http_status = 400

    def __init__(self, cart_id) -> None:
        self.cart_id = cart_id
        super().__init__({"payment": ["Payment declined"]})
