"""Cart to order conversion — checkout command and handler."""

from protean import handle
from protean.fields import Integer, String

from ordering.cart.cart import ShoppingCart
from ordering.checkout import get_checkout
from ordering.domain import ordering


@ordering.command(part_of="ShoppingCart")
class CheckoutCart:
    cart_id = Integer(required=True)
    credit_card_number = String(required=True, max_length=32)


@ordering.command_handler(part_of=ShoppingCart)
class CheckoutCartHandler:
    @handle(CheckoutCart)
    def checkout(self, command):
        """Authorize the card and turn the cart into an order; returns the order id."""
        return get_checkout().checkout(
            cart_id=command.cart_id,
            credit_card_number=command.credit_card_number,
        )
