"""Cart management — command and handler.

Handles cart creation.
"""

from protean import handle
from protean.fields import Integer

from ordering.cart.cart import ShoppingCart
from ordering.checkout import get_checkout
from ordering.domain import ordering


@ordering.command(part_of="ShoppingCart")
class CreateCart:
    """Open a new shopping cart for a customer."""

    customer_id = Integer(required=True)


@ordering.command_handler(part_of=ShoppingCart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command):
        return get_checkout().create_cart(command.customer_id)
