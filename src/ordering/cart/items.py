"""Cart item management — command and handler."""

from protean import handle
from protean.fields import Integer

from ordering.cart.cart import ShoppingCart
from ordering.checkout import get_checkout
from ordering.domain import ordering


@ordering.command(part_of="ShoppingCart")
class AddToCart:
    cart_id = Integer(required=True)
    product_id = Integer(required=True)
    quantity = Integer(required=True, min_value=1)


@ordering.command_handler(part_of=ShoppingCart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        return get_checkout().add_item(
            cart_id=command.cart_id,
            product_id=command.product_id,
            quantity=command.quantity,
        )
