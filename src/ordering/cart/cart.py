"""Shopping Cart aggregate — in-memory cart that is checked out exactly once.

A cart belongs to one customer and holds product quantities until checkout.
Checking out is a one-way transition from Open to CheckedOut; afterwards the
cart refuses further changes. The aggregate itself is not thread-safe: the
``CartStore`` serializes every mutation of a cart behind that cart's lock.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Dict, Integer, String

from ordering.domain import ordering
from ordering.exceptions import AlreadyCheckedOutError, EmptyCartError, InvalidCartStateError


class CartStatus(Enum):
    OPEN = "Open"
    CHECKED_OUT = "CheckedOut"


@dataclass(frozen=True)
class CartItem:
    """A product and its quantity, as captured in a checkout snapshot."""

    product_id: int
    quantity: int


@ordering.aggregate
class ShoppingCart:
    cart_id = Integer(identifier=True)
    customer_id = Integer(required=True)
    items = Dict(default=dict)  # product_id -> quantity
    status = String(choices=CartStatus, default=CartStatus.OPEN.value)
    created_at = DateTime()
    checked_out_at = DateTime()

    @invariant.post
    def checked_out_cart_must_have_items(self):
        if self.status == CartStatus.CHECKED_OUT.value and not self.items:
            raise ValidationError({"items": ["A checked-out cart must have items"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, cart_id, customer_id):
        return cls(
            cart_id=cart_id,
            customer_id=customer_id,
            items={},
            status=CartStatus.OPEN.value,
            created_at=datetime.now(UTC),
        )

    @property
    def is_checked_out(self) -> bool:
        return CartStatus(self.status) == CartStatus.CHECKED_OUT

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product_id, quantity):
        """Add a product, or increase its quantity if already in the cart."""
        if self.is_checked_out:
            raise InvalidCartStateError(self.cart_id)
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be a positive integer"]})

        items = dict(self.items)
        items[product_id] = items.get(product_id, 0) + quantity
        self.items = items
        return items[product_id]

    def quantity_of(self, product_id) -> int:
        return self.items.get(product_id, 0)

    def snapshot(self) -> tuple[CartItem, ...]:
        return tuple(CartItem(product_id=product_id, quantity=quantity) for product_id, quantity in self.items.items())

    # -------------------------------------------------------------------
    # Checkout transition
    # -------------------------------------------------------------------
    def begin_checkout(self) -> tuple[CartItem, ...]:
        """Move the cart to CheckedOut and return the items it held.

        Raises ``AlreadyCheckedOutError`` if the transition already happened
        and ``EmptyCartError`` if there is nothing to check out.
        """
        if self.is_checked_out:
            raise AlreadyCheckedOutError(self.cart_id)
        if not self.items:
            raise EmptyCartError(self.cart_id)

        items_snapshot = self.snapshot()
        self.status = CartStatus.CHECKED_OUT.value
        self.checked_out_at = datetime.now(UTC)
        return items_snapshot
