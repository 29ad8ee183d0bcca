"""In-memory cart store with per-cart locking.

The store owns every ``ShoppingCart`` for the lifetime of the process. Each
cart is created together with its own lock, and every read-modify-write of
that cart happens under it. There is no table-wide lock: carts never contend
with each other, and the table itself is only ever touched by single dict
operations (insert on create, lookup everywhere else).

The checkout transition is the linearization point of a cart: once
``try_begin_checkout`` returns for a cart, every later ``add_item`` on it
observes CheckedOut, and every later checkout attempt fails.
"""

import itertools
import threading
from dataclasses import dataclass, field

import structlog

from ordering.cart.cart import CartItem, ShoppingCart
from ordering.exceptions import CartNotFoundError

logger = structlog.get_logger(__name__)


@dataclass
class _Entry:
    cart: ShoppingCart
    lock: threading.Lock = field(default_factory=threading.Lock)


class CartStore:
    def __init__(self, starting_cart_id: int = 1) -> None:
        self._entries: dict[int, _Entry] = {}
        self._ids = itertools.count(starting_cart_id)
        self._id_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, cart_id) -> bool:
        return cart_id in self._entries

    def _next_id(self) -> int:
        with self._id_lock:
            return next(self._ids)

    def _entry(self, cart_id) -> _Entry:
        entry = self._entries.get(cart_id)
        if entry is None:
            raise CartNotFoundError(cart_id)
        return entry

    def create_cart(self, customer_id) -> int:
        cart_id = self._next_id()
        self._entries[cart_id] = _Entry(cart=ShoppingCart.create(cart_id=cart_id, customer_id=customer_id))
        logger.info("Created shopping cart", cart_id=cart_id, customer_id=customer_id)
        return cart_id

    def add_item(self, cart_id, product_id, quantity) -> int:
        """Merge ``quantity`` units of a product into the cart; returns the new total."""
        entry = self._entry(cart_id)
        with entry.lock:
            total = entry.cart.add_item(product_id=product_id, quantity=quantity)
        logger.info("Added item to cart", cart_id=cart_id, product_id=product_id, quantity=quantity, total=total)
        return total

    def try_begin_checkout(self, cart_id) -> tuple[CartItem, ...]:
        """Atomically move an open, non-empty cart to CheckedOut.

        Of any number of concurrent callers for the same cart exactly one
        gets the items snapshot; the rest get ``AlreadyCheckedOutError``.
        """
        entry = self._entry(cart_id)
        with entry.lock:
            items = entry.cart.begin_checkout()
        logger.info("Cart checked out", cart_id=cart_id, item_count=len(items))
        return items

    def get(self, cart_id) -> ShoppingCart:
        return self._entry(cart_id).cart

    def customer_of(self, cart_id):
        return self._entry(cart_id).cart.customer_id

    def items_of(self, cart_id) -> tuple[CartItem, ...]:
        """A consistent copy of the cart's current items."""
        entry = self._entry(cart_id)
        with entry.lock:
            return entry.cart.snapshot()
