"""Order record — the immutable result of a successful checkout.

An Order is created once per checked-out cart and never changes. It is
owned by the checkout orchestrator until handed to the ``OrderProducer``;
the ordering context keeps no copy of it afterwards.
"""

import itertools
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime

from ordering.cart.cart import CartItem


@dataclass(frozen=True)
class Order:
    order_id: int
    cart_id: int
    customer_id: int
    items: tuple[CartItem, ...]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


class OrderIdSequence:
    """Monotonic order ids, independent of cart ids."""

    def __init__(self, start: int = 1000) -> None:
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            return next(self._counter)
