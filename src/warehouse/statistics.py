"""Warehouse statistics — running totals of what the warehouse received.

Consumer workers update the totals concurrently. Each counter carries its
own lock (one per product, one for the order count), so two workers only
contend when they touch the same counter. Order claims use atomic
``dict.setdefault`` and take no lock at all. Claimed order ids are kept for
the life of the process.

Reads of individual counters are exact; aggregate reads such as
``get_total_quantity`` sum counters one by one and may interleave with
writers.
"""

import threading
from collections import Counter

import structlog

logger = structlog.get_logger(__name__)


class _Counter:
    __slots__ = ("value", "lock")

    def __init__(self) -> None:
        self.value = 0
        self.lock = threading.Lock()

    def add(self, amount: int) -> int:
        with self.lock:
            self.value += amount
            return self.value

    def get(self) -> int:
        with self.lock:
            return self.value


class WarehouseStatistics:
    def __init__(self) -> None:
        self._orders = _Counter()
        self._products: dict[int, _Counter] = {}
        self._claimed: dict[int, object] = {}

    def _product(self, product_id) -> _Counter:
        counter = self._products.get(product_id)
        if counter is None:
            # setdefault is atomic: racing workers end up sharing one counter
            counter = self._products.setdefault(product_id, _Counter())
        return counter

    # -------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------
    def record_product(self, order_id, product_id, quantity) -> None:
        total = self._product(product_id).add(quantity)
        logger.debug("Recorded product", order_id=order_id, product_id=product_id, quantity=quantity, total=total)

    def increment_order_count(self) -> None:
        count = self._orders.add(1)
        logger.debug("Total orders", total_orders=count)

    def record_order(self, order_id, items) -> bool:
        """Record an order's ``(product_id, quantity)`` pairs and count the order.

        Returns False, recording nothing, if the order was already recorded.
        If recording fails part way, the quantities already applied are taken
        back out and the claim is released before the error propagates, so a
        retry starts from a clean slate.
        """
        if not self.claim_order(order_id):
            return False

        deltas = Counter()
        for product_id, quantity in items:
            deltas[product_id] += quantity

        applied = []
        try:
            for product_id, quantity in deltas.items():
                self.record_product(order_id, product_id, quantity)
                applied.append((product_id, quantity))
            self.increment_order_count()
        except Exception:
            for product_id, quantity in applied:
                self._product(product_id).add(-quantity)
            self.release_order(order_id)
            logger.warning("Rolled back partially recorded order", order_id=order_id, products=len(applied))
            raise
        return True

    def claim_order(self, order_id) -> bool:
        """Mark an order as counted. Returns False if it was already claimed."""
        token = object()
        return self._claimed.setdefault(order_id, token) is token

    def release_order(self, order_id) -> None:
        """Undo a claim whose recording did not complete."""
        self._claimed.pop(order_id, None)

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def get_total_orders(self) -> int:
        return self._orders.get()

    def get_product_quantity(self, product_id) -> int:
        counter = self._products.get(product_id)
        return counter.get() if counter else 0

    def get_total_unique_products(self) -> int:
        return len(self._products)

    def get_total_quantity(self) -> int:
        return sum(counter.get() for counter in list(self._products.values()))

    def snapshot(self) -> dict:
        return {
            "total_orders": self.get_total_orders(),
            "total_unique_products": self.get_total_unique_products(),
            "total_quantity": self.get_total_quantity(),
            "products": {product_id: counter.get() for product_id, counter in list(self._products.items())},
        }

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def print_statistics(self) -> None:
        """Log the summary printed on shutdown."""
        logger.info("=====================================")
        logger.info("   WAREHOUSE STATISTICS SUMMARY")
        logger.info("=====================================")
        logger.info(f"Total Orders Processed: {self.get_total_orders()}")
        logger.info(f"Total Unique Products: {self.get_total_unique_products()}")
        logger.info(f"Total Items Quantity: {self.get_total_quantity()}")
        logger.info("=====================================")

    def reset(self) -> None:
        """Clear every counter. Not safe to call while consumers are running."""
        self._orders = _Counter()
        self._products = {}
        self._claimed = {}
        logger.info("Statistics reset")
