"""Ordering bounded context — Shopping Cart and Checkout.

Handles the shopping cart lifecycle, the checkout transition that turns a
cart into an immutable order, and publishing orders to the warehouse queue.
"""

import structlog
from protean.domain import Domain

ordering = Domain(name="ordering")

logger = structlog.get_logger(__name__)
