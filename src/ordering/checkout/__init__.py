"""Checkout orchestrator factory.

Provides get_checkout() / set_checkout() so command handlers share one
process-wide orchestrator (and therefore one cart store and one order id
sequence). The default instance is wired from environment settings and the
authorizer and broker factories.
"""

import threading

from ordering.cart.store import CartStore
from ordering.checkout.orchestrator import CheckoutOrchestrator
from ordering.order.producer import OrderProducer
from payments.authorization import get_authorizer
from shared.broker import get_broker
from shared.settings import BrokerSettings, CheckoutSettings

_current_checkout: CheckoutOrchestrator | None = None
_lock = threading.Lock()


def build_checkout() -> CheckoutOrchestrator:
    """Wire an orchestrator from environment settings."""
    settings = CheckoutSettings.from_env()
    producer = None
    if settings.publish_enabled:
        broker_settings = BrokerSettings.from_env()
        broker = get_broker()
        broker.declare(broker_settings.exchange, broker_settings.queue, broker_settings.routing_key)
        producer = OrderProducer(broker, broker_settings)
    return CheckoutOrchestrator(
        store=CartStore(settings.starting_cart_id),
        authorizer=get_authorizer(),
        producer=producer,
        starting_order_id=settings.starting_order_id,
    )


def get_checkout() -> CheckoutOrchestrator:
    """Return the process-wide orchestrator, building it on first use."""
    global _current_checkout
    with _lock:
        if _current_checkout is None:
            _current_checkout = build_checkout()
        return _current_checkout


def set_checkout(checkout: CheckoutOrchestrator) -> None:
    """Override the active orchestrator (useful for tests)."""
    global _current_checkout
    with _lock:
        _current_checkout = checkout


def reset_checkout() -> None:
    """Drop the active orchestrator; the next get_checkout() builds a fresh one."""
    global _current_checkout
    with _lock:
        _current_checkout = None
