"""Checkout orchestrator — drives a cart from Open to a published Order.

Each checkout request walks a fixed sequence of steps:

    VALIDATING → AUTHORIZING → PERSISTING → PUBLISHING → DONE

1. VALIDATING: the card number must look like DDDD-DDDD-DDDD-DDDD (checked
   locally, the cart is left untouched). Then the cart store's atomic
   transition claims the cart; of concurrent requests for one cart only one
   gets past this point.
2. AUTHORIZING: the card is sent to the authorization service. The cart is
   already checked out and stays that way whatever the answer: a declined
   or rejected card consumes the cart.
3. PERSISTING: the next order id is allocated and the Order is built.
4. PUBLISHING: the order is handed to the producer. A failed publish is
   logged and the order id is still returned, so a successful checkout does
   not imply the warehouse will ever see the order.
"""

from enum import Enum

import structlog

from ordering.cart.store import CartStore
from ordering.exceptions import AuthorizationServiceError, MalformedCardTokenError, PaymentDeclinedError
from ordering.order.order import Order, OrderIdSequence
from ordering.order.producer import OrderProducer
from payments.authorization.port import AuthorizationResult, CardAuthorizer, is_well_formed
from shared.logging import mask_card_number

logger = structlog.get_logger(__name__)


class CheckoutStep(Enum):
    VALIDATING = "Validating"
    AUTHORIZING = "Authorizing"
    PERSISTING = "Persisting"
    PUBLISHING = "Publishing"
    DONE = "Done"


class CheckoutOrchestrator:
    def __init__(
        self,
        store: CartStore,
        authorizer: CardAuthorizer,
        producer: OrderProducer | None = None,
        starting_order_id: int = 1000,
    ) -> None:
        self.store = store
        self.authorizer = authorizer
        self.producer = producer
        self.order_ids = OrderIdSequence(starting_order_id)

    # -------------------------------------------------------------------
    # Cart workflow
    # -------------------------------------------------------------------
    def create_cart(self, customer_id) -> int:
        return self.store.create_cart(customer_id)

    def add_item(self, cart_id, product_id, quantity) -> int:
        return self.store.add_item(cart_id, product_id, quantity)

    # -------------------------------------------------------------------
    # Checkout
    # -------------------------------------------------------------------
    def checkout(self, cart_id, credit_card_number: str) -> int:
        """Check out a cart and return the new order id."""
        log = logger.bind(cart_id=cart_id, card=mask_card_number(credit_card_number))

        log.info("Checkout step", step=CheckoutStep.VALIDATING.value)
        if not is_well_formed(credit_card_number):
            log.warning("Checkout rejected: malformed card number")
            raise MalformedCardTokenError()
        items = self.store.try_begin_checkout(cart_id)
        customer_id = self.store.customer_of(cart_id)

        log.info("Checkout step", step=CheckoutStep.AUTHORIZING.value)
        try:
            result = self.authorizer.authorize(credit_card_number)
        except MalformedCardTokenError:
            log.warning("Checkout failed: authorization service rejected card format")
            raise
        except AuthorizationServiceError:
            log.error("Checkout failed: authorization service unavailable")
            raise
        if result == AuthorizationResult.DECLINED:
            log.warning("Checkout failed: payment declined")
            raise PaymentDeclinedError(cart_id)
        log.info("Credit card authorized")

        log.info("Checkout step", step=CheckoutStep.PERSISTING.value)
        order = Order(
            order_id=self.order_ids.next(),
            cart_id=cart_id,
            customer_id=customer_id,
            items=items,
        )
        log = log.bind(order_id=order.order_id)

        log.info("Checkout step", step=CheckoutStep.PUBLISHING.value)
        self._publish(order, log)

        log.info("Checkout step", step=CheckoutStep.DONE.value, item_count=len(items))
        return order.order_id

    def _publish(self, order: Order, log) -> None:
        if self.producer is None:
            log.warning("Order publishing disabled; order not sent to warehouse")
            return
        try:
            sent = self.producer.publish(order)
        except Exception:
            log.exception("Unexpected error publishing order; order is created but not sent")
            return
        if not sent:
            log.error("Failed to send order to warehouse, but order is created")
