"""Warehouse order consumer.

Settles every delivery manually with exactly one of ``ack`` or
``nack(requeue=True)``:

- an order is acknowledged only after all of its items were recorded
- a message that cannot be used (undecodable, no ``order_id``, an item
  without ``product_id`` or ``quantity``) is rejected and requeued, with
  nothing recorded
- a redelivered order that was already counted is acknowledged again
  without being recorded twice

There is no dead-letter queue and no retry limit: a permanently malformed
message keeps being requeued.
"""

import structlog
from pydantic import ValidationError as MessageDecodeError

from shared.broker.port import AcknowledgementError, Acknowledger, Delivery
from shared.logging import add_context, clear_context
from shared.messages import OrderMessage
from warehouse.statistics import WarehouseStatistics

logger = structlog.get_logger(__name__)


class OrderMessageConsumer:
    def __init__(self, statistics: WarehouseStatistics) -> None:
        self.statistics = statistics

    def on_message(self, delivery: Delivery, channel: Acknowledger) -> None:
        """Process one delivery. Never raises for message or channel problems."""
        add_context(delivery_tag=delivery.delivery_tag)
        try:
            self._process(delivery, channel)
        finally:
            clear_context()

    def _process(self, delivery: Delivery, channel: Acknowledger) -> None:
        tag = delivery.delivery_tag
        try:
            message = OrderMessage.model_validate_json(delivery.body)
        except MessageDecodeError as exc:
            logger.error(
                "Undecodable order message",
                delivery_tag=tag,
                error_count=exc.error_count(),
                redelivered=delivery.redelivered,
            )
            self._nack(channel, tag, None, "undecodable message")
            return

        order_id = message.order_id
        logger.info(
            "Received order from queue",
            order_id=order_id,
            customer_id=message.customer_id,
            cart_id=message.shopping_cart_id,
            item_count=message.item_count,
            redelivered=delivery.redelivered,
        )

        if order_id is None:
            logger.error("Invalid order message: order_id is missing", delivery_tag=tag)
            self._nack(channel, tag, None, "missing order_id")
            return

        invalid = message.invalid_items()
        if invalid:
            for item in invalid:
                logger.error(
                    "Invalid cart item in order",
                    order_id=order_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                )
            self._nack(channel, tag, order_id, "invalid item")
            return

        if not message.items:
            logger.warning("Order has no items; acknowledging anyway", order_id=order_id)

        try:
            recorded = self.statistics.record_order(
                order_id, [(item.product_id, item.quantity) for item in message.items or []]
            )
        except Exception:
            logger.exception("Error processing order", order_id=order_id)
            self._nack(channel, tag, order_id, "processing error")
            return
        if not recorded:
            logger.warning("Order already recorded; acknowledging redelivery", order_id=order_id)

        try:
            channel.ack(tag)
        except AcknowledgementError as exc:
            # The broker redelivers once the channel closes; the claim keeps it from being counted twice
            logger.error("Error acknowledging order", order_id=order_id, error=str(exc))
            return
        logger.info("Order acknowledged", order_id=order_id)

    def _nack(self, channel: Acknowledger, tag: int, order_id, reason: str) -> None:
        try:
            channel.nack(tag, requeue=True)
        except AcknowledgementError as exc:
            logger.error("Error sending nack", order_id=order_id, reason=reason, error=str(exc))
            return
        logger.warning("Order message nacked and requeued", order_id=order_id, reason=reason)
