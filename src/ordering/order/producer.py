"""Order producer — hands orders to the warehouse queue.

Publishing is fire-and-forget from the caller's point of view: ``publish``
returns as soon as the broker client accepted the message, and a failed
publish is never retried. The broker's later answers are advisory:
- confirm: the broker persisted the message (logged)
- return: no queue is bound to the routing key (logged as an error)
"""

import structlog

from ordering.order.order import Order
from shared.broker.port import BrokerError, MessageBroker, ReturnedMessage
from shared.messages import OrderMessage
from shared.settings import BrokerSettings

logger = structlog.get_logger(__name__)


class OrderProducer:
    def __init__(self, broker: MessageBroker, settings: BrokerSettings | None = None) -> None:
        settings = settings or BrokerSettings.from_env()
        self.broker = broker
        self.exchange = settings.exchange
        self.routing_key = settings.routing_key
        broker.add_confirm_callback(self.on_confirm)
        broker.add_return_callback(self.on_return)

    def publish(self, order: Order) -> bool:
        """Send the order to the warehouse. Returns False if the broker refused it."""
        message = OrderMessage.from_order(order)
        try:
            self.broker.publish(
                exchange=self.exchange,
                routing_key=self.routing_key,
                body=message.to_bytes(),
                message_id=str(order.order_id),
            )
        except BrokerError as exc:
            logger.error("Failed to send order to warehouse", order_id=order.order_id, error=str(exc))
            return False

        logger.info(
            "Order sent to warehouse",
            order_id=order.order_id,
            cart_id=order.cart_id,
            item_count=message.item_count,
        )
        return True

    def on_confirm(self, message_id: str | None, acked: bool) -> None:
        if acked:
            logger.debug("Message confirmed by broker", order_id=message_id)
        else:
            logger.error("Message not confirmed by broker", order_id=message_id)

    def on_return(self, returned: ReturnedMessage) -> None:
        logger.error(
            "Message returned by broker",
            order_id=returned.message_id,
            exchange=returned.exchange,
            routing_key=returned.routing_key,
            reply_code=returned.reply_code,
            reply_text=returned.reply_text,
        )
