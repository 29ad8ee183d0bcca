"""RabbitMQ broker adapter built on pika.

Publishing runs on a ``SelectConnection`` whose IO loop lives in a background
thread. Callers schedule publishes with ``add_callback_threadsafe`` and return
immediately; publisher confirms and basic.return frames arrive later on the
IO thread and are fanned out to the registered callbacks.

Consuming uses one ``BlockingConnection`` per worker thread (pika connections
are not thread-safe), manual acknowledgement and a bounded prefetch window.
A worker whose connection drops reconnects after ``reconnect_delay``; the
broker redelivers whatever that connection left unacked.
"""

import functools
import threading

import pika
import structlog
from pika.exceptions import AMQPChannelError, AMQPConnectionError, AMQPError
from pika.exchange_type import ExchangeType
from pika.spec import Basic

from shared.broker.port import (
    AcknowledgementError,
    Acknowledger,
    ConfirmCallback,
    Delivery,
    DeliveryHandler,
    MessageBroker,
    PublishError,
    ReturnCallback,
    ReturnedMessage,
)
from shared.settings import BrokerSettings

logger = structlog.get_logger(__name__)


def connection_parameters(settings: BrokerSettings) -> pika.URLParameters:
    parameters = pika.URLParameters(settings.url)
    parameters.socket_timeout = settings.connect_timeout
    parameters.blocked_connection_timeout = settings.connect_timeout
    return parameters


class ChannelAcknowledger(Acknowledger):
    """Settles deliveries on the channel they arrived on."""

    def __init__(self, channel) -> None:
        self.channel = channel

    def ack(self, delivery_tag: int) -> None:
        try:
            self.channel.basic_ack(delivery_tag=delivery_tag)
        except AMQPError as exc:
            raise AcknowledgementError(f"basic.ack failed for delivery {delivery_tag}: {exc!r}") from exc

    def nack(self, delivery_tag: int, requeue: bool = True) -> None:
        try:
            self.channel.basic_nack(delivery_tag=delivery_tag, requeue=requeue)
        except AMQPError as exc:
            raise AcknowledgementError(f"basic.nack failed for delivery {delivery_tag}: {exc!r}") from exc


class ConsumerWorker(threading.Thread):
    """One consuming connection with its own channel."""

    def __init__(
        self,
        parameters: pika.URLParameters,
        queue: str,
        handler: DeliveryHandler,
        prefetch_count: int,
        reconnect_delay: float,
        name: str,
    ) -> None:
        super().__init__(name=name, daemon=True)
        self.parameters = parameters
        self.queue = queue
        self.handler = handler
        self.prefetch_count = prefetch_count
        self.reconnect_delay = reconnect_delay
        self._connection = None
        self._channel = None
        self._stopping = threading.Event()

    def run(self) -> None:
        while not self._stopping.is_set():
            try:
                self._consume()
            except AMQPConnectionError as exc:
                logger.error("Consumer connection lost", queue=self.queue, worker=self.name, error=repr(exc))
            except AMQPChannelError as exc:
                logger.error("Consumer channel closed", queue=self.queue, worker=self.name, error=repr(exc))
            finally:
                self._close_connection()
            self._stopping.wait(self.reconnect_delay)

    def _consume(self) -> None:
        self._connection = pika.BlockingConnection(self.parameters)
        self._channel = self._connection.channel()
        self._channel.queue_declare(queue=self.queue, durable=True)
        self._channel.basic_qos(prefetch_count=self.prefetch_count)
        self._channel.basic_consume(queue=self.queue, on_message_callback=self.on_message, auto_ack=False)
        logger.info("Consumer started", queue=self.queue, worker=self.name, prefetch=self.prefetch_count)
        self._channel.start_consuming()

    def on_message(self, channel, method, properties, body) -> None:
        delivery = Delivery(
            delivery_tag=method.delivery_tag,
            body=body,
            redelivered=bool(method.redelivered),
            message_id=getattr(properties, "message_id", None),
        )
        self.handler(delivery, ChannelAcknowledger(channel))

    def stop(self) -> None:
        self._stopping.set()
        connection = self._connection
        if connection is not None and connection.is_open:
            connection.add_callback_threadsafe(self._stop_consuming)

    def _stop_consuming(self) -> None:
        if self._channel is not None and self._channel.is_open:
            self._channel.stop_consuming()

    def _close_connection(self) -> None:
        connection, self._connection, self._channel = self._connection, None, None
        if connection is not None and connection.is_open:
            try:
                connection.close()
            except AMQPError as exc:
                logger.warning("Error closing consumer connection", worker=self.name, error=repr(exc))


class RabbitMQBroker(MessageBroker):
    """Production broker adapter."""

    def __init__(self, settings: BrokerSettings) -> None:
        self.settings = settings
        self.parameters = connection_parameters(settings)
        self._confirm_callbacks: list[ConfirmCallback] = []
        self._return_callbacks: list[ReturnCallback] = []
        self._workers: list[ConsumerWorker] = []

        # Publisher state below is only touched on the IO loop thread,
        # except for the start/ready handshake.
        self._start_lock = threading.Lock()
        self._ready = threading.Event()
        self._connection: pika.SelectConnection | None = None
        self._channel = None
        self._io_thread: threading.Thread | None = None
        self._next_delivery_tag = 0
        self._pending: dict[int, str | None] = {}

    # -------------------------------------------------------------------
    # Topology
    # -------------------------------------------------------------------
    def declare(self, exchange: str, queue: str, routing_key: str) -> None:
        connection = pika.BlockingConnection(self.parameters)
        try:
            channel = connection.channel()
            channel.exchange_declare(exchange=exchange, exchange_type=ExchangeType.direct, durable=True)
            channel.queue_declare(queue=queue, durable=True)
            channel.queue_bind(queue=queue, exchange=exchange, routing_key=routing_key)
        finally:
            connection.close()
        logger.info("Declared queue binding", exchange=exchange, queue=queue, routing_key=routing_key)

    # -------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------
    def add_confirm_callback(self, callback: ConfirmCallback) -> None:
        self._confirm_callbacks.append(callback)

    def add_return_callback(self, callback: ReturnCallback) -> None:
        self._return_callbacks.append(callback)

    def publish(
        self,
        exchange: str,
        routing_key: str,
        body: bytes,
        message_id: str | None = None,
    ) -> None:
        self._ensure_publisher()
        connection = self._connection
        if connection is None or self._channel is None or not self._channel.is_open:
            raise PublishError("Publisher channel is not open")

        properties = pika.BasicProperties(
            content_type="application/json",
            delivery_mode=pika.DeliveryMode.Persistent,
            message_id=message_id,
        )
        try:
            connection.ioloop.add_callback_threadsafe(
                functools.partial(self._basic_publish, exchange, routing_key, body, properties)
            )
        except (AMQPError, RuntimeError) as exc:
            raise PublishError(f"Could not schedule publish: {exc!r}") from exc

    def _ensure_publisher(self) -> None:
        with self._start_lock:
            if self._io_thread is None or not self._io_thread.is_alive():
                self._ready.clear()
                self._connection = pika.SelectConnection(
                    parameters=self.parameters,
                    on_open_callback=self._on_connection_open,
                    on_open_error_callback=self._on_connection_open_error,
                    on_close_callback=self._on_connection_closed,
                )
                self._io_thread = threading.Thread(
                    target=self._connection.ioloop.start,
                    name="broker-publisher-ioloop",
                    daemon=True,
                )
                self._io_thread.start()
        if not self._ready.wait(self.settings.connect_timeout):
            raise PublishError(f"Timed out after {self.settings.connect_timeout}s connecting to broker")

    def _basic_publish(self, exchange, routing_key, body, properties) -> None:
        channel = self._channel
        if channel is None or not channel.is_open:
            logger.error("Dropped publish: channel closed", message_id=properties.message_id)
            return
        try:
            channel.basic_publish(
                exchange=exchange,
                routing_key=routing_key,
                body=body,
                properties=properties,
                mandatory=True,
            )
        except AMQPError as exc:
            logger.error("basic.publish failed", message_id=properties.message_id, error=repr(exc))
            return
        self._next_delivery_tag += 1
        self._pending[self._next_delivery_tag] = properties.message_id

    def _on_connection_open(self, connection) -> None:
        connection.channel(on_open_callback=self._on_channel_open)

    def _on_connection_open_error(self, connection, error) -> None:
        logger.error("Publisher connection failed", error=repr(error))
        connection.ioloop.stop()

    def _on_connection_closed(self, connection, reason) -> None:
        logger.warning("Publisher connection closed", reason=repr(reason))
        self._channel = None
        self._ready.clear()
        connection.ioloop.stop()

    def _on_channel_open(self, channel) -> None:
        self._channel = channel
        self._next_delivery_tag = 0
        self._pending = {}
        channel.add_on_close_callback(self._on_channel_closed)
        channel.add_on_return_callback(self._on_message_returned)
        channel.confirm_delivery(ack_nack_callback=self._on_delivery_confirmation, callback=self._on_confirm_ok)

    def _on_confirm_ok(self, _frame) -> None:
        logger.info("Publisher confirms enabled")
        self._ready.set()

    def _on_channel_closed(self, channel, reason) -> None:
        logger.warning("Publisher channel closed", reason=repr(reason))
        self._channel = None
        self._ready.clear()
        if self._connection is not None and self._connection.is_open:
            self._connection.close()

    def _on_delivery_confirmation(self, method_frame) -> None:
        method = method_frame.method
        acked = isinstance(method, Basic.Ack)
        if method.multiple:
            tags = [tag for tag in self._pending if tag <= method.delivery_tag]
        else:
            tags = [method.delivery_tag]
        for tag in tags:
            message_id = self._pending.pop(tag, None)
            for callback in self._confirm_callbacks:
                callback(message_id, acked)

    def _on_message_returned(self, channel, method, properties, body) -> None:
        returned = ReturnedMessage(
            exchange=method.exchange,
            routing_key=method.routing_key,
            reply_code=method.reply_code,
            reply_text=method.reply_text,
            body=body,
            message_id=getattr(properties, "message_id", None),
        )
        for callback in self._return_callbacks:
            callback(returned)

    # -------------------------------------------------------------------
    # Consuming
    # -------------------------------------------------------------------
    def consume(self, queue: str, handler: DeliveryHandler, concurrency: int = 1) -> None:
        for index in range(concurrency):
            worker = ConsumerWorker(
                parameters=self.parameters,
                queue=queue,
                handler=handler,
                prefetch_count=self.settings.prefetch_count,
                reconnect_delay=self.settings.reconnect_delay,
                name=f"order-consumer-{index}",
            )
            worker.start()
            self._workers.append(worker)

    def close(self) -> None:
        for worker in self._workers:
            worker.stop()
        for worker in self._workers:
            worker.join(timeout=self.settings.connect_timeout)
        self._workers = []

        connection = self._connection
        if connection is not None and connection.is_open:
            connection.ioloop.add_callback_threadsafe(connection.close)
        if self._io_thread is not None:
            self._io_thread.join(timeout=self.settings.connect_timeout)
