"""In-process broker for development and testing.

Behaves like a single RabbitMQ node with durable direct exchanges:
- mandatory publishes to an unbound routing key are returned, not queued
- every routed publish is confirmed
- deliveries stay unacked until ``ack``/``nack``; ``nack(requeue=True)``
  puts the message back at the head of its queue flagged as redelivered

Each queue has its own condition variable, so independent queues never
contend with each other.
"""

import itertools
import threading
from collections import deque
from dataclasses import dataclass, replace

import structlog

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

logger = structlog.get_logger(__name__)

NO_ROUTE = 312


@dataclass(frozen=True)
class _Message:
    body: bytes
    message_id: str | None = None
    redelivered: bool = False


class MemoryQueue(Acknowledger):
    """A single queue with manual acknowledgement."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._ready: deque[_Message] = deque()
        self._unacked: dict[int, _Message] = {}
        self._condition = threading.Condition()
        self._tags = itertools.count(1)

    def put(self, message: _Message) -> None:
        with self._condition:
            self._ready.append(message)
            self._condition.notify()

    def get(self, timeout: float | None = None) -> Delivery | None:
        """Take the next ready message, waiting up to ``timeout`` seconds."""
        with self._condition:
            if not self._ready and timeout:
                self._condition.wait_for(lambda: bool(self._ready), timeout=timeout)
            if not self._ready:
                return None
            message = self._ready.popleft()
            tag = next(self._tags)
            self._unacked[tag] = message
        return Delivery(
            delivery_tag=tag,
            body=message.body,
            redelivered=message.redelivered,
            message_id=message.message_id,
        )

    def ack(self, delivery_tag: int) -> None:
        with self._condition:
            if self._unacked.pop(delivery_tag, None) is None:
                raise AcknowledgementError(f"Unknown delivery tag {delivery_tag} on queue {self.name}")

    def nack(self, delivery_tag: int, requeue: bool = True) -> None:
        with self._condition:
            message = self._unacked.pop(delivery_tag, None)
            if message is None:
                raise AcknowledgementError(f"Unknown delivery tag {delivery_tag} on queue {self.name}")
            if requeue:
                self._ready.appendleft(replace(message, redelivered=True))
                self._condition.notify()

    @property
    def message_count(self) -> int:
        with self._condition:
            return len(self._ready)

    @property
    def unacked_count(self) -> int:
        with self._condition:
            return len(self._unacked)


class InMemoryBroker(MessageBroker):
    """Configurable in-memory broker."""

    def __init__(self, poll_interval: float = 0.05) -> None:
        self.poll_interval = poll_interval
        self._bindings: dict[tuple[str, str], str] = {}
        self._queues: dict[str, MemoryQueue] = {}
        self._confirm_callbacks: list[ConfirmCallback] = []
        self._return_callbacks: list[ReturnCallback] = []
        self._workers: list[threading.Thread] = []
        self._stopping = threading.Event()
        self.available = True

    def configure(self, available: bool) -> None:
        """Simulate the broker going away (publishes raise ``PublishError``)."""
        self.available = available

    def declare(self, exchange: str, queue: str, routing_key: str) -> None:
        self._queues.setdefault(queue, MemoryQueue(queue))
        self._bindings[(exchange, routing_key)] = queue
        logger.info("Declared queue binding", exchange=exchange, queue=queue, routing_key=routing_key)

    def queue(self, name: str) -> MemoryQueue:
        return self._queues.setdefault(name, MemoryQueue(name))

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
        if not self.available:
            raise PublishError("Broker unavailable")

        queue_name = self._bindings.get((exchange, routing_key))
        if queue_name is None:
            returned = ReturnedMessage(
                exchange=exchange,
                routing_key=routing_key,
                reply_code=NO_ROUTE,
                reply_text="NO_ROUTE",
                body=body,
                message_id=message_id,
            )
            for callback in self._return_callbacks:
                callback(returned)
        else:
            self._queues[queue_name].put(_Message(body=body, message_id=message_id))

        # RabbitMQ confirms returned messages too, after the basic.return
        for callback in self._confirm_callbacks:
            callback(message_id, True)

    def deliver(self, queue: str, handler: DeliveryHandler, timeout: float | None = None) -> bool:
        """Deliver at most one message synchronously. Returns False if none was ready."""
        memory_queue = self.queue(queue)
        delivery = memory_queue.get(timeout=timeout)
        if delivery is None:
            return False
        handler(delivery, memory_queue)
        return True

    def consume(self, queue: str, handler: DeliveryHandler, concurrency: int = 1) -> None:
        self._stopping.clear()
        for index in range(concurrency):
            worker = threading.Thread(
                target=self._run_worker,
                args=(queue, handler),
                name=f"memory-consumer-{queue}-{index}",
                daemon=True,
            )
            worker.start()
            self._workers.append(worker)
        logger.info("Started consumers", queue=queue, concurrency=concurrency)

    def _run_worker(self, queue: str, handler: DeliveryHandler) -> None:
        while not self._stopping.is_set():
            try:
                self.deliver(queue, handler, timeout=self.poll_interval)
            except Exception:
                # Handler errors must not kill the worker; the delivery stays unacked
                logger.exception("Consumer handler raised", queue=queue)

    def close(self) -> None:
        self._stopping.set()
        for worker in self._workers:
            worker.join(timeout=5)
        self._workers = []
