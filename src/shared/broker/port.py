"""Message broker port (abstract interface).

Defines the contract between the order producer/consumer and the queue
transport. This enables swapping between InMemoryBroker (dev/test) and
RabbitMQBroker (production) without changing checkout or warehouse code.

Delivery is at-least-once: consumers acknowledge manually, and the only
terminal actions are ``ack`` and ``nack(requeue=True)``.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass


class BrokerError(Exception):
    """Transport-level failure talking to the broker."""


class PublishError(BrokerError):
    """A message could not be handed to the broker."""


class AcknowledgementError(BrokerError):
    """An ack or nack could not be delivered to the broker."""


@dataclass(frozen=True)
class Delivery:
    """A message received from a queue, awaiting acknowledgement."""

    delivery_tag: int
    body: bytes
    redelivered: bool = False
    message_id: str | None = None


@dataclass(frozen=True)
class ReturnedMessage:
    """A mandatory message the broker could not route to any queue."""

    exchange: str
    routing_key: str
    reply_code: int
    reply_text: str
    body: bytes
    message_id: str | None = None


class Acknowledger(ABC):
    """Channel handle used by a consumer to settle a delivery."""

    @abstractmethod
    def ack(self, delivery_tag: int) -> None:
        """Confirm the delivery was processed; the broker forgets it."""
        ...

    @abstractmethod
    def nack(self, delivery_tag: int, requeue: bool = True) -> None:
        """Reject the delivery; with ``requeue`` the broker redelivers it."""
        ...


ConfirmCallback = Callable[[str | None, bool], None]
ReturnCallback = Callable[[ReturnedMessage], None]
DeliveryHandler = Callable[[Delivery, Acknowledger], None]


class MessageBroker(ABC):
    """Abstract broker interface."""

    @abstractmethod
    def declare(self, exchange: str, queue: str, routing_key: str) -> None:
        """Declare a durable direct exchange and queue, bound by routing key."""
        ...

    @abstractmethod
    def publish(
        self,
        exchange: str,
        routing_key: str,
        body: bytes,
        message_id: str | None = None,
    ) -> None:
        """Hand a persistent, mandatory message to the broker.

        Returns without waiting for the publisher confirm. Raises
        ``PublishError`` when the message could not be handed over.
        """
        ...

    @abstractmethod
    def add_confirm_callback(self, callback: ConfirmCallback) -> None:
        """Register a listener for publisher confirms (message_id, acked)."""
        ...

    @abstractmethod
    def add_return_callback(self, callback: ReturnCallback) -> None:
        """Register a listener for unroutable (returned) messages."""
        ...

    @abstractmethod
    def consume(self, queue: str, handler: DeliveryHandler, concurrency: int = 1) -> None:
        """Start ``concurrency`` workers delivering messages to ``handler``.

        Each message goes to exactly one worker. Returns once the workers
        are started.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Stop consumers and release connections."""
        ...
