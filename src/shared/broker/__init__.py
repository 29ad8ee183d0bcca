"""Message broker factory.

Provides get_broker() / set_broker() to swap implementations:
- InMemoryBroker for development and testing
- RabbitMQBroker for production (BROKER_ADAPTER=rabbitmq)
"""

import threading

from shared.broker.port import MessageBroker
from shared.settings import BrokerSettings

_current_broker: MessageBroker | None = None
_lock = threading.Lock()


def get_broker() -> MessageBroker:
    """Return the current broker. Defaults to the adapter named by BROKER_ADAPTER."""
    global _current_broker
    with _lock:
        if _current_broker is None:
            settings = BrokerSettings.from_env()
            if settings.adapter == "memory":
                from shared.broker.memory_adapter import InMemoryBroker

                _current_broker = InMemoryBroker()
            elif settings.adapter == "rabbitmq":
                from shared.broker.rabbitmq_adapter import RabbitMQBroker

                _current_broker = RabbitMQBroker(settings)
            else:
                raise ValueError(f"Unknown broker adapter: {settings.adapter}")
        return _current_broker


def set_broker(broker: MessageBroker) -> None:
    """Override the active broker (useful for tests)."""
    global _current_broker
    with _lock:
        _current_broker = broker


def reset_broker() -> None:
    """Reset to default broker."""
    global _current_broker
    with _lock:
        _current_broker = None
