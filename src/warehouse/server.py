"""Warehouse consumer runner.

Starts consumer workers on the warehouse order queue and prints the
statistics summary on shutdown.

Usage:
    python -m warehouse.server                  # CONSUMER_CONCURRENCY workers
    python -m warehouse.server --concurrency 8  # 8 workers
"""

import argparse
import signal
import threading

import structlog

from shared.broker import get_broker
from shared.logging import configure_logging
from shared.settings import BrokerSettings
from warehouse.consumer import OrderMessageConsumer
from warehouse.statistics import WarehouseStatistics

logger = structlog.get_logger(__name__)


def run(concurrency: int | None = None, stop_event: threading.Event | None = None) -> WarehouseStatistics:
    """Consume orders until ``stop_event`` is set; returns the final statistics."""
    settings = BrokerSettings.from_env()
    stop_event = stop_event or threading.Event()
    statistics = WarehouseStatistics()
    consumer = OrderMessageConsumer(statistics)

    broker = get_broker()
    broker.declare(settings.exchange, settings.queue, settings.routing_key)
    workers = concurrency or settings.consumer_concurrency
    broker.consume(settings.queue, consumer.on_message, concurrency=workers)
    logger.info("Warehouse consumer started", queue=settings.queue, concurrency=workers)

    try:
        while not stop_event.wait(timeout=1.0):
            pass
    finally:
        logger.info("Warehouse consumer shutting down")
        broker.close()
        statistics.print_statistics()
    return statistics


def main():
    parser = argparse.ArgumentParser(description="Warehouse order consumer")
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Number of consumer workers (default: CONSUMER_CONCURRENCY)",
    )
    args = parser.parse_args()

    configure_logging("warehouse")

    stop_event = threading.Event()

    def _stop(signum, frame):
        logger.info("Received signal", signal=signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    run(args.concurrency, stop_event)


if __name__ == "__main__":
    main()
