"""Logging configuration for the checkout and warehouse processes.

structlog shapes every event and hands it to the standard library root
logger, which writes to the console and to one rotating file per process
(``$LOG_DIR/<process>.log``). Production and staging render JSON lines,
everything else renders for a console with rich tracebacks.

Consumer workers bind the delivery they are handling with ``add_context``;
the binding is per thread.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path

import structlog

_RENDER_JSON = ("production", "staging")

# pika logs every frame at DEBUG
_NOISY_LOGGERS = ("pika", "urllib3", "protean")


def _environment() -> str:
    return (os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def get_log_level() -> str:
    """``LOG_LEVEL`` if set, otherwise a level derived from the environment."""
    default = {"production": "INFO", "staging": "INFO", "development": "DEBUG", "test": "WARNING"}
    return os.getenv("LOG_LEVEL", default.get(_environment(), "INFO"))


def setup_stdlib_logging(process: str) -> None:
    """Route the root logger to stdout and ``$LOG_DIR/<process>.log``."""
    log_level = get_log_level()
    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / f"{process}.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    root_logger = logging.getLogger()
    root_logger.handlers = [logging.StreamHandler(sys.stdout), file_handler]
    root_logger.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_structlog() -> None:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.THREAD_NAME]
        ),
        structlog.processors.format_exc_info,
    ]
    if _environment() in _RENDER_JSON:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=False, max_frames=4),
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(process: str) -> None:
    """Configure all logging for a process; call once at startup."""
    setup_stdlib_logging(process)
    setup_structlog()


def add_context(**kwargs) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def mask_card_number(card_number: str | None) -> str:
    """Keep only the last four digits of a card number for log output."""
    if not card_number or len(card_number) < 4:
        return "****-****-****-****"
    return f"****-****-****-{card_number[-4:]}"
