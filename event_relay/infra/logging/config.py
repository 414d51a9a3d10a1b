"""Logging configuration setup.

- dictConfig for the root logger
- QueueHandler + QueueListener so handler I/O never blocks the event loop
- All handlers behind the root logger; module loggers propagate
- JSON Lines output for machine parsing
"""

from __future__ import annotations

import atexit
import logging
import logging.config
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import Queue
from typing import TYPE_CHECKING, Any

from event_relay.infra.logging.formatters import JSONFormatter

if TYPE_CHECKING:
    from collections.abc import Callable

    from event_relay.core.settings.logs import LoggingSettings

logger = logging.getLogger(__name__)

_log_queue: Queue[logging.LogRecord] | None = None
_listener: QueueListener | None = None
_queue_handler: QueueHandler | None = None
_LOGGING_INITIALIZED = False
_atexit_registered = False

TEXT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = ("aio_pika", "aiormq", "sqlalchemy.engine.Engine")


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **configure_kwargs: Any,
) -> None:
    """Configure logging once across entrypoints.

    Args:
        log_settings: Logging settings; loaded via get_logging_settings() if omitted.
        force: Reconfigure even if logging was already initialized.
        **configure_kwargs: Explicit overrides for configure_logging().
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    if log_settings is None:
        from event_relay.core.settings import get_logging_settings

        log_settings = get_logging_settings()

    if "service_name" not in configure_kwargs:
        from event_relay.core.settings import get_app_settings

        configure_kwargs["service_name"] = get_app_settings().service_name

    configure_logging(**{**log_settings.to_logging_kwargs(), **configure_kwargs})
    _LOGGING_INITIALIZED = True


def configure_logging(
    log_level: str = "INFO",
    file_path: str | Path | None = None,
    json_logs: bool = True,
    console_enabled: bool = True,
    file_max_bytes: int = 10 * 1024 * 1024,
    file_backup_count: int = 5,
    service_name: str = "event-relay",
    capture_warnings: bool = True,
) -> None:
    """Configure the root logger with dictConfig and a queue listener.

    Args:
        log_level: Root logger level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file_path: Rotating log file path. None disables file logging.
        json_logs: Emit JSON Lines instead of text.
        console_enabled: Log to stderr.
        file_max_bytes: Maximum log file size before rotation.
        file_backup_count: Number of rotated files to keep.
        service_name: Static "service" field on JSON records.
        capture_warnings: Forward Python warnings to logging.

    Example:
        from event_relay.core.settings import get_logging_settings
        configure_logging(**get_logging_settings().to_logging_kwargs())
    """
    _stop_listener()

    if capture_warnings:
        logging.captureWarnings(True)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "root": {"level": log_level.upper(), "handlers": []},
            "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        }
    )

    path = Path(file_path) if file_path else None
    if path:
        path.parent.mkdir(parents=True, exist_ok=True)

    _setup_queue_logging(
        console_enabled=console_enabled,
        file_path=path,
        file_max_bytes=file_max_bytes,
        file_backup_count=file_backup_count,
        formatter_factory=lambda: _build_formatter(json_logs, service_name),
    )


def _build_formatter(json_logs: bool, service_name: str) -> logging.Formatter:
    if json_logs:
        return JSONFormatter(static={"service": service_name})
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=TEXT_DATEFMT)


def _setup_queue_logging(
    *,
    console_enabled: bool,
    file_path: Path | None,
    file_max_bytes: int,
    file_backup_count: int,
    formatter_factory: Callable[[], logging.Formatter],
) -> None:
    """Attach handlers to a QueueListener and a QueueHandler to root."""
    global _log_queue, _listener, _queue_handler, _atexit_registered

    _log_queue = Queue()
    handlers: list[logging.Handler] = []

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter_factory())
        handlers.append(console_handler)

    if file_path:
        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=file_max_bytes,
            backupCount=file_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter_factory())
        handlers.append(file_handler)

    if handlers:
        _listener = QueueListener(_log_queue, *handlers, respect_handler_level=True)
        _listener.start()
        if not _atexit_registered:
            atexit.register(shutdown)
            _atexit_registered = True

    _queue_handler = QueueHandler(_log_queue)
    logging.getLogger().addHandler(_queue_handler)


def _stop_listener() -> None:
    global _log_queue, _listener, _queue_handler

    if _queue_handler is not None:
        logging.getLogger().removeHandler(_queue_handler)
        _queue_handler = None

    if _listener is not None:
        # stop() drains the queue before returning
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
        _listener = None

    _log_queue = None


def shutdown() -> None:
    """Flush queued records and stop the listener (also run at exit)."""
    global _LOGGING_INITIALIZED

    _stop_listener()
    _LOGGING_INITIALIZED = False


__all__ = ["configure_logging", "setup_logging", "shutdown"]
