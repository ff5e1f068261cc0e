"""
Hypatia Material Ingestion System - Logging Utilities
=====================================================
Utilities for logging with request id tracking and optional structured output.
"""

import os
import logging
import threading
from typing import Optional
from logging.handlers import RotatingFileHandler

import structlog

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] - %(message)s'

# Configure thread-local storage for request IDs
thread_local = threading.local()


class RequestIdFilter(logging.Filter):
    """
    Filter that adds request_id to log records.
    This allows tracking of logs across a single request.
    """
    def filter(self, record):
        record.request_id = getattr(thread_local, 'request_id', 'no_request_id')
        return True


def set_request_id(request_id: str) -> None:
    """Set the request ID for the current thread."""
    thread_local.request_id = request_id


def clear_request_id() -> None:
    """Clear the request ID from the current thread."""
    if hasattr(thread_local, 'request_id'):
        del thread_local.request_id


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    use_structured_logging: bool = False,
    max_file_size: int = 10*1024*1024,  # 10 MB
    backup_count: int = 5,
    log_format: str = DEFAULT_FORMAT
) -> None:
    """
    Configure the logging system.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (None to disable file logging)
        console: Whether to log to console
        use_structured_logging: Whether to render records as JSON through structlog
        max_file_size: Maximum size of log file before rotation
        backup_count: Number of backup log files to keep
        log_format: Format string for plain text records
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if use_structured_logging:
        formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
            ],
        )
    else:
        formatter = logging.Formatter(log_format)

    handlers = []

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    request_id_filter = RequestIdFilter()
    for handler in handlers:
        handler.addFilter(request_id_filter)
        root_logger.addHandler(handler)

    if use_structured_logging:
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    # Silence noisy libraries
    logging.getLogger('pymongo').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: The name of the logger

    Returns:
        A logger instance
    """
    return logging.getLogger(name)
