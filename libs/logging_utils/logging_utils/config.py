"""Logging configuration shared by the storefront services."""

import sys
from typing import Optional

from loguru import logger as loguru_logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[service]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[service]} | {name}:{function}:{line} - {message}"


def setup_service_logger(
    service_name: str,
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    serialize: bool = False,
) -> loguru_logger:
    """Configure the process-wide loguru sinks and return a logger bound to a service.

    Args:
        service_name: Name of the service (e.g., 'storefront')
        log_level: Minimum level for every sink (default: INFO)
        log_file: Optional path of a rotating log file
        serialize: Emit one JSON document per record instead of the colored console format

    Returns:
        logger: Loguru logger with ``service`` bound in its extra dict
    """
    loguru_logger.remove()
    loguru_logger.configure(extra={"service": service_name})

    if serialize:
        loguru_logger.add(sys.stderr, level=log_level, serialize=True, enqueue=True)
    else:
        loguru_logger.add(
            sys.stderr,
            level=log_level,
            format=CONSOLE_FORMAT,
            colorize=True,
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    if log_file:
        loguru_logger.add(
            log_file,
            level=log_level,
            format=FILE_FORMAT,
            rotation="10 MB",
            retention="1 week",
            compression="gz",
            enqueue=True,
        )

    return loguru_logger.bind(service=service_name)


def get_kafka_logger(service_name: str) -> loguru_logger:
    """Get a logger for Kafka operations without reconfiguring the sinks.

    Args:
        service_name: Name of the owning service

    Returns:
        logger: Logger bound to ``<service_name>.kafka``
    """
    return loguru_logger.bind(service=f"{service_name}.kafka")
