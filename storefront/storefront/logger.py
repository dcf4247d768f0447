"""Logger module for the storefront service."""

from logging_utils.config import get_kafka_logger, setup_service_logger

from .config import Settings

settings = Settings.from_env()

logger = setup_service_logger(
    settings.service_name,
    log_level=settings.log_level,
    log_file=settings.log_file,
    serialize=settings.log_json,
)

kafka_logger = get_kafka_logger(settings.service_name)

__all__ = ["logger", "kafka_logger"]
