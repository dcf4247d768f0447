"""Service configuration read from the environment."""

import os
from typing import Optional

from pydantic import BaseModel, Field


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Runtime settings for the storefront service.

    Attributes:
        service_name: Name bound to every log record
        log_level: Minimum log level
        log_file: Optional rotating log file path
        log_json: Emit JSON log records instead of the console format
        kafka_bootstrap_servers: Kafka brokers for the order event feed; the feed is disabled when unset
        kafka_client_id: Client id used by the event producer
        telegram_bot_token: Bot token for customer notifications; notifications are skipped when unset
        telegram_api_url: Base URL of the Telegram Bot API
        notification_timeout_seconds: HTTP timeout for a single notification
    """

    service_name: str = "storefront"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_json: bool = False
    kafka_bootstrap_servers: Optional[str] = None
    kafka_client_id: str = "storefront"
    telegram_bot_token: Optional[str] = None
    telegram_api_url: str = "https://api.telegram.org"
    notification_timeout_seconds: float = Field(default=5.0, gt=0)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to the defaults."""
        return cls(
            service_name=os.getenv("SERVICE_NAME", "storefront"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE") or None,
            log_json=_env_flag("LOG_JSON"),
            kafka_bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS") or None,
            kafka_client_id=os.getenv("KAFKA_CLIENT_ID", "storefront"),
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN") or None,
            telegram_api_url=os.getenv("TELEGRAM_API_URL", "https://api.telegram.org").rstrip("/"),
            notification_timeout_seconds=float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5")),
        )

    @property
    def event_feed_enabled(self) -> bool:
        return bool(self.kafka_bootstrap_servers)
