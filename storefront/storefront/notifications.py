"""Customer notification delivery."""

import threading
from typing import Optional, Protocol

import requests

from .logger import logger
from .schemas import CustomerContact, Order, OrderStatus

STATUS_MESSAGES = {
    OrderStatus.PENDING: "Your order #{ref} is awaiting review.",
    OrderStatus.APPROVED: "Your order #{ref} has been approved.",
    OrderStatus.SHIPPING: "Your order #{ref} is on its way.",
    OrderStatus.DELIVERED: "Your order #{ref} has been delivered!",
    OrderStatus.CANCELLED: "Your order #{ref} has been cancelled.",
}


def format_status_message(order: Order, status: Optional[OrderStatus] = None) -> str:
    """Build the customer-facing message for an order status change."""
    status = status or order.status
    message = STATUS_MESSAGES[status].format(ref=order.short_ref)
    if status in (OrderStatus.APPROVED, OrderStatus.SHIPPING) and order.expected_delivery_time:
        message += f" Expected delivery: {order.expected_delivery_time:%Y-%m-%d}."
    return message


class NotificationSender(Protocol):
    """Protocol for best-effort customer notification channels."""

    def send(self, user_id: str, message: str) -> bool:
        """Deliver a message to a user.

        Args:
            user_id: Recipient
            message: Text to deliver

        Returns:
            bool: True if delivered, False when there is no channel or delivery failed
        """
        ...


class TelegramNotificationSender:
    """Delivers notifications through the Telegram Bot API.

    Customers without a registered chat id, or a service without a bot token,
    get nothing and ``send`` returns False.
    """

    def __init__(
        self,
        bot_token: Optional[str],
        api_url: str = "https://api.telegram.org",
        timeout: float = 5.0,
    ):
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._contacts: dict[str, CustomerContact] = {}
        self._lock = threading.Lock()

    def register_contact(self, contact: CustomerContact) -> CustomerContact:
        with self._lock:
            self._contacts[contact.user_id] = contact
        logger.info(f"Updated contact for customer: {contact.user_id}")
        return contact

    def get_contact(self, user_id: str) -> Optional[CustomerContact]:
        with self._lock:
            return self._contacts.get(user_id)

    def send(self, user_id: str, message: str) -> bool:
        if not self.bot_token:
            logger.warning(f"Telegram bot token not configured, skipping notification for {user_id}")
            return False

        contact = self.get_contact(user_id)
        if not contact or not contact.telegram_chat_id:
            logger.warning(f"No Telegram chat id for customer {user_id}")
            return False

        try:
            response = requests.post(
                f"{self.api_url}/bot{self.bot_token}/sendMessage",
                json={"chat_id": contact.telegram_chat_id, "text": message},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            # The request URL embeds the bot token, so only the error type is logged.
            status = getattr(e.response, "status_code", None)
            logger.error(f"Failed to send Telegram notification | user_id={user_id} | error={type(e).__name__} | status={status}")
            return False

        logger.info(f"Telegram notification sent | user_id={user_id}")
        return True
