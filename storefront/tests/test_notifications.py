"""Tests for customer notification delivery."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
import requests

from storefront.notifications import TelegramNotificationSender, format_status_message
from storefront.schemas import CustomerContact, Order, OrderLine, OrderStatus


@pytest.fixture
def mock_requests_post(mocker):
    """Mock the Telegram Bot API call."""
    return mocker.patch("storefront.notifications.requests.post")


@pytest.fixture
def sender():
    channel = TelegramNotificationSender("123:abc", api_url="https://telegram.test/", timeout=2.0)
    channel.register_contact(CustomerContact(user_id="zain", telegram_chat_id="@storeowner"))
    return channel


@pytest.fixture
def sample_order():
    return Order(
        order_id="ord-1a2b3c4d",
        user_id="zain",
        status=OrderStatus.APPROVED,
        items=[OrderLine(product_id="prod-1", quantity=1, unit_price_at_purchase=Decimal("35.00"))],
        total=Decimal("35.00"),
        expected_delivery_time=datetime(2023, 10, 18, 14, 0, tzinfo=timezone.utc),
    )


def test_send_posts_to_bot_api(sender, mock_requests_post):
    assert sender.send("zain", "Your order #2b3c4d has been approved.") is True

    mock_requests_post.assert_called_once_with(
        "https://telegram.test/bot123:abc/sendMessage",
        json={"chat_id": "@storeowner", "text": "Your order #2b3c4d has been approved."},
        timeout=2.0,
    )
    mock_requests_post.return_value.raise_for_status.assert_called_once()


def test_send_without_contact_returns_false(sender, mock_requests_post):
    assert sender.send("customer1", "hello") is False
    sender.register_contact(CustomerContact(user_id="customer1"))
    assert sender.send("customer1", "hello") is False
    mock_requests_post.assert_not_called()


def test_send_without_token_returns_false(mock_requests_post):
    channel = TelegramNotificationSender(None)
    channel.register_contact(CustomerContact(user_id="zain", telegram_chat_id="42"))
    assert channel.send("zain", "hello") is False
    mock_requests_post.assert_not_called()


def test_send_http_failure_returns_false(sender, mock_requests_post):
    mock_requests_post.return_value.raise_for_status.side_effect = requests.HTTPError("403 Forbidden")
    assert sender.send("zain", "hello") is False

    mock_requests_post.side_effect = requests.ConnectionError("unreachable")
    assert sender.send("zain", "hello") is False


def test_contacts(sender):
    assert sender.get_contact("zain").telegram_chat_id == "@storeowner"
    assert sender.get_contact("nobody") is None


def test_status_message_uses_short_reference(sample_order):
    message = format_status_message(sample_order)
    assert "#2b3c4d" in message
    assert "approved" in message
    assert "2023-10-18" in message


@pytest.mark.parametrize("status", list(OrderStatus))
def test_every_status_has_a_message(sample_order, status):
    message = format_status_message(sample_order.model_copy(update={"status": status}))
    assert sample_order.short_ref in message
