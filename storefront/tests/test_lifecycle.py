"""Tests for order status transitions and their notifications."""

import threading
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from storefront.errors import ConcurrentModification, InvalidTransition, OrderNotFound
from storefront.lifecycle import OrderLifecycle
from storefront.orders import ALLOWED_TRANSITIONS, TERMINAL_STATUSES, apply_transition, build_order
from storefront.schemas import CartLine, OrderStatus
from storefront.store import InMemoryOrderStore

DELIVERY = datetime(2024, 1, 8, 14, 0, tzinfo=timezone.utc)


@pytest.fixture
def order(catalog, order_store, tiered_product):
    return build_order("customer1", [CartLine(product_id=tiered_product.product_id, quantity=7)], catalog, order_store)


def _advance(lifecycle, order_id, *statuses):
    for status in statuses:
        lifecycle.transition(order_id, status)


def test_happy_path_reaches_delivered(lifecycle, order, order_store):
    _advance(lifecycle, order.order_id, OrderStatus.APPROVED, OrderStatus.SHIPPING, OrderStatus.DELIVERED)

    stored = order_store.find_by_id(order.order_id)
    assert stored.status == OrderStatus.DELIVERED
    assert stored.version == 4


def test_pending_cannot_skip_to_shipping(lifecycle, order, order_store, notifier):
    with pytest.raises(InvalidTransition):
        lifecycle.transition(order.order_id, OrderStatus.SHIPPING)

    assert order_store.find_by_id(order.order_id).status == OrderStatus.PENDING
    notifier.send.assert_not_called()


def test_delivered_cannot_go_back_to_shipping(lifecycle, order, order_store):
    _advance(lifecycle, order.order_id, OrderStatus.APPROVED, OrderStatus.SHIPPING, OrderStatus.DELIVERED)

    with pytest.raises(InvalidTransition):
        lifecycle.transition(order.order_id, OrderStatus.SHIPPING)
    assert order_store.find_by_id(order.order_id).status == OrderStatus.DELIVERED


@pytest.mark.parametrize("start", [OrderStatus.PENDING, OrderStatus.APPROVED, OrderStatus.SHIPPING])
def test_cancel_from_any_non_terminal_status(lifecycle, order, order_store, start):
    path = {
        OrderStatus.PENDING: [],
        OrderStatus.APPROVED: [OrderStatus.APPROVED],
        OrderStatus.SHIPPING: [OrderStatus.APPROVED, OrderStatus.SHIPPING],
    }[start]
    _advance(lifecycle, order.order_id, *path)

    cancelled = lifecycle.transition(order.order_id, OrderStatus.CANCELLED)
    assert cancelled.status == OrderStatus.CANCELLED


def test_terminal_statuses_have_no_exits(order):
    assert TERMINAL_STATUSES == {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    for terminal in TERMINAL_STATUSES:
        frozen = order.model_copy(update={"status": terminal})
        for target in OrderStatus:
            with pytest.raises(InvalidTransition):
                apply_transition(frozen, target)


def test_transition_table_matches_graph(order):
    for current, targets in ALLOWED_TRANSITIONS.items():
        start = order.model_copy(update={"status": current})
        for target in OrderStatus:
            if target in targets:
                assert apply_transition(start, target).status == target
            else:
                with pytest.raises(InvalidTransition):
                    apply_transition(start, target)


def test_apply_transition_leaves_input_untouched(order):
    moved = apply_transition(order, OrderStatus.APPROVED, DELIVERY)
    assert order.status == OrderStatus.PENDING
    assert order.version == 1
    assert order.expected_delivery_time is None
    assert moved.version == 2
    assert moved.items == order.items
    assert moved.total == order.total


def test_delivery_time_set_on_approve_and_preserved(lifecycle, order):
    approved = lifecycle.transition(order.order_id, OrderStatus.APPROVED, DELIVERY)
    assert approved.expected_delivery_time == DELIVERY

    shipping = lifecycle.transition(order.order_id, OrderStatus.SHIPPING)
    delivered = lifecycle.transition(order.order_id, OrderStatus.DELIVERED)
    assert shipping.expected_delivery_time == DELIVERY
    assert delivered.expected_delivery_time == DELIVERY


def test_delivery_time_can_be_revised_when_shipping(lifecycle, order):
    later = datetime(2024, 1, 10, tzinfo=timezone.utc)
    lifecycle.transition(order.order_id, OrderStatus.APPROVED, DELIVERY)
    shipping = lifecycle.transition(order.order_id, OrderStatus.SHIPPING, later)
    assert shipping.expected_delivery_time == later


def test_delivery_time_rejected_for_other_statuses(lifecycle, order, order_store):
    with pytest.raises(InvalidTransition):
        lifecycle.transition(order.order_id, OrderStatus.CANCELLED, DELIVERY)
    assert order_store.find_by_id(order.order_id).status == OrderStatus.PENDING


def test_shipping_to_delivered_notifies_owner_once(lifecycle, order, notifier):
    _advance(lifecycle, order.order_id, OrderStatus.APPROVED, OrderStatus.SHIPPING)
    notifier.send.reset_mock()

    lifecycle.transition(order.order_id, OrderStatus.DELIVERED)

    notifier.send.assert_called_once()
    user_id, message = notifier.send.call_args[0]
    assert user_id == "customer1"
    assert order.short_ref in message
    assert "delivered" in message.lower()


def test_undelivered_notification_does_not_fail_transition(lifecycle, order, notifier, order_store):
    notifier.send.return_value = False

    approved = lifecycle.transition(order.order_id, OrderStatus.APPROVED)

    assert approved.status == OrderStatus.APPROVED
    assert order_store.find_by_id(order.order_id).status == OrderStatus.APPROVED


def test_raising_notifier_does_not_fail_transition(lifecycle, order, notifier, order_store):
    notifier.send.side_effect = RuntimeError("telegram down")

    lifecycle.transition(order.order_id, OrderStatus.APPROVED)

    assert order_store.find_by_id(order.order_id).status == OrderStatus.APPROVED


def test_unknown_order(lifecycle):
    with pytest.raises(OrderNotFound):
        lifecycle.transition("ord-unknown", OrderStatus.APPROVED)


def test_stale_writer_is_rejected(lifecycle, order, order_store):
    stale = order_store.find_by_id(order.order_id)
    lifecycle.transition(order.order_id, OrderStatus.APPROVED)

    with pytest.raises(ConcurrentModification):
        order_store.save(apply_transition(stale, OrderStatus.CANCELLED))

    assert order_store.find_by_id(order.order_id).status == OrderStatus.APPROVED


def test_force_status_bypasses_graph(lifecycle, order, notifier):
    _advance(lifecycle, order.order_id, OrderStatus.APPROVED, OrderStatus.SHIPPING, OrderStatus.DELIVERED)
    notifier.send.reset_mock()

    forced = lifecycle.force_status(order.order_id, OrderStatus.SHIPPING)

    assert forced.status == OrderStatus.SHIPPING
    assert forced.version == 5
    notifier.send.assert_called_once()


def test_notify_customer_returns_delivery_result(lifecycle, order, notifier):
    assert lifecycle.notify_customer(order.order_id, "  Your parcel is at the front desk  ") is True
    notifier.send.assert_called_once_with("customer1", "Your parcel is at the front desk")

    notifier.send.return_value = False
    assert lifecycle.notify_customer(order.order_id, "Second message") is False


def test_notify_customer_rejects_empty_message(lifecycle, order):
    with pytest.raises(ValueError):
        lifecycle.notify_customer(order.order_id, "   ")


class InterleavingOrderStore(InMemoryOrderStore):
    """Order store whose reads wait until every racing writer has read."""

    def __init__(self, barrier: threading.Barrier):
        super().__init__()
        self._barrier = barrier

    def find_by_id(self, order_id):
        order = super().find_by_id(order_id)
        self._barrier.wait(timeout=5)
        return order


def test_racing_transitions_store_exactly_one(order, notifier):
    store = InterleavingOrderStore(threading.Barrier(2))
    store.save(order)
    racing = OrderLifecycle(store, notifier)
    stored, rejected = [], []

    def approve():
        try:
            stored.append(racing.transition(order.order_id, OrderStatus.APPROVED))
        except (ConcurrentModification, InvalidTransition) as e:
            rejected.append(e)

    threads = [threading.Thread(target=approve) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(stored) == 1
    assert len(rejected) == 1
    assert isinstance(rejected[0], ConcurrentModification)
    notifier.send.assert_called_once()

    final = InMemoryOrderStore.find_by_id(store, order.order_id)
    assert final.status == OrderStatus.APPROVED
    assert final.version == 2


def test_status_listener_receives_the_status_moved_from(order_store, notifier, order):
    listener = MagicMock()
    watched = OrderLifecycle(order_store, notifier, on_status_change=listener)

    watched.transition(order.order_id, OrderStatus.APPROVED)
    watched.force_status(order.order_id, OrderStatus.DELIVERED)

    assert listener.call_args_list[0].args[1:] == (OrderStatus.PENDING, False)
    updated, previous, forced = listener.call_args_list[1].args
    assert (updated.status, previous, forced) == (OrderStatus.DELIVERED, OrderStatus.APPROVED, True)


def test_listener_failure_does_not_fail_transition(order_store, notifier, order):
    watched = OrderLifecycle(order_store, notifier, on_status_change=MagicMock(side_effect=BufferError("queue full")))

    watched.transition(order.order_id, OrderStatus.APPROVED)

    assert order_store.find_by_id(order.order_id).status == OrderStatus.APPROVED


def test_notify_users_is_best_effort_per_user(lifecycle, notifier):
    def send(user_id, message):
        if user_id == "customer2":
            raise RuntimeError("telegram down")
        return user_id != "customer3"

    notifier.send.side_effect = send

    results = lifecycle.notify_users(["customer1", "customer2", "customer3", "customer1"], " Flash sale today ")

    assert results == {"customer1": True, "customer2": False, "customer3": False}
    assert notifier.send.call_count == 3
    notifier.send.assert_any_call("customer1", "Flash sale today")


def test_notify_users_rejects_empty_message(lifecycle, notifier):
    with pytest.raises(ValueError):
        lifecycle.notify_users(["customer1"], "  ")
    notifier.send.assert_not_called()
