"""Order lifecycle: guarded status changes and customer notification."""

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Optional

from .errors import OrderNotFound
from .logger import logger
from .notifications import NotificationSender, format_status_message
from .orders import Clock, apply_transition
from .schemas import Order, OrderStatus
from .store import OrderStore

# Called with (stored order, status it moved from, forced) after every stored change.
StatusListener = Callable[[Order, OrderStatus, bool], None]


class OrderLifecycle:
    """Applies status changes to stored orders and tells the customer about them.

    Writes go through the store's version check, so of two concurrent changes
    to one order only the first is stored; the second raises
    ``ConcurrentModification``.
    """

    def __init__(
        self,
        order_store: OrderStore,
        notifier: NotificationSender,
        clock: Optional[Clock] = None,
        on_status_change: Optional[StatusListener] = None,
    ):
        self.order_store = order_store
        self.notifier = notifier
        self._clock = clock
        self._on_status_change = on_status_change

    def transition(
        self,
        order_id: str,
        new_status: OrderStatus,
        expected_delivery_time: Optional[datetime] = None,
    ) -> Order:
        """Move an order along the lifecycle graph.

        Args:
            order_id: Order to change
            new_status: Requested status
            expected_delivery_time: Optional estimate, only when approving or shipping

        Returns:
            Order: The stored, updated order

        Raises:
            OrderNotFound: If the order does not exist
            InvalidTransition: If the move is not allowed; the order is unchanged
            ConcurrentModification: If another writer stored a change first
        """
        return self._change(order_id, new_status, expected_delivery_time, forced=False)

    def force_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        expected_delivery_time: Optional[datetime] = None,
    ) -> Order:
        """Admin override: set any status, ignoring the transition graph.

        The change is still versioned and the customer is still notified.
        """
        return self._change(order_id, new_status, expected_delivery_time, forced=True)

    def notify_customer(self, order_id: str, message: str) -> bool:
        """Send a free-text message to the owner of an order.

        Returns:
            bool: The sender's delivery result
        """
        message = _clean_message(message)
        order = self._load(order_id)
        return self._notify(order.user_id, message, order_id=order.order_id)

    def notify_users(self, user_ids: Iterable[str], message: str) -> dict[str, bool]:
        """Send one message to many customers, one delivery attempt each.

        A failed delivery is recorded as False and does not stop the others.

        Args:
            user_ids: Recipients; duplicates get a single message
            message: Text to deliver

        Returns:
            dict[str, bool]: Delivery result per user, in request order
        """
        message = _clean_message(message)
        results = {user_id: False for user_id in user_ids}
        for user_id in results:
            results[user_id] = self._notify(user_id, message)
        sent = sum(results.values())
        logger.info(f"Bulk notification finished | recipients={len(results)} | sent={sent} | failed={len(results) - sent}")
        return results

    def _change(
        self,
        order_id: str,
        new_status: OrderStatus,
        expected_delivery_time: Optional[datetime],
        forced: bool,
    ) -> Order:
        order = self._load(order_id)
        updated = apply_transition(order, new_status, expected_delivery_time, clock=self._clock, enforce=not forced)
        self.order_store.save(updated)

        log = logger.warning if forced else logger.info
        log(
            f"Order status {'forced' if forced else 'changed'} | order_id={order_id} | from={order.status.value} | "
            f"to={updated.status.value} | version={updated.version}"
        )
        self._notify(updated.user_id, format_status_message(updated), order_id=order_id)
        if self._on_status_change:
            try:
                self._on_status_change(updated, order.status, forced)
            except Exception as e:
                logger.error(f"Status change listener failed | order_id={order_id} | error={e}")
        return updated

    def _load(self, order_id: str) -> Order:
        order = self.order_store.find_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def _notify(self, user_id: str, message: str, order_id: Optional[str] = None) -> bool:
        try:
            delivered = self.notifier.send(user_id, message)
        except Exception as e:
            logger.error(f"Notification sender failed | order_id={order_id} | user_id={user_id} | error={e}")
            return False
        if not delivered:
            logger.warning(f"Notification not delivered | order_id={order_id} | user_id={user_id}")
        return bool(delivered)


def _clean_message(message: str) -> str:
    if not message or not message.strip():
        raise ValueError("Notification message must not be empty")
    return message.strip()
