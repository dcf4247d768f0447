"""Kafka producer for the order event feed."""

from confluent_kafka import Producer

from .logger import kafka_logger as logger
from .schemas import Order, OrderStatus, OrderStatusEvent

ORDERS_CREATED_TOPIC = "orders.created"
ORDERS_STATUS_TOPIC = "orders.status_changed"


class OrderEventProducer:
    """Publishes order events keyed by order id.

    Keying by order id keeps every event of one order on one partition, so
    consumers see an order's status changes in the order they were stored.

    Attributes:
        _producer: The underlying Kafka producer instance.
    """

    def __init__(self, bootstrap_servers: str, client_id: str = "storefront"):
        """Initialize the Kafka producer.

        Args:
            bootstrap_servers (str): Comma-separated list of Kafka broker addresses.
            client_id (str): Client id reported to the brokers.
        """
        self._producer = Producer(
            {
                "bootstrap.servers": bootstrap_servers,
                "client.id": client_id,
                "acks": "all",
                "message.timeout.ms": 5000,
                "partitioner": "consistent_random",
            }
        )

    @property
    def producer(self):
        return self._producer

    def _delivery_callback(self, err, msg):
        """Log the delivery report of one message."""
        if err:
            logger.error(f"Message failed delivery: {err} | topic={msg.topic()} | key={msg.key()}")
        else:
            logger.debug(f"Message delivered to {msg.topic()} [p:{msg.partition()}] | offset={msg.offset()}")

    def _produce(self, topic: str, key: str, value: str) -> None:
        try:
            self._producer.produce(
                topic=topic,
                key=key.encode("utf-8"),
                value=value.encode("utf-8"),
                on_delivery=self._delivery_callback,
            )
            self._producer.poll(0)
        except BufferError:
            logger.warning("Producer buffer full, flushing...")
            self._producer.flush()
            raise

    def publish_order_created(self, order: Order) -> None:
        """Publish a newly built order.

        Raises:
            BufferError: If the producer's internal buffer is full.
        """
        self._produce(ORDERS_CREATED_TOPIC, order.order_id, order.model_dump_json())

    def publish_status_changed(self, order: Order, previous_status: OrderStatus, forced: bool = False) -> None:
        """Publish a status change that has already been stored."""
        event = OrderStatusEvent(
            order_id=order.order_id,
            user_id=order.user_id,
            previous_status=previous_status,
            status=order.status,
            version=order.version,
            forced=forced,
            expected_delivery_time=order.expected_delivery_time,
        )
        self._produce(ORDERS_STATUS_TOPIC, order.order_id, event.model_dump_json())

    def flush(self, timeout: float = 10.0) -> None:
        remaining = self._producer.flush(timeout)
        if remaining > 0:
            logger.warning(f"{remaining} messages still pending delivery")

    def close(self) -> None:
        """Flush outstanding messages before shutdown."""
        self.flush()
        logger.info("Producer closed")
