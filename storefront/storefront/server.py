"""FastAPI server implementation for the storefront service."""

from contextlib import asynccontextmanager
from typing import Optional

from confluent_kafka.admin import AdminClient
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .catalog import InMemoryCatalog
from .config import Settings
from .errors import (
    CategoryInUse,
    CategoryNotFound,
    ConcurrentModification,
    InvalidCart,
    InvalidDiscountTier,
    InvalidQuantity,
    InvalidTransition,
    OrderNotFound,
    ProductNotFound,
    StorefrontError,
    SubcategoryNotFound,
)
from .lifecycle import OrderLifecycle
from .logger import logger, settings
from .notifications import TelegramNotificationSender
from .orders import build_order, price_cart
from .producer import OrderEventProducer
from .schemas import (
    BulkNotification,
    CartPreviewRequest,
    Category,
    CategoryCreate,
    CategoryUpdate,
    CustomerContact,
    CustomerMessage,
    DiscountTier,
    NotificationReport,
    Order,
    OrderCreate,
    OrderFilter,
    OrderStatus,
    PricedCart,
    Product,
    ProductCreate,
    ProductUpdate,
    StatusChange,
    Subcategory,
    SubcategoryCreate,
    SubcategoryUpdate,
)
from .store import InMemoryOrderStore

ERROR_STATUS_CODES: dict[type[StorefrontError], int] = {
    ProductNotFound: 404,
    OrderNotFound: 404,
    CategoryNotFound: 404,
    SubcategoryNotFound: 404,
    InvalidTransition: 409,
    ConcurrentModification: 409,
    CategoryInUse: 409,
    InvalidCart: 422,
    InvalidQuantity: 422,
    InvalidDiscountTier: 422,
}


class StorefrontState:
    """Holds the collaborators wired into the HTTP layer."""

    def __init__(self, settings: Settings):
        """Initialize the stores, the notifier and the lifecycle service.

        Args:
            settings: Service settings
        """
        self.settings = settings
        self.catalog = InMemoryCatalog()
        self.orders = InMemoryOrderStore()
        self.notifier = TelegramNotificationSender(
            settings.telegram_bot_token,
            api_url=settings.telegram_api_url,
            timeout=settings.notification_timeout_seconds,
        )
        self.producer: Optional[OrderEventProducer] = None
        self.lifecycle = OrderLifecycle(self.orders, self.notifier, on_status_change=self.publish_status)

    def publish_created(self, order: Order) -> None:
        if not self.producer:
            return
        try:
            self.producer.publish_order_created(order)
        except Exception as e:
            logger.error(f"Failed to publish order {order.order_id}: {e}")

    def publish_status(self, order: Order, previous_status: OrderStatus, forced: bool = False) -> None:
        if not self.producer:
            return
        try:
            self.producer.publish_status_changed(order, previous_status, forced=forced)
        except Exception as e:
            logger.error(f"Failed to publish status change for order {order.order_id}: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start and stop the order event feed.

    Args:
        app: The FastAPI application instance
    """
    if state.settings.event_feed_enabled:
        state.producer = OrderEventProducer(
            state.settings.kafka_bootstrap_servers, client_id=state.settings.kafka_client_id
        )
        logger.info(f"Order event feed enabled | bootstrap_servers={state.settings.kafka_bootstrap_servers}")
    else:
        logger.info("KAFKA_BOOTSTRAP_SERVERS not set, order event feed disabled")

    yield

    logger.info("Shutting down storefront service...")
    if state.producer:
        state.producer.close()
        state.producer = None
    logger.info("Shutdown complete")


app = FastAPI(title="Storefront Service", lifespan=lifespan)
state = StorefrontState(settings)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    """Translate domain errors into JSON error responses."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        400,
    )
    logger.info(f"Request rejected | path={request.url.path} | status={status_code} | error={type(exc).__name__}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})


@app.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@app.get("/health/ready")
def readiness_check():
    """Check if the service is ready; Kafka is only checked when the event feed is enabled."""
    if not state.settings.event_feed_enabled:
        return {"status": "ready", "kafka": "disabled"}
    try:
        admin = AdminClient({"bootstrap.servers": state.settings.kafka_bootstrap_servers})
        if admin.list_topics(timeout=5) is not None:
            return {"status": "ready", "kafka": "connected"}
    except Exception as e:
        logger.error(f"Kafka connection failed: {e}")
    return {"status": "not ready", "kafka": "disconnected"}


# -------------------- Catalog --------------------


@app.post("/categories", response_model=Category, status_code=201)
def create_category(data: CategoryCreate):
    return state.catalog.add_category(data)


@app.get("/categories", response_model=list[Category])
def list_categories():
    return state.catalog.list_categories()


@app.get("/categories/{category_id}", response_model=Category)
def get_category(category_id: str):
    return state.catalog.get_category(category_id)


@app.patch("/categories/{category_id}", response_model=Category)
def update_category(category_id: str, changes: CategoryUpdate):
    return state.catalog.update_category(category_id, changes)


@app.delete("/categories/{category_id}", status_code=204)
def delete_category(category_id: str):
    state.catalog.delete_category(category_id)


@app.post("/subcategories", response_model=Subcategory, status_code=201)
def create_subcategory(data: SubcategoryCreate):
    return state.catalog.add_subcategory(data)


@app.get("/subcategories", response_model=list[Subcategory])
def list_subcategories(category_id: Optional[str] = None):
    return state.catalog.list_subcategories(category_id)


@app.get("/subcategories/{subcategory_id}", response_model=Subcategory)
def get_subcategory(subcategory_id: str):
    return state.catalog.get_subcategory(subcategory_id)


@app.patch("/subcategories/{subcategory_id}", response_model=Subcategory)
def update_subcategory(subcategory_id: str, changes: SubcategoryUpdate):
    return state.catalog.update_subcategory(subcategory_id, changes)


@app.delete("/subcategories/{subcategory_id}", status_code=204)
def delete_subcategory(subcategory_id: str):
    state.catalog.delete_subcategory(subcategory_id)


@app.post("/products", response_model=Product, status_code=201)
def create_product(data: ProductCreate):
    return state.catalog.add_product(data)


@app.get("/products", response_model=list[Product])
def list_products(subcategory_id: Optional[str] = None):
    if subcategory_id:
        return state.catalog.list_by_subcategory(subcategory_id)
    return state.catalog.list_products()


@app.get("/products/{product_id}", response_model=Product)
def get_product(product_id: str):
    product = state.catalog.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.patch("/products/{product_id}", response_model=Product)
def update_product(product_id: str, changes: ProductUpdate):
    return state.catalog.update_product(product_id, changes)


@app.delete("/products/{product_id}", status_code=204)
def delete_product(product_id: str):
    state.catalog.delete_product(product_id)


@app.post("/products/{product_id}/discounts", response_model=Product, status_code=201)
def add_discount(product_id: str, tier: DiscountTier):
    return state.catalog.add_discount_tier(product_id, tier.min_quantity, tier.discount_percentage)


@app.delete("/products/{product_id}/discounts/{min_quantity}", response_model=Product)
def remove_discount(product_id: str, min_quantity: int):
    return state.catalog.remove_discount_tier(product_id, min_quantity)


# -------------------- Cart & orders --------------------


@app.post("/cart/preview", response_model=PricedCart)
def preview_cart(cart: CartPreviewRequest):
    """Price a cart with the current catalog data without placing an order."""
    return price_cart(cart.items, state.catalog)


@app.post("/orders", response_model=Order, status_code=201)
def create_order(data: OrderCreate):
    """Build, store and publish a new order.

    Args:
        data: The customer and cart lines

    Returns:
        Order: The stored order in pending status
    """
    logger.info(f"Received new order | user_id={data.user_id} | lines={len(data.items)}")
    order = build_order(data.user_id, data.items, state.catalog, state.orders)
    state.publish_created(order)
    return order


@app.get("/orders", response_model=list[Order])
def list_orders(
    user_id: Optional[str] = None,
    status: Optional[OrderStatus] = None,
    search: Optional[str] = None,
):
    """List orders newest first, optionally filtered by owner, status or id fragment."""
    return state.orders.list(OrderFilter(user_id=user_id, status=status, search=search))


@app.get("/orders/{order_id}", response_model=Order)
def get_order(order_id: str):
    order = state.orders.find_by_id(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@app.delete("/orders/{order_id}", status_code=204)
def delete_order(order_id: str):
    state.orders.delete(order_id)


@app.post("/orders/{order_id}/status", response_model=Order)
def change_order_status(order_id: str, change: StatusChange):
    """Move an order along the lifecycle graph, notify the customer and publish the change."""
    return state.lifecycle.transition(order_id, change.status, change.expected_delivery_time)


@app.post("/orders/{order_id}/force-status", response_model=Order)
def force_order_status(order_id: str, change: StatusChange):
    """Admin override that ignores the lifecycle graph."""
    return state.lifecycle.force_status(order_id, change.status, change.expected_delivery_time)


@app.post("/orders/{order_id}/notify")
def notify_order_customer(order_id: str, body: CustomerMessage):
    """Send a free-text message to the customer who placed the order."""
    try:
        sent = state.lifecycle.notify_customer(order_id, body.message)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"order_id": order_id, "sent": sent}


@app.post("/notifications", response_model=NotificationReport)
def send_bulk_notification(body: BulkNotification):
    """Send one message to several customers; each delivery succeeds or fails on its own.

    Args:
        body: Recipients and the message text

    Returns:
        NotificationReport: Delivery result per user plus sent/failed counts
    """
    try:
        results = state.lifecycle.notify_users(body.user_ids, body.message)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    sent = sum(results.values())
    return NotificationReport(results=results, sent=sent, failed=len(results) - sent)


# -------------------- Customers --------------------


@app.put("/customers/{user_id}/contact", response_model=CustomerContact)
def set_contact(user_id: str, contact: CustomerContact):
    if contact.user_id != user_id:
        raise HTTPException(status_code=422, detail="user_id in body does not match the path")
    return state.notifier.register_contact(contact)


@app.get("/customers/{user_id}/contact", response_model=CustomerContact)
def get_contact(user_id: str):
    contact = state.notifier.get_contact(user_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact
