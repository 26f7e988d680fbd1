"""Checkout session initiator: snapshot the cart, then hand off to Stripe Checkout"""
import time
from datetime import datetime, timezone
from typing import Any, Dict, List

from app.core.config import settings
from app.core.exceptions import ExternalProviderError, ValidationError
from app.core.logging import checkout_logger as logger
from app.core.metrics import checkout_sessions_counter, discount_clamped_counter
from app.db.redis import CHECKOUT_PREFIX, KVStore, set_json
from app.services.discount_service import MAX_DISCOUNT_PERCENT, clamp_discount
from app.services.stripe_service import create_payment_session, retrieve_checkout_session

REQUIRED_ITEM_FIELDS = (
    "productId", "productName", "variantId", "variantSize", "variantColor",
    "printfulVariantId", "unitPrice", "quantity",
)
REQUIRED_SHIPPING_FIELDS = ("email", "name", "address", "city", "state", "zip", "country")


def generate_order_id() -> str:
    """Human-readable, timestamp-derived order id, e.g. RANCH-1736901234567"""
    return f"RANCH-{int(time.time() * 1000)}"


def checkout_snapshot_key(order_id: str) -> str:
    return f"{CHECKOUT_PREFIX}{order_id}"


def _clamp_claimed(value: Any) -> float:
    """clamp_discount plus a metric when the client claimed something out of range"""
    clamped = clamp_discount(value)
    if isinstance(value, (int, float)) and value != clamped:
        boundary = "max" if value > MAX_DISCOUNT_PERCENT else "min"
        discount_clamped_counter.labels(boundary=boundary).inc()
        logger.warning(f"Client claimed discount {value}% clamped to {clamped}%")
    return clamped


def _validate_cart(items: List[Dict[str, Any]], shipping: Dict[str, Any]) -> None:
    if not items:
        raise ValidationError("Cart is empty")
    if not shipping:
        raise ValidationError("Shipping information is required")

    for item in items:
        missing = [field for field in REQUIRED_ITEM_FIELDS if item.get(field) in (None, "")]
        if missing:
            raise ValidationError(f"Cart item is missing: {', '.join(missing)}")
        if item["quantity"] <= 0:
            raise ValidationError("Item quantity must be positive")
        if item["unitPrice"] < 0:
            raise ValidationError("Item price must be non-negative")

    missing = [field for field in REQUIRED_SHIPPING_FIELDS if not shipping.get(field)]
    if missing:
        raise ValidationError(f"Shipping information is missing: {', '.join(missing)}")


def create_checkout_session(
    store: KVStore,
    items: List[Dict[str, Any]],
    shipping: Dict[str, Any],
    shipping_cost: float,
    discount_percent: Any,
    success_url: str,
    cancel_url: str
) -> Dict[str, str]:
    """Snapshot the cart under a fresh order id and create a Stripe Checkout session.

    The snapshot outlives the redirect to Stripe; the payment webhook reads it
    back to materialize the order. Abandoned checkouts leave snapshots that
    simply expire.

    Returns:
        {"sessionId", "url", "orderId"}
    """
    _validate_cart(items, shipping)
    if shipping_cost is None or shipping_cost < 0:
        raise ValidationError("Shipping cost must be non-negative")

    order_id = generate_order_id()

    clamped_items = [
        {**item, "discountPercent": _clamp_claimed(item.get("discountPercent", 0))}
        for item in items
    ]
    clamped_discount = _clamp_claimed(discount_percent)

    snapshot = {
        "items": clamped_items,
        "shipping": shipping,
        "shippingCost": shipping_cost,
        "discountPercent": clamped_discount,
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }
    set_json(store, checkout_snapshot_key(order_id), snapshot, settings.CHECKOUT_SNAPSHOT_TTL)

    try:
        session = create_payment_session(
            order_id=order_id,
            items=clamped_items,
            shipping=shipping,
            shipping_cost=shipping_cost,
            discount_percent=clamped_discount,
            success_url=success_url,
            cancel_url=cancel_url,
        )
    except ExternalProviderError:
        checkout_sessions_counter.labels(status="failed").inc()
        raise

    checkout_sessions_counter.labels(status="created").inc()
    logger.info(
        f"Checkout session {session['id']} created for order {order_id} "
        f"({len(clamped_items)} items, discount {clamped_discount}%)"
    )
    return {
        "sessionId": session["id"],
        "url": session["url"],
        "orderId": order_id,
    }


def get_checkout_session_status(session_id: str) -> Dict[str, Any]:
    if not session_id:
        raise ValidationError("Session ID is required")
    return retrieve_checkout_session(session_id)
