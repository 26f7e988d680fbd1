"""Fulfillment status synchronizer: applies Printful webhooks to the order ledger

Docs: https://developers.printful.com/docs/#section/Webhooks
"""
import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import PRODUCTS_CACHE_KEY, settings
from app.core.exceptions import AuthenticationError, NotificationError, ValidationError
from app.core.logging import fulfillment_logger
from app.core.metrics import webhook_events_counter
from app.db.redis import KVStore, invalidate_cache
from app.models.order import Order, OrderStatus, can_transition
from app.services.email_service import send_shipping_notification_email
from app.services.order_service import log_webhook_event, mark_webhook_event_processed
from app.services.printful_service import PRINTFUL_STATUS_MAP

logger = logging.getLogger(__name__)

PRODUCT_EVENTS = ("product_synced", "product_updated", "product_deleted")


def verify_printful_signature(payload: bytes, signature: Optional[str]) -> None:
    """Check X-PF-Webhook-Signature when PRINTFUL_WEBHOOK_SECRET is configured.

    Without a configured secret every delivery is accepted.
    """
    secret = settings.PRINTFUL_WEBHOOK_SECRET
    if not secret:
        return
    if not signature:
        raise AuthenticationError("Missing Printful webhook signature")

    expected = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature):
        raise AuthenticationError("Invalid Printful webhook signature")


def _find_order(db: Session, printful_order: Dict[str, Any]) -> Optional[Order]:
    return db.query(Order).filter(
        Order.external_fulfillment_order_id == printful_order.get("id")
    ).first()


def apply_status(db: Session, order: Order, new_status: OrderStatus) -> bool:
    """Move an order along the state machine. Returns False (and logs) when the move is not allowed."""
    current = order.external_fulfillment_status
    if not can_transition(current, new_status):
        fulfillment_logger.warning(
            f"Ignoring out-of-order transition {current} -> {new_status.value} for order {order.id}"
        )
        return False
    if current != new_status.value:
        order.external_fulfillment_status = new_status.value
        db.commit()
        fulfillment_logger.info(f"Order {order.id} status {current} -> {new_status.value}")
    return True


def handle_package_shipped(db: Session, order: Order, printful_order: Dict[str, Any]) -> str:
    """Attach tracking, mark shipped and attempt one shipping email for this delivery.

    A redelivered event sends the email again. Orders that can no longer ship
    (cancelled, failed, on hold, fulfilled) are left untouched.
    """
    shipments = printful_order.get("shipments") or []
    if not shipments:
        fulfillment_logger.error(f"No shipment data in package_shipped event for order {order.id}")
        return "ignored"
    shipment = shipments[0]

    current = order.external_fulfillment_status
    if not can_transition(current, OrderStatus.SHIPPED):
        fulfillment_logger.warning(
            f"Ignoring package_shipped for order {order.id} in status {current}"
        )
        return "ignored"

    order.tracking_number = shipment.get("tracking_number")
    order.tracking_url = shipment.get("tracking_url")
    order.tracking_carrier = shipment.get("carrier") or "Standard Shipping"
    if order.shipped_at is None:
        order.shipped_at = datetime.now(timezone.utc)
    db.commit()

    apply_status(db, order, OrderStatus.SHIPPED)
    fulfillment_logger.info(f"Order {order.id} shipped with tracking: {order.tracking_number}")

    try:
        send_shipping_notification_email({
            "orderId": order.id,
            "customerEmail": order.customer_email,
            "customerName": order.customer_name,
            "trackingNumber": order.tracking_number,
            "trackingUrl": order.tracking_url,
            "carrier": order.tracking_carrier,
        })
    except NotificationError as e:
        fulfillment_logger.error(f"Failed to send shipping notification for {order.id}: {e}")

    return "shipped"


def handle_order_updated(db: Session, order: Order, printful_order: Dict[str, Any]) -> str:
    printful_status = printful_order.get("status")
    mapped = PRINTFUL_STATUS_MAP.get(printful_status)
    if mapped is None:
        fulfillment_logger.warning(f"Unknown Printful status '{printful_status}' for order {order.id}, ignoring")
        return "ignored"
    return "updated" if apply_status(db, order, OrderStatus(mapped)) else "ignored"


def process_fulfillment_webhook(event: Dict[str, Any], db: Session, store: KVStore) -> Dict[str, Any]:
    """Apply one Printful webhook event.

    Unknown orders, unknown event types and disallowed transitions are logged
    and acknowledged. Processing errors are logged and acknowledged too; only
    a structurally invalid body raises.
    """
    if not isinstance(event, dict) or not event.get("type"):
        raise ValidationError("Invalid Printful webhook payload")

    event_type = event["type"]
    printful_order = (event.get("data") or {}).get("order") or {}
    fulfillment_logger.info(
        f"Printful event received: {event_type} "
        f"(order {printful_order.get('id')}, external {printful_order.get('external_id')})"
    )

    try:
        webhook_event = log_webhook_event(
            db, "printful", event_type, event, order_id=printful_order.get("external_id")
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to log Printful event {event_type}: {e}", exc_info=True)
        webhook_event = None

    try:
        status = _dispatch(event_type, printful_order, db, store)
    except Exception as e:
        fulfillment_logger.error(f"Error processing Printful event {event_type}: {e}", exc_info=True)
        db.rollback()
        if webhook_event is not None:
            mark_webhook_event_processed(db, webhook_event, error_message=str(e))
        webhook_events_counter.labels(provider="printful", event_type=event_type, outcome="error").inc()
        return {"received": True, "status": "error_logged"}

    if webhook_event is not None:
        mark_webhook_event_processed(db, webhook_event)
    webhook_events_counter.labels(provider="printful", event_type=event_type, outcome=status).inc()
    return {"received": True, "status": status}


def _dispatch(event_type: str, printful_order: Dict[str, Any], db: Session, store: KVStore) -> str:
    if event_type in PRODUCT_EVENTS:
        invalidate_cache(store, PRODUCTS_CACHE_KEY)
        fulfillment_logger.info(f"Product event {event_type}: catalog cache invalidated")
        return "cache_invalidated"

    if event_type not in ("package_shipped", "order_updated", "order_canceled", "order_failed"):
        fulfillment_logger.info(f"Unhandled Printful event type: {event_type}")
        return "ignored"

    order = _find_order(db, printful_order)
    if order is None:
        fulfillment_logger.warning(
            f"No local order for Printful order {printful_order.get('id')} "
            f"(external {printful_order.get('external_id')})"
        )
        return "unknown_order"

    if event_type == "package_shipped":
        return handle_package_shipped(db, order, printful_order)
    if event_type == "order_updated":
        return handle_order_updated(db, order, printful_order)
    if event_type == "order_canceled":
        return "cancelled" if apply_status(db, order, OrderStatus.CANCELLED) else "ignored"
    # order_failed
    fulfillment_logger.error(f"Printful reports order {order.id} failed")
    return "failed" if apply_status(db, order, OrderStatus.FAILED) else "ignored"
