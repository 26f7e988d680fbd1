"""Webhook reconciler: turns a paid Stripe checkout into a ledger order and a Printful order

Stripe delivers at least once. The existence of the Order row is the only
idempotency signal; the webhook_events table is an audit trail for manual
reconciliation, not a dedupe key.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    DuplicateEvent, NotFoundError, NotificationError, PersistenceError, ValidationError
)
from app.core.logging import webhook_logger
from app.core.metrics import orders_materialized_counter, webhook_events_counter
from app.db.redis import KVStore, get_json
from app.models.order import Order, OrderLineItem, OrderStatus, can_transition
from app.models.webhook_event import WebhookEvent
from app.services.checkout_service import checkout_snapshot_key
from app.services.discount_service import calculate_retail_costs, clamp_discount, discounted_unit_price
from app.services.email_service import send_order_confirmation_email
from app.services.printful_service import PrintfulClient, build_recipient
from app.services.stripe_service import _get_stripe_value, construct_webhook_event, get_payment_intent_id

logger = logging.getLogger(__name__)


# ============================================================================
# WEBHOOK AUDIT LOG
# ============================================================================

def log_webhook_event(
    db: Session,
    provider: str,
    event_type: str,
    payload: Any,
    event_id: Optional[str] = None,
    order_id: Optional[str] = None
) -> WebhookEvent:
    """Record a verified inbound event before acting on it"""
    webhook_event = WebhookEvent(
        provider=provider,
        event_id=event_id,
        event_type=event_type,
        order_id=order_id,
        payload=payload,
    )
    db.add(webhook_event)
    db.commit()
    db.refresh(webhook_event)
    return webhook_event


def mark_webhook_event_processed(
    db: Session,
    webhook_event: WebhookEvent,
    error_message: Optional[str] = None,
    order_id: Optional[str] = None
) -> None:
    """Mark an audit row done, with the error if processing failed.

    Never raises: an audit write failure must not turn an acknowledged event
    into a retry.
    """
    try:
        webhook_event.processed = True
        webhook_event.processed_at = datetime.now(timezone.utc)
        webhook_event.error_message = error_message
        if order_id:
            webhook_event.order_id = order_id
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to update webhook event {webhook_event.id}: {e}", exc_info=True)


# ============================================================================
# ORDER MATERIALIZATION
# ============================================================================

def _line_subtotal(item: Dict[str, Any]) -> float:
    return discounted_unit_price(item["unitPrice"], item["discountPercent"]) * item["quantity"]


def _printful_items(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "variant_id": item["printfulVariantId"],
            "quantity": item["quantity"],
            "retail_price": f"{discounted_unit_price(item['unitPrice'], item['discountPercent']):.2f}",
        }
        for item in items
    ]


def _confirmation_email_data(order: Order, shipping_cost: float) -> Dict[str, Any]:
    return {
        "orderId": order.id,
        "customerEmail": order.customer_email,
        "customerName": order.customer_name,
        "items": [
            {
                "name": item.product_name,
                "size": item.variant_size,
                "quantity": item.quantity,
                "price": item.subtotal,
            }
            for item in order.items
        ],
        "subtotal": order.subtotal,
        "discount": order.discount_amount,
        "shipping": shipping_cost,
        "total": order.total,
        "shippingAddress": {
            "name": order.customer_name,
            "address1": order.shipping_address_line1,
            "address2": order.shipping_address_line2,
            "city": order.shipping_city,
            "state": order.shipping_state,
            "zip": order.shipping_zip,
            "country": order.shipping_country,
        },
    }


def materialize_order(
    session: Any,
    db: Session,
    store: KVStore,
    printful: PrintfulClient
) -> Order:
    """Materialize a paid checkout session into exactly one Order.

    Raises:
        DuplicateEvent: the order already exists (redelivery); nothing was done
        ValidationError: the session carries no orderId
        NotFoundError: the cart snapshot is gone; needs manual reconciliation
        ExternalProviderError: Printful draft or confirm call failed
        PersistenceError: the ledger write failed
    """
    metadata = _get_stripe_value(session, "metadata", {})
    order_id = _get_stripe_value(metadata, "orderId")
    if not order_id:
        raise ValidationError("Missing orderId in session metadata")

    # Idempotency guard: the Order row is the sole signal
    if db.query(Order).filter(Order.id == order_id).first():
        webhook_logger.info(f"Order {order_id} already exists, skipping duplicate webhook")
        raise DuplicateEvent(f"Order {order_id} already materialized")

    snapshot = get_json(store, checkout_snapshot_key(order_id))
    if snapshot is None:
        webhook_logger.error(
            f"Cart snapshot not found for paid order {order_id} "
            f"(session {_get_stripe_value(session, 'id')}); manual reconciliation required"
        )
        raise NotFoundError(f"Cart data not found for order: {order_id}")

    shipping = snapshot["shipping"]
    shipping_cost = snapshot.get("shippingCost") or 0
    items = [
        {**item, "discountPercent": clamp_discount(item.get("discountPercent", 0))}
        for item in snapshot["items"]
    ]
    discount_percent = clamp_discount(snapshot.get("discountPercent", 0))

    subtotal = sum(item["unitPrice"] * item["quantity"] for item in items)
    retail_costs = calculate_retail_costs(subtotal, discount_percent, shipping_cost)

    # External call #1: nothing ships until confirm
    webhook_logger.info(f"Creating Printful draft order for {order_id}")
    draft = printful.create_order(order_id, build_recipient(shipping), _printful_items(items), retail_costs)
    printful_order_id = draft["id"]
    webhook_logger.info(f"Printful draft order {printful_order_id} created for {order_id}")

    order = Order(
        id=order_id,
        customer_email=shipping["email"],
        customer_name=shipping["name"],
        customer_phone=shipping.get("phone") or None,
        shipping_address_line1=shipping["address"],
        shipping_address_line2=shipping.get("address2") or None,
        shipping_city=shipping["city"],
        shipping_state=shipping["state"],
        shipping_zip=shipping["zip"],
        shipping_country=shipping["country"],
        subtotal=subtotal,
        discount_amount=float(retail_costs["discount"]),
        shipping_cost=shipping_cost,
        total=float(retail_costs["total"]),
        external_fulfillment_order_id=printful_order_id,
        external_fulfillment_status=OrderStatus.DRAFT.value,
        payment_session_id=_get_stripe_value(session, "id"),
        payment_intent_id=get_payment_intent_id(session) or None,
    )
    for item in items:
        order.items.append(OrderLineItem(
            product_id=item["productId"],
            product_name=item["productName"],
            variant_id=str(item["variantId"]),
            variant_size=item["variantSize"],
            variant_color=item["variantColor"],
            unit_price=item["unitPrice"],
            quantity=item["quantity"],
            discount_percent=item["discountPercent"],
            subtotal=_line_subtotal(item),
            external_variant_id=item["printfulVariantId"],
        ))

    try:
        db.add(order)
        db.commit()
    except IntegrityError:
        db.rollback()
        # A concurrent delivery won the insert; our Printful draft is now an orphan
        if db.query(Order).filter(Order.id == order_id).first():
            webhook_logger.warning(
                f"Order {order_id} inserted concurrently; Printful draft {printful_order_id} is orphaned"
            )
            raise DuplicateEvent(f"Order {order_id} already materialized")
        raise PersistenceError(f"Failed to persist order {order_id}")
    except Exception as e:
        db.rollback()
        webhook_logger.error(
            f"Failed to persist order {order_id}; Printful draft {printful_order_id} is orphaned: {e}",
            exc_info=True
        )
        raise PersistenceError(f"Failed to persist order {order_id}")

    webhook_logger.info(f"Order {order_id} persisted as draft")

    # External call #2: moves the draft into fulfillment
    printful.confirm_order(printful_order_id)
    if can_transition(order.external_fulfillment_status, OrderStatus.CONFIRMED):
        order.external_fulfillment_status = OrderStatus.CONFIRMED.value
        order.confirmed_at = datetime.now(timezone.utc)
        db.commit()
    webhook_logger.info(f"Printful order {printful_order_id} confirmed for {order_id}")

    orders_materialized_counter.inc()

    try:
        send_order_confirmation_email(_confirmation_email_data(order, shipping_cost))
    except NotificationError as e:
        webhook_logger.error(f"Failed to send confirmation email for {order_id}: {e}")

    store.delete(checkout_snapshot_key(order_id))
    webhook_logger.info(f"Order processing complete: {order_id}")
    return order


# ============================================================================
# PAYMENT WEBHOOK
# ============================================================================

def handle_checkout_completed(
    session: Any,
    db: Session,
    store: KVStore,
    printful: PrintfulClient
) -> str:
    """Returns the outcome: 'created', 'duplicate' or 'skipped'"""
    payment_status = _get_stripe_value(session, "payment_status")
    if payment_status != "paid":
        webhook_logger.info(
            f"Session {_get_stripe_value(session, 'id')} not yet paid ({payment_status}), skipping"
        )
        return "skipped"

    try:
        materialize_order(session, db, store, printful)
    except DuplicateEvent:
        return "duplicate"
    return "created"


def process_payment_webhook(
    payload: bytes,
    sig_header: Optional[str],
    db: Session,
    store: KVStore,
    printful: PrintfulClient
) -> Dict[str, Any]:
    """Verify and process a Stripe webhook.

    Only signature and payload validation raise. Once the event is verified
    every outcome is acknowledged with 2xx so Stripe stops retrying; failures
    are recorded on the webhook_events row and in the logs instead.

    Raises:
        AuthenticationError: missing/invalid signature
        ValidationError: malformed payload
    """
    event = construct_webhook_event(payload, sig_header)
    event_id = event["id"]
    event_type = event["type"]
    data = event["data"]["object"]

    webhook_logger.info(f"Stripe event received: {event_type} ({event_id})")

    metadata = _get_stripe_value(data, "metadata", {})
    order_id = _get_stripe_value(metadata, "orderId")

    try:
        webhook_event = log_webhook_event(
            db, "stripe", event_type, json.loads(payload), event_id=event_id, order_id=order_id
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to log webhook event {event_id}: {e}", exc_info=True)
        webhook_event = None

    try:
        if event_type == "checkout.session.completed":
            status = handle_checkout_completed(data, db, store, printful)
        elif event_type == "payment_intent.succeeded":
            # checkout.session.completed is the primary signal
            webhook_logger.info(f"Payment intent succeeded: {_get_stripe_value(data, 'id')}")
            status = "logged"
        elif event_type == "payment_intent.payment_failed":
            webhook_logger.error(
                f"Payment failed: {_get_stripe_value(data, 'id')} "
                f"{_get_stripe_value(data, 'last_payment_error')}"
            )
            status = "logged"
        else:
            webhook_logger.info(f"Unhandled event type: {event_type}")
            status = "ignored"
    except Exception as e:
        # Return success so Stripe does not retry into the same failure
        webhook_logger.error(f"Error processing webhook {event_id}: {e}", exc_info=True)
        db.rollback()
        if webhook_event is not None:
            mark_webhook_event_processed(db, webhook_event, error_message=str(e))
        webhook_events_counter.labels(provider="stripe", event_type=event_type, outcome="error").inc()
        return {"received": True, "status": "error_logged"}

    if webhook_event is not None:
        mark_webhook_event_processed(db, webhook_event)
    webhook_events_counter.labels(provider="stripe", event_type=event_type, outcome=status).inc()
    return {"received": True, "status": status}
