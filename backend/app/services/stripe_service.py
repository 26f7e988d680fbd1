"""Stripe payment gateway: hosted checkout sessions and webhook verification"""
import logging
import stripe
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import (
    AuthenticationError, ExternalProviderError, NotFoundError, ValidationError
)
from app.core.metrics import provider_errors_counter
from app.services.discount_service import clamp_discount, discounted_unit_price, to_minor_units

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY
stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES


# ============================================================================
# STRIPE OBJECT ACCESS HELPER
# ============================================================================

def _get_stripe_value(obj: Any, key: str, default=None):
    """Safely extract value from Stripe object (supports both dict and attribute access)."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(key)
        return default if value is None else value
    value = getattr(obj, key, None)
    return default if value is None else value


# ============================================================================
# CHECKOUT SESSIONS
# ============================================================================

def build_line_items(items: List[Dict[str, Any]], shipping_cost: float = 0) -> List[Dict[str, Any]]:
    """Stripe price_data lines at post-discount prices, in cents"""
    line_items = []
    for item in items:
        unit_amount = to_minor_units(discounted_unit_price(item["unitPrice"], item.get("discountPercent", 0)))
        image = item.get("productImage")
        line_items.append({
            "price_data": {
                "currency": "usd",
                "product_data": {
                    "name": item["productName"],
                    "description": f"Size: {item['variantSize']} | Color: {item['variantColor']}",
                    "images": [image] if image else [],
                },
                "unit_amount": unit_amount,
            },
            "quantity": item["quantity"],
        })

    if shipping_cost > 0:
        line_items.append({
            "price_data": {
                "currency": "usd",
                "product_data": {
                    "name": "Shipping",
                    "description": "Standard shipping",
                },
                "unit_amount": to_minor_units(shipping_cost),
            },
            "quantity": 1,
        })

    return line_items


def create_payment_session(
    order_id: str,
    items: List[Dict[str, Any]],
    shipping: Dict[str, Any],
    shipping_cost: float,
    discount_percent: float,
    success_url: str,
    cancel_url: str
) -> Dict[str, str]:
    """Create a hosted Stripe Checkout session for one order.

    The order id and shipping fields ride along as session metadata; Stripe hands
    them back unmodified on checkout.session.completed.
    """
    checkout_params = {
        "mode": "payment",
        "line_items": build_line_items(items, shipping_cost),
        "customer_email": shipping["email"],
        "success_url": f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": cancel_url,
        "metadata": {
            "orderId": order_id,
            "discountPercent": str(clamp_discount(discount_percent)),
            "shippingName": shipping["name"],
            "shippingAddress": shipping["address"],
            "shippingAddress2": shipping.get("address2") or "",
            "shippingCity": shipping["city"],
            "shippingState": shipping["state"],
            "shippingZip": shipping["zip"],
            "shippingCountry": shipping["country"],
            "shippingPhone": shipping.get("phone") or "",
        },
        "payment_intent_data": {
            "metadata": {"orderId": order_id},
        },
    }

    try:
        session = stripe.checkout.Session.create(**checkout_params)
    except stripe.StripeError as e:
        provider_errors_counter.labels(provider="stripe", operation="create_session").inc()
        logger.error(f"Stripe session creation failed for order {order_id}: {e}", exc_info=True)
        raise ExternalProviderError(
            f"Failed to create checkout session: {e.user_message or str(e)}",
            provider="stripe",
            provider_status=getattr(e, "http_status", None),
            response_body=getattr(e, "http_body", None),
        )

    url = _get_stripe_value(session, "url")
    if not url:
        provider_errors_counter.labels(provider="stripe", operation="create_session").inc()
        raise ExternalProviderError("Stripe session created but no URL returned", provider="stripe")

    return {"id": _get_stripe_value(session, "id"), "url": url}


def retrieve_checkout_session(session_id: str) -> Dict[str, Any]:
    """Session + payment status for the client-side confirmation page"""
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.InvalidRequestError as e:
        logger.warning(f"Checkout session {session_id} not found: {e}")
        raise NotFoundError("Checkout session not found")
    except stripe.StripeError as e:
        provider_errors_counter.labels(provider="stripe", operation="retrieve_session").inc()
        logger.error(f"Error retrieving checkout session {session_id}: {e}", exc_info=True)
        raise ExternalProviderError("Failed to retrieve checkout session", provider="stripe")

    metadata = _get_stripe_value(session, "metadata", {})
    amount_total = _get_stripe_value(session, "amount_total")
    return {
        "status": _get_stripe_value(session, "status"),
        "paymentStatus": _get_stripe_value(session, "payment_status"),
        "orderId": _get_stripe_value(metadata, "orderId"),
        "customerEmail": _get_stripe_value(session, "customer_email"),
        "amountTotal": amount_total / 100 if amount_total else 0,
    }


# ============================================================================
# WEBHOOKS
# ============================================================================

def construct_webhook_event(payload: bytes, sig_header: Optional[str]):
    """Verify a webhook against STRIPE_WEBHOOK_SECRET and return the event.

    Raises:
        AuthenticationError: missing/invalid signature, or no secret configured
        ValidationError: payload is not a valid event body
    """
    if not sig_header:
        raise AuthenticationError("Missing stripe-signature header")

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("Webhook secret not configured")
        raise AuthenticationError("Webhook secret not configured")

    try:
        return stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        raise ValidationError("Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid webhook signature: {e}")
        raise AuthenticationError("Invalid signature")


def get_payment_intent_id(session: Any) -> str:
    payment_intent = _get_stripe_value(session, "payment_intent")
    if isinstance(payment_intent, str):
        return payment_intent
    return _get_stripe_value(payment_intent, "id", "")
