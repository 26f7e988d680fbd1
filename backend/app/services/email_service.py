"""Email service - transactional order emails via Resend

Senders raise NotificationError; webhook callers catch and log it so a failed
email never fails or rolls back an order.
"""
import logging
from datetime import datetime, timezone
from html import escape
from typing import Any, Dict, List

import resend

from app.core.config import settings
from app.core.exceptions import NotificationError
from app.core.metrics import notifications_counter

logger = logging.getLogger(__name__)


def _send_email(kind: str, sender: str, to: str, subject: str, html: str) -> str:
    """Send via Resend and return the Resend email id"""
    if not settings.RESEND_API_KEY:
        notifications_counter.labels(kind=kind, status="skipped").inc()
        raise NotificationError("RESEND_API_KEY is not set; skipping email")

    try:
        resend.api_key = settings.RESEND_API_KEY
        response = resend.Emails.send(
            {
                "from": sender,
                "to": to,
                "subject": subject,
                "html": html,
            }
        )
    except Exception as exc:
        notifications_counter.labels(kind=kind, status="failed").inc()
        raise NotificationError(f"Failed to send {kind} email to {to}: {exc}")

    # Resend returns a dict with 'id' on success; older SDKs return an object
    email_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
    if not email_id:
        notifications_counter.labels(kind=kind, status="failed").inc()
        raise NotificationError(f"Email send returned invalid response: {response}")

    notifications_counter.labels(kind=kind, status="sent").inc()
    logger.info(f"{kind} email sent to {to} (id: {email_id})")
    return email_id


def _footer() -> str:
    year = datetime.now(timezone.utc).year
    return (
        '<p style="color: #999; font-size: 12px; margin-top: 20px;">'
        "Questions? Reply to this email or visit our store.<br/>"
        f"&copy; {year} Caterpillar Ranch. All rights reserved.</p>"
    )


def _items_html(items: List[Dict[str, Any]]) -> str:
    rows = "".join(
        f"<tr><td>{escape(item['name'])} ({escape(item['size'])})</td>"
        f"<td>x{item['quantity']}</td><td>${item['price']:.2f}</td></tr>"
        for item in items
    )
    return f'<table style="width: 100%;">{rows}</table>'


def send_order_confirmation_email(data: Dict[str, Any]) -> str:
    """Order confirmation.

    Args:
        data: orderId, customerEmail, customerName, items[{name, size, quantity, price}],
            subtotal, discount, shipping, total, shippingAddress{name, address1,
            address2, city, state, zip, country}
    """
    address = data["shippingAddress"]
    address2 = f"{escape(address['address2'])}<br/>" if address.get("address2") else ""
    discount_row = (
        f"<p>Game discount: -${data['discount']:.2f}</p>" if data["discount"] > 0 else ""
    )

    html = f"""
    <h1>The Ranch Has Accepted Your Order</h1>
    <p>Hi {escape(data['customerName'])},</p>
    <p>Thank you for your order! The caterpillars are busy preparing your harvest.</p>
    <p><strong>Order {escape(data['orderId'])}</strong></p>
    {_items_html(data['items'])}
    <p>Subtotal: ${data['subtotal']:.2f}</p>
    {discount_row}
    <p>Shipping: ${data['shipping']:.2f}</p>
    <p><strong>Total: ${data['total']:.2f}</strong></p>
    <p>
      {escape(address['name'])}<br/>
      {escape(address['address1'])}<br/>
      {address2}
      {escape(address['city'])}, {escape(address['state'])} {escape(address['zip'])}<br/>
      {escape(address['country'])}
    </p>
    {_footer()}
    """

    return _send_email(
        "order_confirmation",
        settings.RESEND_FROM_ORDERS,
        data["customerEmail"],
        f"Order Confirmed: {data['orderId']} - Caterpillar Ranch",
        html,
    )


def send_shipping_notification_email(data: Dict[str, Any]) -> str:
    """Shipping notification.

    Args:
        data: orderId, customerEmail, customerName, trackingNumber, trackingUrl, carrier
    """
    tracking_url = escape(data.get("trackingUrl") or "")
    html = f"""
    <h1>Your Harvest is on the Move!</h1>
    <p>Hi {escape(data['customerName'])},</p>
    <p>Great news! Your order {escape(data['orderId'])} is on its way to you.</p>
    <p>Carrier: {escape(data['carrier'])}<br/>
       Tracking number: {escape(data['trackingNumber'])}</p>
    <p style="margin: 20px 0;">
      <a href="{tracking_url}" target="_blank" rel="noopener noreferrer"
         style="display: inline-block; padding: 12px 24px; background-color: #4a7c59; color: white; text-decoration: none; border-radius: 4px; font-weight: bold;">
        Track Your Package
      </a>
    </p>
    {_footer()}
    """

    return _send_email(
        "shipping_notification",
        settings.RESEND_FROM_SHIPPING,
        data["customerEmail"],
        f"Your Order Has Shipped: {data['orderId']} - Caterpillar Ranch",
        html,
    )
