"""Order estimate and lookup API routes"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.core.security import RateLimit
from app.db.session import get_db
from app.models.order import Order
from app.schemas.orders import OrderEstimateRequest
from app.services.discount_service import MAX_DISCOUNT_PERCENT, calculate_retail_costs, clamp_discount
from app.services.printful_service import PrintfulClient, get_printful_client

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _order_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "status": order.external_fulfillment_status,
        "customerEmail": order.customer_email,
        "customerName": order.customer_name,
        "subtotal": order.subtotal,
        "discountAmount": order.discount_amount,
        "shippingCost": order.shipping_cost,
        "total": order.total,
        "tracking": {
            "number": order.tracking_number,
            "url": order.tracking_url,
            "carrier": order.tracking_carrier,
        } if order.tracking_number else None,
        "createdAt": order.created_at.isoformat() if order.created_at else None,
        "confirmedAt": order.confirmed_at.isoformat() if order.confirmed_at else None,
        "shippedAt": order.shipped_at.isoformat() if order.shipped_at else None,
        "items": [
            {
                "productId": item.product_id,
                "productName": item.product_name,
                "variantSize": item.variant_size,
                "variantColor": item.variant_color,
                "unitPrice": item.unit_price,
                "quantity": item.quantity,
                "discountPercent": item.discount_percent,
                "subtotal": item.subtotal,
            }
            for item in order.items
        ],
    }


@router.post("/estimate", dependencies=[Depends(RateLimit("estimate", settings.RATE_LIMIT_ESTIMATE))])
def estimate_order(
    request: OrderEstimateRequest,
    printful: PrintfulClient = Depends(get_printful_client)
):
    """Printful cost estimate with the game discount applied"""
    estimate = printful.estimate_order(
        request.recipient.model_dump(exclude_none=True),
        [item.model_dump(exclude_none=True) for item in request.items],
    )
    subtotal = float(estimate["costs"]["subtotal"])
    applied_discount = clamp_discount(request.discount_percent)

    return {
        "data": {
            **estimate,
            "retailCosts": calculate_retail_costs(subtotal, applied_discount),
            "appliedDiscountPercent": applied_discount,
            "maxDiscountPercent": MAX_DISCOUNT_PERCENT,
        },
        "meta": {"source": "printful-api"},
    }


@router.get("/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db)):
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError("Order not found")
    return {"data": _order_dict(order)}
