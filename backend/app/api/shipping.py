"""Shipping estimate API routes"""
import logging

from fastapi import APIRouter, Depends

from app.core.config import settings
from app.core.security import RateLimit
from app.db.redis import SHIPPING_PREFIX, KVStore, get_json, get_kv_store, set_json
from app.schemas.orders import ShippingEstimateRequest
from app.services.printful_service import PrintfulClient, get_printful_client

router = APIRouter(prefix="/api/shipping", tags=["shipping"])
logger = logging.getLogger(__name__)

FREE_SHIPPING_THRESHOLD = 75

SHIPPING_METHODS = [
    {
        "id": "STANDARD",
        "name": "Standard Shipping",
        "description": "Delivered in 5-8 business days",
        "estimatedDays": {"min": 5, "max": 8},
    },
    {
        "id": "EXPEDITED",
        "name": "Expedited Shipping",
        "description": "Delivered in 2-4 business days",
        "estimatedDays": {"min": 2, "max": 4},
    },
]


def shipping_cache_key(zip_code: str, country: str, items: list) -> str:
    items_hash = ",".join(sorted(f"{item['variant_id']}:{item['quantity']}" for item in items))
    return f"{SHIPPING_PREFIX}{country}:{zip_code}:{items_hash}"


@router.post("/estimate", dependencies=[Depends(RateLimit("estimate", settings.RATE_LIMIT_ESTIMATE))])
def estimate_shipping(
    request: ShippingEstimateRequest,
    store: KVStore = Depends(get_kv_store),
    printful: PrintfulClient = Depends(get_printful_client)
):
    """Shipping cost for a destination and set of variants, cached briefly"""
    recipient = request.recipient
    items = [
        {"variant_id": item.printful_variant_id, "quantity": item.quantity}
        for item in request.items
    ]

    cache_key = shipping_cache_key(recipient.zip, recipient.country, items)
    cached = get_json(store, cache_key)
    if cached is not None:
        return {"data": cached, "meta": {"source": "cache"}}

    # Printful needs a full address; only destination fields affect the rate
    printful_recipient = {
        "name": "Shipping Estimate",
        "email": "estimate@example.com",
        "address1": "123 Main St",
        "city": recipient.city or "Anytown",
        "state_code": recipient.state or "CA",
        "country_code": recipient.country,
        "zip": recipient.zip,
    }
    estimate = printful.estimate_order(
        printful_recipient,
        [{**item, "retail_price": "0.00"} for item in items],
    )

    data = {
        "shipping": float(estimate["costs"]["shipping"]),
        "currency": estimate["costs"].get("currency", "USD"),
        "estimatedDelivery": estimate.get("shipping_date"),
        "freeShippingThreshold": FREE_SHIPPING_THRESHOLD,
    }
    set_json(store, cache_key, data, settings.SHIPPING_CACHE_TTL)
    return {"data": data, "meta": {"source": "printful-api"}}


@router.get("/methods")
def get_shipping_methods():
    return {"data": SHIPPING_METHODS, "meta": {"source": "static"}}
