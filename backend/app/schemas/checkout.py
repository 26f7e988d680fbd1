"""Pydantic schemas for checkout"""
from typing import List, Optional

from pydantic import Field

from app.schemas.base import CamelModel


class CheckoutItem(CamelModel):
    product_id: str
    product_name: str
    product_image: Optional[str] = None
    variant_id: str
    variant_size: str
    variant_color: str
    printful_variant_id: int
    unit_price: float = Field(ge=0)
    quantity: int = Field(gt=0)
    # Client claim; clamped server-side, so out-of-range values are accepted here
    discount_percent: float = 0


class ShippingInfo(CamelModel):
    email: str
    name: str
    address: str
    address2: Optional[str] = None
    city: str
    state: str
    zip: str
    country: str = "US"
    phone: Optional[str] = None


class CreateCheckoutSessionRequest(CamelModel):
    items: List[CheckoutItem] = Field(min_length=1)
    shipping: ShippingInfo
    shipping_cost: float = Field(default=0, ge=0)
    discount_percent: float = 0
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
