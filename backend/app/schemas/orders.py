"""Pydantic schemas for order and shipping estimates"""
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.base import CamelModel


class PrintfulRecipient(BaseModel):
    """Printful's own (snake_case) recipient shape"""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address1: str
    address2: Optional[str] = None
    city: str
    state_code: Optional[str] = None
    country_code: str
    zip: str


class PrintfulOrderItem(BaseModel):
    variant_id: int
    quantity: int = Field(gt=0)
    retail_price: Optional[str] = None


class OrderEstimateRequest(CamelModel):
    recipient: PrintfulRecipient
    items: List[PrintfulOrderItem] = Field(min_length=1)
    discount_percent: float = 0


class ShippingRecipient(CamelModel):
    zip: str
    country: str
    state: Optional[str] = None
    city: Optional[str] = None


class ShippingItem(CamelModel):
    printful_variant_id: int
    quantity: int = Field(gt=0)


class ShippingEstimateRequest(CamelModel):
    recipient: ShippingRecipient
    items: List[ShippingItem] = Field(min_length=1)
