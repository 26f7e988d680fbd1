"""Pydantic schemas for the session cart"""
from typing import Any, Dict

from app.schemas.base import CamelModel


class CartSyncRequest(CamelModel):
    session_token: str
    cart: Dict[str, Any]  # Stored verbatim; the client owns its shape
