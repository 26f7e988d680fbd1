"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from app.models.base import Base
from app.models.order import Order, OrderLineItem, OrderStatus
from app.models.game_completion import GameCompletion
from app.models.webhook_event import WebhookEvent

# Export all for convenience
__all__ = [
    "Base", "Order", "OrderLineItem", "OrderStatus", "GameCompletion", "WebhookEvent"
]
