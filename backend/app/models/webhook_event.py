"""WebhookEvent model"""
from sqlalchemy import Column, Integer, String, Boolean, Text, JSON, DateTime, Index
from datetime import datetime, timezone
from app.models.base import Base


class WebhookEvent(Base):
    """Audit log of verified provider webhooks, used for manual reconciliation.

    Not an idempotency key: the payment path dedupes on the Order row itself.
    """
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(20), nullable=False)  # 'stripe', 'printful'
    event_id = Column(String(255), nullable=True, index=True)  # Printful events carry no id
    event_type = Column(String(100), nullable=False, index=True)
    order_id = Column(String(64), nullable=True, index=True)
    payload = Column(JSON, nullable=False)
    processed = Column(Boolean, default=False, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index('ix_webhook_events_provider_created', 'provider', 'created_at'),
    )
