"""Storefront error taxonomy

Services raise these; the exception handlers in app.core.middleware turn them
into ``{"error": ..., "detail": ...}`` JSON responses. Webhook handlers catch
everything past signature verification and acknowledge the provider instead.
"""
from typing import Optional


class StorefrontError(Exception):
    """Base class for errors that map onto an HTTP response"""
    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message or self.error)
        self.message = message or self.error
        if status_code is not None:
            self.status_code = status_code


class ValidationError(StorefrontError):
    """Malformed or incomplete request"""
    status_code = 400
    error = "Invalid request"


class AuthenticationError(StorefrontError):
    """Missing or unverifiable webhook signature"""
    status_code = 400
    error = "Invalid signature"


class NotFoundError(StorefrontError):
    """Unknown session, order or cart"""
    status_code = 404
    error = "Not found"


class RateLimitExceeded(StorefrontError):
    status_code = 429
    error = "Rate limit exceeded"


class DuplicateEvent(StorefrontError):
    """Webhook already materialized; treated as success by callers"""
    status_code = 200
    error = "Duplicate event"


class ExternalProviderError(StorefrontError):
    """Payment or fulfillment provider call failed"""
    status_code = 500
    error = "External provider error"

    def __init__(
        self,
        message: str = "",
        provider: str = "",
        provider_status: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.provider_status = provider_status
        self.response_body = response_body


class PersistenceError(StorefrontError):
    """Ledger write failed"""
    status_code = 500
    error = "Persistence error"


class NotificationError(StorefrontError):
    """Transactional email could not be sent. Never escalated past the caller."""
    error = "Notification failed"
