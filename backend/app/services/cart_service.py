"""Session cart store: a TTL-bounded, cross-device mirror of the client's cart"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.db.redis import CART_PREFIX, KVStore, get_json, set_json

logger = logging.getLogger(__name__)

SESSION_TOKEN_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE
)


def validate_session_token(session_token: Optional[str]) -> str:
    if not session_token:
        raise ValidationError("Session token is required")
    if not SESSION_TOKEN_RE.match(session_token):
        raise ValidationError("Session token must be a valid UUID")
    return session_token


def _cart_key(session_token: str) -> str:
    return f"{CART_PREFIX}{session_token}"


def sync_cart(store: KVStore, session_token: str, cart: Dict[str, Any]) -> Dict[str, Any]:
    """Overwrite the stored cart and restart its TTL. Last writer wins."""
    validate_session_token(session_token)
    if cart is None:
        raise ValidationError("sessionToken and cart are required")

    ttl = settings.CART_SESSION_TTL
    set_json(store, _cart_key(session_token), cart, ttl)
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)

    items = cart.get("items")
    item_count = len(items) if isinstance(items, list) else 0
    logger.debug(f"Cart synced for session {session_token} ({item_count} items)")
    return {
        "sessionToken": session_token,
        "synced": True,
        "expiresAt": expires_at.isoformat(),
    }


def load_cart(store: KVStore, session_token: str) -> Optional[Dict[str, Any]]:
    """Return the stored cart, or None if it was never synced or has expired.

    Reading does not extend the TTL. An empty cart is returned as-is, not as None.
    """
    validate_session_token(session_token)
    return get_json(store, _cart_key(session_token))


def clear_cart(store: KVStore, session_token: str) -> Dict[str, Any]:
    validate_session_token(session_token)
    store.delete(_cart_key(session_token))
    logger.debug(f"Cart cleared for session {session_token}")
    return {"sessionToken": session_token, "cleared": True}
