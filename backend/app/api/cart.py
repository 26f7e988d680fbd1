"""Session cart API routes"""
from fastapi import APIRouter, Depends

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.core.security import RateLimit
from app.db.redis import KVStore, get_kv_store
from app.schemas.cart import CartSyncRequest
from app.services.cart_service import clear_cart, load_cart, sync_cart

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.post("/sync", dependencies=[Depends(RateLimit("cart", settings.RATE_LIMIT_CART))])
def sync_session_cart(request: CartSyncRequest, store: KVStore = Depends(get_kv_store)):
    """Mirror the client's cart for cross-device recovery"""
    result = sync_cart(store, request.session_token, request.cart)
    return {"data": result, "meta": {"ttl": settings.CART_SESSION_TTL}}


@router.get("/session/{session_token}")
def get_session_cart(session_token: str, store: KVStore = Depends(get_kv_store)):
    cart = load_cart(store, session_token)
    if cart is None:
        raise NotFoundError("Cart not found or expired")
    return {"data": {"sessionToken": session_token, "cart": cart}}


@router.delete("/session/{session_token}")
def delete_session_cart(session_token: str, store: KVStore = Depends(get_kv_store)):
    return {"data": clear_cart(store, session_token)}
