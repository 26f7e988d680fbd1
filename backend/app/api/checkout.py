"""Checkout API routes"""
from fastapi import APIRouter, Depends

from app.core.config import settings
from app.core.security import RateLimit
from app.db.redis import KVStore, get_kv_store
from app.schemas.checkout import CreateCheckoutSessionRequest
from app.services.checkout_service import create_checkout_session, get_checkout_session_status

router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post("/create-session", dependencies=[Depends(RateLimit("checkout", settings.RATE_LIMIT_CHECKOUT))])
def create_session(request: CreateCheckoutSessionRequest, store: KVStore = Depends(get_kv_store)):
    """Snapshot the cart and return a Stripe Checkout URL to redirect to"""
    frontend_url = settings.FRONTEND_URL
    payload = request.model_dump(by_alias=True)

    result = create_checkout_session(
        store,
        items=payload["items"],
        shipping=payload["shipping"],
        shipping_cost=request.shipping_cost,
        discount_percent=request.discount_percent,
        success_url=request.success_url or f"{frontend_url}/checkout/success",
        cancel_url=request.cancel_url or f"{frontend_url}/checkout",
    )
    return {"data": result}


@router.get("/session/{session_id}")
def get_session(session_id: str):
    """Checkout session status for the confirmation page"""
    return {"data": get_checkout_session_status(session_id)}
