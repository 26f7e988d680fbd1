"""Provider webhook routes (Stripe, Printful)"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.db.redis import KVStore, get_kv_store
from app.db.session import get_db
from app.services.fulfillment_service import process_fulfillment_webhook, verify_printful_signature
from app.services.order_service import process_payment_webhook
from app.services.printful_service import PrintfulClient, get_printful_client

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    store: KVStore = Depends(get_kv_store),
    printful: PrintfulClient = Depends(get_printful_client)
):
    """Handle Stripe webhook events

    The body must reach signature verification as the exact raw bytes Stripe signed.
    Processing blocks on Printful and the database, so it runs in the threadpool.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    return await run_in_threadpool(process_payment_webhook, payload, sig_header, db, store, printful)


@router.post("/printful")
async def printful_webhook(
    request: Request,
    db: Session = Depends(get_db),
    store: KVStore = Depends(get_kv_store)
):
    """Handle Printful webhook events"""
    payload = await request.body()
    verify_printful_signature(payload, request.headers.get("X-PF-Webhook-Signature"))

    try:
        event = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.error("Invalid Printful webhook payload")
        raise ValidationError("Invalid payload")

    return await run_in_threadpool(process_fulfillment_webhook, event, db, store)
