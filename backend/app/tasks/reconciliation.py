"""Background sweep for Printful drafts that never made it into the ledger

A crash between draft creation and the ledger write (or a redelivery racing
the first delivery) leaves a draft at Printful with no local Order. This sweep
only reports them; cancelling is left to a human.
"""
import asyncio
import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import reconciliation_logger
from app.core.metrics import orphaned_drafts_gauge, reconciliation_runs_counter
from app.db.session import SessionLocal
from app.models.order import Order
from app.services.printful_service import PrintfulClient, get_printful_client

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


def find_orphaned_drafts(db: Session, printful: PrintfulClient) -> List[Dict[str, Any]]:
    """Printful orders still in draft whose external_id has no local Order"""
    orphans = []
    offset = 0
    while True:
        page = printful.list_orders(limit=PAGE_SIZE, offset=offset)
        drafts = [o for o in page if o.get("status") == "draft" and o.get("external_id")]
        if drafts:
            external_ids = [o["external_id"] for o in drafts]
            known = {
                row.id for row in db.query(Order.id).filter(Order.id.in_(external_ids)).all()
            }
            orphans.extend(o for o in drafts if o["external_id"] not in known)
        if len(page) < PAGE_SIZE:
            break
        offset += PAGE_SIZE
    return orphans


def run_reconciliation() -> List[Dict[str, Any]]:
    """One sweep with its own session. Logs every orphan for manual follow-up."""
    db = SessionLocal()
    try:
        orphans = find_orphaned_drafts(db, get_printful_client())
    finally:
        db.close()

    orphaned_drafts_gauge.set(len(orphans))
    for orphan in orphans:
        reconciliation_logger.warning(
            f"Orphaned Printful draft {orphan.get('id')} for external id {orphan.get('external_id')}"
        )
    reconciliation_logger.info(f"Reconciliation sweep complete: {len(orphans)} orphaned drafts")
    return orphans


async def reconciliation_task():
    """Run the sweep every RECONCILIATION_INTERVAL_SECONDS until cancelled"""
    interval = settings.RECONCILIATION_INTERVAL_SECONDS
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(run_reconciliation)
            reconciliation_runs_counter.labels(status="success").inc()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reconciliation_runs_counter.labels(status="failed").inc()
            logger.error(f"Reconciliation sweep failed: {e}", exc_info=True)
