"""Work that runs in the Celery worker (or inline when CELERY_TASK_ALWAYS_EAGER is set)."""
import logging

from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal
from app.models.order import OrderKind
from app.services.email_service import process_pending_emails
from app.services.gateways.base import GatewayError
from app.services.gateways.registry import GatewayRegistry
from app.services.notification_service import notify_payment_confirmed
from app.services.order_store import OrderStore
from app.services.reconciliation_service import ReconciliationEngine
from app.services.retry import with_retry
from app.services.side_effects import SideEffectDispatcher

logger = logging.getLogger(__name__)


def handle_payment_confirmed(order_id: int, store: OrderStore | None = None) -> dict:
    """Booking, sub-request status and emails for a freshly paid order.

    Every step is idempotent and failures are logged per step; the payment
    transition that triggered this is already committed.
    """
    store = store or OrderStore()
    done = {"order_id": order_id, "booking": None, "sub_request": False, "emails": 0}

    bundle = store.bundle(order_id)
    order = bundle.order

    if order.kind == OrderKind.TOUR:
        try:
            booking, created = with_retry(
                lambda: store.ensure_booking(order_id),
                retry_on=(OperationalError,),
                label=f"booking for {order.order_number}",
            )
            done["booking"] = booking.booking_ref
        except Exception:
            logger.exception("Booking creation failed for order %s", order.order_number)

    try:
        store.mark_sub_request_paid(order_id)
        done["sub_request"] = True
    except Exception:
        logger.exception("Sub-request update failed for order %s", order.order_number)

    db: Session = store.session_factory()
    try:
        done["emails"] = len(notify_payment_confirmed(db, bundle))
    except Exception:
        db.rollback()
        logger.exception("Payment notifications failed for order %s", order.order_number)
    finally:
        db.close()
    return done


def process_email_queue(limit: int = 50) -> dict:
    """Process queued/failed emails (retry send). Run periodically via Celery beat."""
    db: Session = SessionLocal()
    try:
        try:
            return process_pending_emails(db, limit=limit)
        except ProgrammingError:
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        db.close()


def reconcile_stale_payments(store: OrderStore | None = None, gateways: GatewayRegistry | None = None) -> dict:
    """Poll Payler for orders whose callback never arrived."""
    store = store or OrderStore()
    gateways = gateways or GatewayRegistry.from_settings()
    gateway = gateways.get("payler")
    if not gateway.configured:
        return {"skipped": True, "reason": "payler_not_configured"}
    engine = ReconciliationEngine(store, SideEffectDispatcher())

    try:
        stale = store.list_stale_processing("payler", settings.RECONCILE_STALE_MINUTES)
    except ProgrammingError:
        return {"skipped": True, "reason": "missing_tables"}

    counts = {"checked": len(stale), "applied": 0, "errors": 0}
    for order in stale:
        try:
            if engine.poll_and_reconcile(order, gateway).applied:
                counts["applied"] += 1
        except GatewayError as e:
            counts["errors"] += 1
            logger.warning("Stale check for %s failed: %s", order.order_number, e)
    return counts
