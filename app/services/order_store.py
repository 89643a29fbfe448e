"""Order persistence used by the payment services.

Every public method opens and commits its own session from the injected
factory, so the engine and the Celery worker can share one store instance.
Returned ORM objects are detached (the factory uses expire_on_commit=False).
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import OrderNotFound, RefundNotAllowed
from app.core.money import to_minor
from app.db.session import SessionLocal
from app.models.booking import Booking
from app.models.custom_tour_component import CustomTourComponent
from app.models.custom_tour_order import CustomTourOrder
from app.models.customer import Customer
from app.models.guide import Guide
from app.models.guide_hire_request import GuideHireRequest
from app.models.order import Order, OrderKind
from app.models.refund_log import RefundLog
from app.models.tour import Tour
from app.models.transfer_request import TransferRequest
from app.services import payment_state
from app.services.audit_service import log_audit
from app.services.order_service import kind_from_order_number
from app.services.payment_state import PaymentStatus
from app.services.refund_service import compute_refund_amount

logger = logging.getLogger(__name__)


@dataclass
class OrderBundle:
    """An order with the records its price and notifications are derived from."""
    order: Order
    customer: Customer | None = None
    tour: Tour | None = None
    guide_hire_request: GuideHireRequest | None = None
    guide: Guide | None = None
    transfer_request: TransferRequest | None = None
    custom_tour_order: CustomTourOrder | None = None
    # Active components keyed by id; frozen ids missing here no longer resolve
    components: dict[int, CustomTourComponent] = field(default_factory=dict)


@dataclass
class RefundReservation:
    refund_log_id: int
    order_id: int
    order_number: str
    amount_dirams: int
    gateway: str
    payment_intent_id: str | None


def _component_ids(frozen) -> list[int]:
    """Ids from frozen component entries; malformed entries are left for the price check to reject."""
    ids = []
    for item in frozen or []:
        try:
            ids.append(int(item["id"]))
        except (KeyError, TypeError, ValueError):
            continue
    return ids


class OrderStore:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def session(self):
        db: Session = self.session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # -- reads ---------------------------------------------------------------

    def get(self, order_id: int) -> Order | None:
        with self.session() as db:
            return db.get(Order, order_id)

    def get_by_number(self, order_number: str) -> Order | None:
        with self.session() as db:
            return db.execute(select(Order).where(Order.order_number == order_number)).scalar_one_or_none()

    def resolve(self, ref) -> Order | None:
        """Look an order up by the reference a gateway echoes back.

        Prefixed references (current or legacy, any case) are display numbers;
        bare digits are the numeric id sent to providers.
        """
        ref = str(ref or "").strip()
        if not ref:
            return None
        if kind_from_order_number(ref) is not None:
            return self.get_by_number(ref.upper())
        if ref.isdigit():
            return self.get(int(ref))
        return self.get_by_number(ref)

    def bundle(self, order_id: int) -> OrderBundle:
        with self.session() as db:
            order = db.get(Order, order_id)
            if not order:
                raise OrderNotFound(order_id)
            b = OrderBundle(order=order)
            if order.customer_id:
                b.customer = db.get(Customer, order.customer_id)
            if order.tour_id:
                b.tour = db.get(Tour, order.tour_id)
            if order.guide_hire_request_id:
                b.guide_hire_request = db.get(GuideHireRequest, order.guide_hire_request_id)
                if b.guide_hire_request:
                    b.guide = db.get(Guide, b.guide_hire_request.guide_id)
            if order.transfer_request_id:
                b.transfer_request = db.get(TransferRequest, order.transfer_request_id)
            if order.custom_tour_order_id:
                b.custom_tour_order = db.get(CustomTourOrder, order.custom_tour_order_id)
                if b.custom_tour_order:
                    ids = _component_ids(b.custom_tour_order.components)
                    if ids:
                        rows = db.execute(
                            select(CustomTourComponent).where(
                                CustomTourComponent.id.in_(ids), CustomTourComponent.is_active.is_(True)
                            )
                        ).scalars().all()
                        b.components = {r.id: r for r in rows}
            return b

    def list_refunds(self, order_id: int) -> list[RefundLog]:
        with self.session() as db:
            return list(
                db.execute(
                    select(RefundLog).where(RefundLog.order_id == order_id).order_by(RefundLog.id.asc())
                ).scalars().all()
            )

    def refund_totals(self, order_id: int) -> tuple[int, int]:
        """(succeeded, pending) refund amounts in dirams."""
        with self.session() as db:
            return self._refund_totals(db, order_id)

    @staticmethod
    def _refund_totals(db: Session, order_id: int) -> tuple[int, int]:
        rows = db.execute(
            select(RefundLog.status, func.coalesce(func.sum(RefundLog.amount_dirams), 0))
            .where(RefundLog.order_id == order_id, RefundLog.status.in_(["success", "pending"]))
            .group_by(RefundLog.status)
        ).all()
        totals = {status: int(total) for status, total in rows}
        return totals.get("success", 0), totals.get("pending", 0)

    def list_stale_processing(self, payment_method: str, older_than_minutes: int, limit: int = 50) -> list[Order]:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
        with self.session() as db:
            return list(
                db.execute(
                    select(Order)
                    .where(
                        Order.payment_status == PaymentStatus.PROCESSING.value,
                        Order.payment_method == payment_method,
                        Order.updated_at < cutoff,
                    )
                    .order_by(Order.updated_at.asc())
                    .limit(limit)
                ).scalars().all()
            )

    # -- payment status writes ----------------------------------------------

    def mark_processing(self, order_id: int, payment_method: str, payment_intent_id: str, actor: str = "customer") -> bool:
        """Record a freshly created gateway session. False if the order already took money."""
        startable = sorted(s.value for s in payment_state.SESSION_STARTABLE)
        with self.session() as db:
            res = db.execute(
                update(Order)
                .where(Order.id == order_id, Order.payment_status.in_(startable))
                .execution_options(synchronize_session=False)
                .values(
                    payment_status=PaymentStatus.PROCESSING.value,
                    payment_method=payment_method,
                    payment_intent_id=payment_intent_id,
                )
            )
            if res.rowcount != 1:
                db.rollback()
                return False
            log_audit(db, actor, "payment.session_created", "order", order_id, {
                "payment_method": payment_method,
                "payment_intent_id": payment_intent_id,
            })
            db.commit()
            return True

    def apply_transition(
        self,
        order_id: int,
        target: PaymentStatus,
        transaction_ref: str | None = None,
        actor: str = "system",
        details: dict | None = None,
    ) -> bool:
        """Move payment_status to `target` if the row is still in a legal predecessor.

        One conditional UPDATE plus the audit row, committed together. Returns
        False when no row matched, i.e. a concurrent delivery already moved it.
        """
        values = {"payment_status": target.value}
        business_status = payment_state.ORDER_STATUS_FOR.get(target)
        if business_status:
            values["status"] = business_status
        if transaction_ref:
            values["payment_intent_id"] = transaction_ref

        with self.session() as db:
            res = db.execute(
                update(Order)
                .where(Order.id == order_id, Order.payment_status.in_(payment_state.predecessors(target)))
                .execution_options(synchronize_session=False)
                .values(**values)
            )
            if res.rowcount != 1:
                db.rollback()
                return False
            log_audit(db, actor, "payment.transition", "order", order_id, {
                "to": target.value,
                "transaction_ref": transaction_ref,
                **(details or {}),
            })
            db.commit()
            return True

    # -- refunds ---------------------------------------------------------------

    def reserve_refund(
        self,
        order_id: int,
        requested_dirams: int | None,
        reason: str,
        processed_by: str,
    ) -> RefundReservation:
        """Lock the order, size the refund against what is left and insert a pending row."""
        with self.session() as db:
            # Write first so the row lock is held before totals are read; SQLite ignores FOR UPDATE
            db.execute(
                update(Order)
                .where(Order.id == order_id)
                .execution_options(synchronize_session=False)
                .values(updated_at=datetime.now(timezone.utc))
            )
            order = db.execute(select(Order).where(Order.id == order_id).with_for_update()).scalar_one_or_none()
            if not order:
                raise OrderNotFound(order_id)
            current = payment_state.parse(order.payment_status)
            if current not in payment_state.REFUNDABLE:
                raise RefundNotAllowed(
                    f"Order {order.order_number} cannot be refunded in status {order.payment_status}",
                    order.payment_status,
                )
            refunded, pending = self._refund_totals(db, order_id)
            amount = compute_refund_amount(order.total_amount, refunded, pending, requested_dirams)

            log = RefundLog(
                order_id=order_id,
                amount_dirams=amount,
                status="pending",
                reason=reason or "",
                processed_by=processed_by or "",
                gateway=order.payment_method or "",
            )
            db.add(log)
            db.flush()
            log_audit(db, processed_by or "system", "refund.reserved", "order", order_id, {
                "refund_log_id": log.id,
                "amount_dirams": amount,
                "already_refunded": refunded,
                "pending": pending,
            })
            db.commit()
            return RefundReservation(
                refund_log_id=log.id,
                order_id=order.id,
                order_number=order.order_number,
                amount_dirams=amount,
                gateway=order.payment_method or "",
                payment_intent_id=order.payment_intent_id,
            )

    def complete_refund(self, refund_log_id: int, provider_ref: str, raw: dict | None, actor: str) -> PaymentStatus:
        with self.session() as db:
            log = db.get(RefundLog, refund_log_id)
            order = db.execute(select(Order).where(Order.id == log.order_id).with_for_update()).scalar_one()
            log.status = "success"
            log.provider_ref = provider_ref or ""
            log.raw_response = raw
            db.flush()

            refunded, _ = self._refund_totals(db, order.id)
            target = PaymentStatus.REFUNDED if refunded >= to_minor(order.total_amount) else PaymentStatus.PARTIALLY_REFUNDED
            res = db.execute(
                update(Order)
                .where(Order.id == order.id, Order.payment_status.in_(payment_state.predecessors(target)))
                .execution_options(synchronize_session=False)
                .values(payment_status=target.value)
            )
            if res.rowcount != 1:
                # Money already left; keep the log row and flag the order for manual review
                logger.error("Refund %s succeeded but order %s could not move to %s", refund_log_id, order.id, target.value)
            log_audit(db, actor, "refund.success", "order", order.id, {
                "refund_log_id": refund_log_id,
                "amount_dirams": log.amount_dirams,
                "refunded_total": refunded,
                "payment_status": target.value,
            })
            db.commit()
            return target

    def get_refund(self, refund_log_id: int) -> RefundLog | None:
        with self.session() as db:
            return db.get(RefundLog, refund_log_id)

    def hold_refund(self, refund_log_id: int, error: str, actor: str) -> None:
        """Outcome unknown: the row stays pending and keeps its amount reserved until resolved."""
        with self.session() as db:
            log = db.get(RefundLog, refund_log_id)
            log.error = (error or "")[:2000]
            log_audit(db, actor, "refund.outcome_unknown", "order", log.order_id, {
                "refund_log_id": refund_log_id,
                "amount_dirams": log.amount_dirams,
                "error": log.error,
            })
            db.commit()

    def fail_refund(self, refund_log_id: int, error: str, raw: dict | None, actor: str) -> None:
        with self.session() as db:
            log = db.get(RefundLog, refund_log_id)
            log.status = "failed"
            log.error = (error or "")[:2000]
            log.raw_response = raw
            log_audit(db, actor, "refund.failed", "order", log.order_id, {
                "refund_log_id": refund_log_id,
                "error": log.error,
            })
            db.commit()

    # -- side-effect writes --------------------------------------------------

    def ensure_booking(self, order_id: int) -> tuple[Booking, bool]:
        """Create the Booking for a paid tour order once. Returns (booking, created)."""
        with self.session() as db:
            existing = db.execute(select(Booking).where(Booking.order_id == order_id)).scalar_one_or_none()
            if existing:
                return existing, False
            order = db.get(Order, order_id)
            if not order:
                raise OrderNotFound(order_id)
            booking = Booking(
                order_id=order.id,
                booking_ref=f"BK-{order.order_number}",
                tour_id=order.tour_id,
                customer_id=order.customer_id,
                tour_date=order.tour_date or "",
                number_of_tourists=max(1, len(order.tourists or [])),
                total_price=order.total_amount,
                status="confirmed",
            )
            db.add(booking)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                existing = db.execute(select(Booking).where(Booking.order_id == order_id)).scalar_one()
                return existing, False
            logger.info("Booking %s created for order %s", booking.booking_ref, order.order_number)
            return booking, True

    def mark_sub_request_paid(self, order_id: int) -> None:
        with self.session() as db:
            order = db.get(Order, order_id)
            if not order:
                raise OrderNotFound(order_id)
            if order.kind == OrderKind.GUIDE_HIRE and order.guide_hire_request_id:
                req = db.get(GuideHireRequest, order.guide_hire_request_id)
                if req:
                    req.status = "confirmed"
                    req.payment_status = PaymentStatus.PAID.value
            elif order.kind == OrderKind.CUSTOM_TOUR and order.custom_tour_order_id:
                cto = db.get(CustomTourOrder, order.custom_tour_order_id)
                if cto:
                    cto.status = "paid"
            db.commit()

    def record_event(self, order_id: int, actor: str, action: str, details: dict | None = None) -> None:
        with self.session() as db:
            log_audit(db, actor, action, "order", order_id, details)
            db.commit()
