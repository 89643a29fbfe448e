"""Apply gateway-reported payment outcomes to orders exactly once."""
import logging
from dataclasses import dataclass

from app.core.errors import OrderNotFound
from app.models.order import Order
from app.services import payment_state
from app.services.gateways.base import GatewayAdapter, GatewayTransientError, StatusResult
from app.services.payment_state import PaymentStatus
from app.services.retry import with_retry

logger = logging.getLogger(__name__)

APPLIED = "applied"
DUPLICATE = "duplicate"
IGNORED = "ignored"


@dataclass
class ReconcileResult:
    order_id: int
    outcome: str  # applied | duplicate | ignored
    payment_status: str

    @property
    def applied(self) -> bool:
        return self.outcome == APPLIED


class ReconciliationEngine:
    def __init__(self, store, dispatcher):
        self.store = store
        self.dispatcher = dispatcher

    def reconcile(
        self,
        order_id: int,
        incoming: PaymentStatus | None,
        transaction_ref: str | None = None,
        source: str = "gateway",
        raw_status: str | None = None,
    ) -> ReconcileResult:
        """Move the order to `incoming` if that is a legal next step.

        `incoming` is None when the gateway reported something outside its
        vocabulary; that is recorded and ignored.
        """
        order = self.store.get(order_id)
        if not order:
            raise OrderNotFound(order_id)
        current = payment_state.parse(order.payment_status)

        if incoming is None:
            logger.warning("Order %s: unknown status %r from %s ignored", order.order_number, raw_status, source)
            self.store.record_event(order.id, source, "payment.status_ignored", {"raw_status": raw_status, "reason": "unknown"})
            return ReconcileResult(order.id, IGNORED, order.payment_status)

        if payment_state.is_duplicate(current, incoming):
            logger.info("Order %s already %s; duplicate from %s", order.order_number, current.value, source)
            return ReconcileResult(order.id, DUPLICATE, order.payment_status)
        if current == incoming:
            # Non-terminal repeat (processing, partially_refunded); only refunds move partially_refunded
            logger.info("Order %s still %s; repeat from %s", order.order_number, current.value, source)
            return ReconcileResult(order.id, DUPLICATE, order.payment_status)

        if current is None or not payment_state.can_transition(current, incoming):
            logger.warning(
                "Order %s: %s -> %s not allowed (from %s); ignored",
                order.order_number, order.payment_status, incoming.value, source,
            )
            self.store.record_event(order.id, source, "payment.status_ignored", {
                "raw_status": raw_status,
                "from": order.payment_status,
                "to": incoming.value,
                "reason": "illegal_transition",
            })
            return ReconcileResult(order.id, IGNORED, order.payment_status)

        applied = self.store.apply_transition(
            order.id, incoming, transaction_ref=transaction_ref, actor=source,
            details={"from": current.value, "raw_status": raw_status},
        )
        if not applied:
            fresh = self.store.get(order.id)
            logger.info("Order %s: concurrent delivery won the %s transition", order.order_number, incoming.value)
            return ReconcileResult(order.id, DUPLICATE, fresh.payment_status if fresh else order.payment_status)

        logger.info("Order %s: %s -> %s (%s)", order.order_number, current.value, incoming.value, source)
        if incoming == PaymentStatus.PAID:
            self.dispatcher.payment_confirmed(order.id)
        return ReconcileResult(order.id, APPLIED, incoming.value)

    def poll_and_reconcile(self, order: Order, gateway: GatewayAdapter) -> ReconcileResult:
        """Ask the gateway for the authoritative status, then reconcile. Transient errors are retried."""
        status: StatusResult = with_retry(
            lambda: gateway.poll_status(order),
            retry_on=(GatewayTransientError,),
            label=f"{gateway.name} status poll for {order.order_number}",
        )
        return self.reconcile(
            order.id, status.status, transaction_ref=status.transaction_ref,
            source=f"gateway:{gateway.name}", raw_status=status.raw_status,
        )
