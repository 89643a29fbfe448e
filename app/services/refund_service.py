"""Admin refunds.

A refund is reserved (pending RefundLog row, order row locked) before the
gateway is called, so concurrent refunds size themselves against each other.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from app.core.errors import InvalidRefundAmount, RecordNotFound, RefundNotAllowed
from app.core.money import to_minor
from app.services.gateways.base import GatewayConnectionError, GatewayNotSupported, GatewayTimeout
from app.services.payment_state import PaymentStatus
from app.services.retry import with_retry

logger = logging.getLogger(__name__)


def compute_refund_amount(total, refunded_dirams: int, pending_dirams: int, requested_dirams: int | None) -> int:
    """Amount to refund in dirams: the request clamped to what is still refundable."""
    if requested_dirams is not None and requested_dirams <= 0:
        raise InvalidRefundAmount("Refund amount must be positive")
    remaining = to_minor(total) - int(refunded_dirams) - int(pending_dirams)
    if remaining <= 0:
        raise InvalidRefundAmount("Nothing left to refund on this order")
    amount = min(requested_dirams if requested_dirams is not None else remaining, remaining)
    if amount <= 0 or amount > remaining:
        raise InvalidRefundAmount(f"Refund amount must be between 0.01 and {Decimal(remaining) / 100:.2f} TJS")
    return amount


@dataclass
class RefundOutcome:
    refund_log_id: int
    amount_dirams: int
    payment_status: str


class RefundService:
    def __init__(self, store, gateways):
        self.store = store
        self.gateways = gateways

    def refund(self, order_id: int, amount: Decimal | None, reason: str, actor: str) -> RefundOutcome:
        requested = to_minor(amount) if amount is not None else None
        reservation = self.store.reserve_refund(order_id, requested, reason, actor)
        logger.info(
            "Refund %s reserved: order %s, %s dirams via %s",
            reservation.refund_log_id, reservation.order_number, reservation.amount_dirams, reservation.gateway,
        )
        order = self.store.get(order_id)
        try:
            try:
                gateway = self.gateways.get(reservation.gateway)
            except KeyError:
                raise GatewayNotSupported(f"No gateway for payment method {reservation.gateway!r}") from None
            # Only retry when the request provably never reached the provider
            result = with_retry(
                lambda: gateway.refund(order, reservation.amount_dirams),
                retry_on=(GatewayConnectionError,),
                label=f"refund {reservation.refund_log_id}",
            )
        except GatewayTimeout as e:
            # Outcome unknown; the row stays pending until an operator resolves it
            logger.error(
                "Refund %s for order %s timed out; outcome unknown, %s dirams stay reserved: %s",
                reservation.refund_log_id, reservation.order_number, reservation.amount_dirams, e,
            )
            self.store.hold_refund(reservation.refund_log_id, str(e), actor)
            raise
        except Exception as e:
            logger.error("Refund %s for order %s failed: %s", reservation.refund_log_id, reservation.order_number, e)
            self.store.fail_refund(reservation.refund_log_id, str(e), getattr(e, "raw", None), actor)
            raise

        status = self.store.complete_refund(reservation.refund_log_id, result.provider_ref, result.raw, actor)
        logger.info("Refund %s succeeded; order %s is now %s", reservation.refund_log_id, reservation.order_number, status.value)
        return RefundOutcome(
            refund_log_id=reservation.refund_log_id,
            amount_dirams=reservation.amount_dirams,
            payment_status=status.value,
        )

    def resolve(self, refund_log_id: int, succeeded: bool, provider_ref: str, note: str, actor: str) -> RefundOutcome:
        """Settle a pending refund whose gateway outcome was unknown, after checking the provider dashboard."""
        log = self.store.get_refund(refund_log_id)
        if not log:
            raise RecordNotFound("Refund", refund_log_id)
        if log.status != "pending":
            raise RefundNotAllowed(f"Refund {refund_log_id} is already {log.status}", log.status)
        if succeeded:
            status = self.store.complete_refund(refund_log_id, provider_ref, {"resolved_by": actor, "note": note}, actor)
        else:
            self.store.fail_refund(refund_log_id, note or "Resolved as not refunded", None, actor)
            status = PaymentStatus(self.store.get(log.order_id).payment_status)
        logger.info("Refund %s resolved by %s as %s", refund_log_id, actor, "success" if succeeded else "failed")
        return RefundOutcome(refund_log_id=refund_log_id, amount_dirams=log.amount_dirams, payment_status=status.value)
