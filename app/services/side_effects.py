import logging

logger = logging.getLogger(__name__)


class SideEffectDispatcher:
    """Hands post-payment work to Celery. Never raises into the caller."""

    def payment_confirmed(self, order_id: int) -> None:
        from app.tasks.jobs import payment_confirmed

        try:
            payment_confirmed.delay(order_id)
        except Exception:
            # Broker down; the paid transition is already committed
            logger.exception("Could not enqueue payment_confirmed for order %s", order_id)
