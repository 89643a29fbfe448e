import logging
from dataclasses import dataclass

from app.core.errors import InvalidPaymentState, OrderNotFound
from app.models.order import Order
from app.services import payment_state
from app.services.gateways.base import SessionResult
from app.services.pricing_service import validate_order_price

logger = logging.getLogger(__name__)


@dataclass
class CreatedSession:
    order: Order
    gateway: str
    session: SessionResult
    amount_dirams: int


class PaymentSessionService:
    def __init__(self, store, gateways):
        self.store = store
        self.gateways = gateways

    def create(self, order_number: str, method: str) -> CreatedSession:
        """Revalidate the order price, open a gateway session and mark the order processing.

        The gateway is not contacted unless the price check passes.
        """
        order = self.store.get_by_number(order_number)
        if not order:
            raise OrderNotFound(order_number)
        current = payment_state.parse(order.payment_status)
        if current not in payment_state.SESSION_STARTABLE:
            raise InvalidPaymentState(f"Order {order.order_number} is already {order.payment_status}", order.payment_status)

        bundle = self.store.bundle(order.id)
        amount = validate_order_price(bundle)

        gateway = self.gateways.get(method)
        session = gateway.create_session(order, bundle.customer)

        if not self.store.mark_processing(order.id, gateway.name, session.session_ref):
            fresh = self.store.get(order.id)
            status = fresh.payment_status if fresh else order.payment_status
            raise InvalidPaymentState(f"Order {order.order_number} changed to {status} during checkout", status)
        logger.info("Checkout started for %s via %s (session %s)", order.order_number, gateway.name, session.session_ref)
        return CreatedSession(order=order, gateway=gateway.name, session=session, amount_dirams=amount)
