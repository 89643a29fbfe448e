from fastapi import Depends, Request

from app.core.config import settings
from app.services.gateways.registry import GatewayRegistry
from app.services.order_store import OrderStore
from app.services.payment_session_service import PaymentSessionService
from app.services.reconciliation_service import ReconciliationEngine
from app.services.refund_service import RefundService
from app.services.side_effects import SideEffectDispatcher


def get_store() -> OrderStore:
    return OrderStore()


def get_gateways() -> GatewayRegistry:
    return GatewayRegistry.from_settings()


def get_dispatcher() -> SideEffectDispatcher:
    return SideEffectDispatcher()


def get_engine(
    store: OrderStore = Depends(get_store),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
) -> ReconciliationEngine:
    return ReconciliationEngine(store, dispatcher)


def get_session_service(
    store: OrderStore = Depends(get_store),
    gateways: GatewayRegistry = Depends(get_gateways),
) -> PaymentSessionService:
    return PaymentSessionService(store, gateways)


def get_refund_service(
    store: OrderStore = Depends(get_store),
    gateways: GatewayRegistry = Depends(get_gateways),
) -> RefundService:
    return RefundService(store, gateways)


def client_ip(request: Request) -> str:
    """Caller address as seen by the outermost trusted proxy.

    With N trusted hops the Nth X-Forwarded-For entry from the right is the
    address our own proxy recorded; entries to its left are caller-supplied.
    """
    peer = request.client.host if request.client else ""
    hops = settings.TRUSTED_PROXY_HOPS
    if hops <= 0:
        return peer
    chain = [h.strip() for h in (request.headers.get("x-forwarded-for") or "").split(",") if h.strip()]
    if len(chain) < hops:
        return peer
    return chain[-hops]
