from __future__ import annotations
import json
import logging
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from app.api.deps import client_ip, get_engine, get_gateways, get_session_service, get_store
from app.core.config import settings
from app.core.errors import (
    InvalidPaymentState,
    InvalidSignature,
    OrderNotFound,
    PriceMismatch,
    PriceValidationError,
    SourceNotAllowed,
)
from app.schemas.payments import AlifCallback, CreateSessionRequest, VerifyPaymentRequest
from app.services.gateways.alif import AlifGateway
from app.services.gateways.base import GatewayAdapter, GatewayError, source_ip_allowed
from app.services.gateways.registry import GatewayRegistry
from app.services.order_store import OrderStore
from app.services.payment_session_service import PaymentSessionService
from app.services.payment_state import PaymentStatus
from app.services.reconciliation_service import ReconciliationEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


def _reject(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "detail": detail})


def _price_mismatch(e: PriceMismatch) -> JSONResponse:
    return JSONResponse(status_code=400, content={
        "ok": False,
        "detail": str(e),
        "expectedPrice": float(e.expected),
        "currentPrice": float(e.current),
    })


def _create_session(svc: PaymentSessionService, order_number: str, method: str):
    try:
        return svc.create(order_number, method)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    except InvalidPaymentState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except GatewayError as e:
        logger.error("%s session for %s failed: %s", method, order_number, e)
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/payments/alif/create")
def alif_create(body: CreateSessionRequest, svc: PaymentSessionService = Depends(get_session_service)):
    try:
        created = _create_session(svc, body.orderNumber, "alif")
    except PriceMismatch as e:
        return _price_mismatch(e)
    except PriceValidationError as e:
        return _reject(400, str(e))
    s = created.session
    return {
        "ok": True,
        "data": {
            "method": s.method,
            "action": s.redirect_url,
            "formData": s.form_fields,
            "orderNumber": created.order.order_number,
        },
    }


@router.post("/payments/payler/create")
def payler_create(body: CreateSessionRequest, svc: PaymentSessionService = Depends(get_session_service)):
    try:
        created = _create_session(svc, body.orderNumber, "payler")
    except PriceMismatch as e:
        return _price_mismatch(e)
    except PriceValidationError as e:
        return _reject(400, str(e))
    return {
        "ok": True,
        "data": {
            "sessionId": created.session.session_ref,
            "paymentUrl": created.session.redirect_url,
            "orderNumber": created.order.order_number,
            "amountDirams": created.amount_dirams,
        },
    }


@router.get("/payments/methods")
def payment_methods(gateways: GatewayRegistry = Depends(get_gateways)):
    configured = set(gateways.configured())
    return {
        "ok": True,
        "data": [{"id": name, "enabled": name in configured} for name in gateways.names()],
    }


@router.post("/payments/verify")
def verify_payment(
    body: VerifyPaymentRequest,
    store: OrderStore = Depends(get_store),
    gateways: GatewayRegistry = Depends(get_gateways),
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Customer landed on the return page: if we are still waiting on the gateway, ask it directly."""
    order = store.get_by_number(body.orderNumber)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    status = order.payment_status
    if status == PaymentStatus.PROCESSING.value and order.payment_method:
        try:
            gateway = gateways.get(order.payment_method)
            status = engine.poll_and_reconcile(order, gateway).payment_status
        except (GatewayError, KeyError) as e:
            # Alif cannot be polled; callers keep showing "processing"
            logger.info("Verify %s: gateway status unavailable: %s", order.order_number, e)
    return {"ok": True, "orderNumber": order.order_number, "paymentStatus": status}


async def _read_payload(request: Request) -> dict:
    """Gateways post either form-encoded or JSON bodies."""
    raw = await request.body()
    if not raw:
        return {}
    ctype = (request.headers.get("content-type") or "").lower()
    if "application/json" in ctype:
        data = json.loads(raw.decode("utf-8") or "{}")
        return data if isinstance(data, dict) else {}
    return {k: v[0] for k, v in parse_qs(raw.decode("utf-8"), keep_blank_values=True).items()}


def _check_source(gateway: GatewayAdapter, ip: str) -> None:
    if source_ip_allowed(ip, gateway.callback_ips()):
        return
    if settings.is_production:
        raise SourceNotAllowed(f"{gateway.name} callback from {ip or 'unknown address'} is not allow-listed")
    logger.warning("%s callback from unexpected IP %s (allowed outside production)", gateway.name, ip)


def _handle_alif(payload: dict, ip: str, store: OrderStore, gateway: AlifGateway, engine: ReconciliationEngine):
    cb = AlifCallback(**{k: payload.get(k) for k in ("orderId", "status", "transactionId", "token")})
    _check_source(gateway, ip)
    if not cb.orderId:
        return _reject(400, "Missing orderId")
    if gateway.cfg.verify_callbacks and not gateway.verify_callback(
        str(cb.orderId), str(cb.status or ""), str(cb.transactionId or ""), cb.token
    ):
        raise InvalidSignature(f"Alif callback for {cb.orderId} has an invalid token")

    order = store.resolve(cb.orderId)
    if not order:
        raise OrderNotFound(cb.orderId)

    result = engine.reconcile(
        order.id,
        gateway.map_status(cb.status),
        transaction_ref=cb.transactionId or None,
        source="gateway:alif",
        raw_status=cb.status,
    )
    return {"ok": True, "result": result.outcome, "paymentStatus": result.payment_status}


def _handle_payler(payload: dict, ip: str, store: OrderStore, gateway: GatewayAdapter, engine: ReconciliationEngine):
    _check_source(gateway, ip)
    order_ref = payload.get("order_id")
    if not order_ref:
        return _reject(400, "Missing order_id")

    # Look the order up before spending a GetStatus call on it
    order = store.resolve(order_ref)
    if not order:
        raise OrderNotFound(order_ref)

    try:
        result = engine.poll_and_reconcile(order, gateway)
    except GatewayError as e:
        # 2xx so Payler does not hammer us; the stale-payment job polls again later
        logger.error("Payler status for %s unavailable: %s", order.order_number, e)
        return {"ok": False, "detail": "Failed to retrieve status", "paymentStatus": order.payment_status}
    return {"ok": True, "result": result.outcome, "paymentStatus": result.payment_status}


async def _run_callback(name: str, handler, request: Request, *args):
    """Run a sync callback handler; domain rejections become non-2xx, anything else is acknowledged."""
    try:
        payload = await _read_payload(request)
        return await run_in_threadpool(handler, payload, client_ip(request), *args)
    except SourceNotAllowed as e:
        logger.warning("%s", e)
        return _reject(403, "Source not allowed")
    except InvalidSignature as e:
        logger.warning("%s", e)
        return _reject(401, "Invalid signature")
    except OrderNotFound as e:
        logger.warning("%s callback for unknown order %s", name, e.ref)
        return _reject(404, "Order not found")
    except Exception:
        logger.exception("Unhandled error in %s callback", name)
        return {"ok": False, "detail": "Callback accepted"}


@router.post("/payments/alif/callback")
async def alif_callback(
    request: Request,
    store: OrderStore = Depends(get_store),
    gateways: GatewayRegistry = Depends(get_gateways),
    engine: ReconciliationEngine = Depends(get_engine),
):
    return await _run_callback("Alif", _handle_alif, request, store, gateways.get("alif"), engine)


@router.post("/payments/payler/callback")
async def payler_callback(
    request: Request,
    store: OrderStore = Depends(get_store),
    gateways: GatewayRegistry = Depends(get_gateways),
    engine: ReconciliationEngine = Depends(get_engine),
):
    return await _run_callback("Payler", _handle_payler, request, store, gateways.get("payler"), engine)
