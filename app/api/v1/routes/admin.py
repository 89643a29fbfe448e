import logging

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_refund_service, get_store
from app.core.errors import InvalidRefundAmount, OrderNotFound, RecordNotFound, RefundNotAllowed
from app.core.money import to_minor
from app.schemas.payments import RefundListOut, RefundLogOut, RefundRequest, ResolveRefundRequest
from app.services.gateways.base import GatewayError, GatewayTimeout
from app.services.order_store import OrderStore
from app.services.refund_service import RefundService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])


@router.post("/admin/payments/refund")
def refund_payment(body: RefundRequest, svc: RefundService = Depends(get_refund_service)):
    actor = f"admin:{body.adminId}"
    try:
        outcome = svc.refund(body.orderId, body.amount, body.reason, actor)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Order not found")
    except RefundNotAllowed as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidRefundAmount as e:
        raise HTTPException(status_code=400, detail=str(e))
    except GatewayTimeout as e:
        raise HTTPException(
            status_code=504,
            detail=f"Refund outcome unknown ({e}); the amount stays reserved until the refund is resolved",
        )
    except GatewayError as e:
        logger.error("Refund for order %s failed at gateway: %s", body.orderId, e)
        raise HTTPException(status_code=502, detail=f"Refund failed at gateway: {e}")
    return {
        "ok": True,
        "refundLogId": outcome.refund_log_id,
        "amountDirams": outcome.amount_dirams,
        "newPaymentStatus": outcome.payment_status,
    }


@router.post("/admin/refunds/{refund_log_id}/resolve")
def resolve_refund(refund_log_id: int, body: ResolveRefundRequest, svc: RefundService = Depends(get_refund_service)):
    try:
        outcome = svc.resolve(refund_log_id, body.succeeded, body.providerRef, body.note, f"admin:{body.adminId}")
    except RecordNotFound:
        raise HTTPException(status_code=404, detail="Refund not found")
    except RefundNotAllowed as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {
        "ok": True,
        "refundLogId": outcome.refund_log_id,
        "amountDirams": outcome.amount_dirams,
        "newPaymentStatus": outcome.payment_status,
    }


@router.get("/admin/orders/{order_id}/refunds", response_model=RefundListOut)
def list_refunds(order_id: int, store: OrderStore = Depends(get_store)):
    order = store.get(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    refunded, pending = store.refund_totals(order_id)
    return RefundListOut(
        orderId=order.id,
        orderNumber=order.order_number,
        totalDirams=to_minor(order.total_amount),
        refundedDirams=refunded,
        pendingDirams=pending,
        paymentStatus=order.payment_status,
        items=[
            RefundLogOut(
                id=r.id,
                amountDirams=r.amount_dirams,
                status=r.status,
                reason=r.reason or "",
                processedBy=r.processed_by or "",
                gateway=r.gateway or "",
                providerRef=r.provider_ref or "",
                error=r.error,
                createdAt=r.created_at.isoformat() if r.created_at else "",
            )
            for r in store.list_refunds(order_id)
        ],
    )
