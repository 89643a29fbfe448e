from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.core.errors import PriceValidationError, RecordNotFound
from app.models.order import Order
from app.schemas.orders import OrderOut, TourOrderCreate
from app.services import order_service

router = APIRouter(tags=["orders"])


def _out(o: Order) -> OrderOut:
    return OrderOut(
        id=o.id,
        orderNumber=o.order_number,
        kind=o.kind.value,
        totalAmount=float(o.total_amount),
        currency=o.currency or "TJS",
        status=o.status,
        paymentStatus=o.payment_status,
        paymentMethod=o.payment_method,
    )


def _create(fn, db: Session, ref_id: int):
    try:
        order, created = fn(db, ref_id)
    except RecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PriceValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "created": created, "data": _out(order).model_dump()}


@router.post("/guide-hire/{request_id}/create-order")
def create_guide_hire_order(request_id: int, db: Session = Depends(get_db)):
    return _create(order_service.create_guide_hire_order, db, request_id)


@router.post("/transfers/{request_id}/create-order")
def create_transfer_order(request_id: int, db: Session = Depends(get_db)):
    return _create(order_service.create_transfer_order, db, request_id)


@router.post("/custom-tours/{custom_tour_order_id}/create-order")
def create_custom_tour_order(custom_tour_order_id: int, db: Session = Depends(get_db)):
    return _create(order_service.create_custom_tour_order, db, custom_tour_order_id)


@router.post("/tours/{tour_id}/create-order")
def create_tour_order(tour_id: int, body: TourOrderCreate, db: Session = Depends(get_db)):
    try:
        order = order_service.create_tour_order(
            db, tour_id,
            full_name=body.fullName,
            email=body.email,
            phone=body.phone,
            tour_date=body.tourDate,
            tourists=[t.model_dump() for t in body.tourists],
            wishes=body.wishes,
        )
    except RecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "created": True, "data": _out(order).model_dump()}


@router.get("/orders/{order_number}")
def get_order(order_number: str, db: Session = Depends(get_db)):
    o = db.execute(select(Order).where(Order.order_number == order_number)).scalar_one_or_none()
    if not o:
        raise HTTPException(status_code=404, detail="Order not found")
    return {"ok": True, "data": _out(o).model_dump()}
