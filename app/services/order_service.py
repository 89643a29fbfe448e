"""Create payable Order snapshots from tours and customer requests."""
import re
import time
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import PriceValidationError, RecordNotFound
from app.models.custom_tour_order import CustomTourOrder
from app.models.customer import Customer
from app.models.guide_hire_request import GuideHireRequest
from app.models.order import Order, OrderKind
from app.models.tour import Tour
from app.models.transfer_request import TransferRequest
from app.services.audit_service import log_audit
from app.services.payment_state import PaymentStatus

PREFIXES = {
    OrderKind.TOUR: "TOUR",
    OrderKind.GUIDE_HIRE: "GUIDE",
    OrderKind.TRANSFER: "TRF",
    OrderKind.CUSTOM_TOUR: "CT",
}
# Numbers issued before the kind column existed
LEGACY_PREFIXES = {
    "GH": OrderKind.GUIDE_HIRE,
    "TR": OrderKind.TRANSFER,
    "BT": OrderKind.TOUR,
}

_NUMBER_RE = re.compile(r"^([A-Z]+)-")

CLOSED_REQUEST_STATUSES = {"rejected", "cancelled", "completed"}


def make_order_number(kind: OrderKind, ref_id: int, now_ms: int | None = None) -> str:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{PREFIXES[kind]}-{now_ms}-{ref_id}"


def kind_from_order_number(order_number: str) -> OrderKind | None:
    m = _NUMBER_RE.match((order_number or "").upper())
    if not m:
        return None
    prefix = m.group(1)
    for kind, p in PREFIXES.items():
        if p == prefix:
            return kind
    return LEGACY_PREFIXES.get(prefix)


def get_or_create_customer(db: Session, full_name: str, email: str, phone: str = "") -> Customer:
    email = (email or "").strip().lower()
    c = db.execute(select(Customer).where(Customer.email == email)).scalars().first()
    if c:
        if full_name and not c.full_name:
            c.full_name = full_name
        if phone and not c.phone:
            c.phone = phone
        return c
    c = Customer(full_name=full_name or "", email=email, phone=phone or "")
    db.add(c)
    db.flush()
    return c


def _existing(db: Session, column, ref_id: int) -> Order | None:
    """Latest order for a sub-request that can still be paid or already was. Declined orders are skipped."""
    return db.execute(
        select(Order)
        .where(column == ref_id, Order.payment_status != PaymentStatus.FAILED.value)
        .order_by(Order.id.desc())
    ).scalars().first()


def _new_order(db: Session, kind: OrderKind, ref_id: int, total: Decimal, customer: Customer, **fields) -> Order:
    order = Order(
        order_number=make_order_number(kind, ref_id),
        kind=kind,
        total_amount=Decimal(total).quantize(Decimal("0.01")),
        customer_id=customer.id,
        status="pending",
        payment_status="unpaid",
        **fields,
    )
    db.add(order)
    db.flush()
    log_audit(db, "customer", "order.created", "order", order.id, {
        "order_number": order.order_number,
        "kind": kind.value,
        "total_amount": str(order.total_amount),
    })
    return order


def create_guide_hire_order(db: Session, request_id: int) -> tuple[Order, bool]:
    """Returns (order, created). One live order per request; a declined one is replaced."""
    req = db.get(GuideHireRequest, request_id)
    if not req:
        raise RecordNotFound("Guide hire request", request_id)
    existing = _existing(db, Order.guide_hire_request_id, req.id)
    if existing:
        return existing, False
    if req.status in CLOSED_REQUEST_STATUSES:
        raise PriceValidationError(f"Guide hire request is {req.status}")
    if not req.total_price or Decimal(req.total_price) <= 0:
        raise PriceValidationError("Guide hire request has no price")
    customer = get_or_create_customer(db, req.tourist_name, req.tourist_email, req.tourist_phone)
    dates = req.selected_dates or []
    order = _new_order(
        db, OrderKind.GUIDE_HIRE, req.id, req.total_price, customer,
        guide_hire_request_id=req.id,
        tour_date=dates[0] if dates else "",
        wishes=req.comments or "",
    )
    db.commit()
    return order, True


def create_transfer_order(db: Session, request_id: int) -> tuple[Order, bool]:
    req = db.get(TransferRequest, request_id)
    if not req:
        raise RecordNotFound("Transfer request", request_id)
    existing = _existing(db, Order.transfer_request_id, req.id)
    if existing:
        return existing, False
    if req.status in CLOSED_REQUEST_STATUSES:
        raise PriceValidationError(f"Transfer request is {req.status}")
    price = req.final_price if req.final_price is not None else req.estimated_price
    if price is None or Decimal(price) <= 0:
        raise PriceValidationError("Transfer request has no price yet")
    customer = get_or_create_customer(db, req.full_name, req.email, req.phone)
    order = _new_order(
        db, OrderKind.TRANSFER, req.id, price, customer,
        transfer_request_id=req.id,
        tour_date=req.pickup_date or "",
        wishes=req.special_requests or "",
    )
    db.commit()
    return order, True


def create_custom_tour_order(db: Session, custom_tour_order_id: int) -> tuple[Order, bool]:
    cto = db.get(CustomTourOrder, custom_tour_order_id)
    if not cto:
        raise RecordNotFound("Custom tour order", custom_tour_order_id)
    existing = _existing(db, Order.custom_tour_order_id, cto.id)
    if existing:
        return existing, False
    if cto.status != "pending":
        raise PriceValidationError(f"Custom tour order is {cto.status}")
    if not cto.components:
        raise PriceValidationError("Custom tour order has no components")
    customer = get_or_create_customer(db, cto.full_name, cto.email, cto.phone)
    order = _new_order(
        db, OrderKind.CUSTOM_TOUR, cto.id, cto.total_price, customer,
        custom_tour_order_id=cto.id,
        tour_date=cto.tour_date or "",
    )
    cto.order_number = order.order_number
    db.commit()
    return order, True


def create_tour_order(db: Session, tour_id: int, full_name: str, email: str, phone: str,
                      tour_date: str, tourists: list[dict], wishes: str = "") -> Order:
    tour = db.get(Tour, tour_id)
    if not tour or not tour.is_active:
        raise RecordNotFound("Tour", tour_id)
    if not tourists:
        raise ValueError("At least one tourist is required")
    customer = get_or_create_customer(db, full_name, email, phone)
    total = Decimal(tour.price) * len(tourists)
    # Tour orders have no per-request source to anchor the number; the customer id keeps it unique per ms
    order = _new_order(
        db, OrderKind.TOUR, customer.id, total, customer,
        tour_id=tour.id,
        tour_date=tour_date or "",
        tourists=tourists,
        wishes=wishes or "",
    )
    db.commit()
    return order
