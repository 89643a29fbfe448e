"""Customer and admin emails sent after a payment is confirmed."""
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.order import OrderKind
from app.services.email_service import queue_email
from app.services.order_store import OrderBundle

KIND_LABELS = {
    OrderKind.TOUR: "Tour booking",
    OrderKind.GUIDE_HIRE: "Guide hire",
    OrderKind.TRANSFER: "Transfer",
    OrderKind.CUSTOM_TOUR: "Custom tour",
}


def _describe(b: OrderBundle) -> list[str]:
    lines = []
    if b.tour:
        lines.append(f"Tour: {b.tour.title}")
    if b.guide:
        lines.append(f"Guide: {b.guide.name}")
    if b.guide_hire_request:
        dates = ", ".join(b.guide_hire_request.selected_dates or [])
        lines.append(f"Days: {b.guide_hire_request.number_of_days}" + (f" ({dates})" if dates else ""))
    if b.transfer_request:
        t = b.transfer_request
        lines.append(f"Route: {t.pickup_location} -> {t.dropoff_location}")
        lines.append(f"Pickup: {t.pickup_date} {t.pickup_time}".rstrip())
    if b.custom_tour_order and b.custom_tour_order.selected_countries:
        lines.append("Countries: " + ", ".join(b.custom_tour_order.selected_countries))
    if b.order.tour_date:
        lines.append(f"Date: {b.order.tour_date}")
    return lines


def notify_payment_confirmed(db: Session, b: OrderBundle) -> list[str]:
    """Queue the customer confirmation and the admin notice. Returns EmailLog ids."""
    order = b.order
    label = KIND_LABELS.get(order.kind, "Order")
    amount = f"{order.total_amount:.2f} {order.currency}"
    details = "\n".join(_describe(b))
    ids = []

    if b.customer and b.customer.email:
        body = (
            f"Dear {b.customer.full_name or 'customer'},\n\n"
            f"We received your payment of {amount} for order {order.order_number}.\n"
            f"{label}\n{details}\n\n"
            f"Bunyod-Tour\n"
        )
        ids.append(queue_email(db, b.customer.email, f"Payment confirmed: {order.order_number}", body, related_order_number=order.order_number))

    if settings.ADMIN_EMAIL:
        who = f"{b.customer.full_name} ({b.customer.email})" if b.customer else "unknown customer"
        body = (
            f"{label} {order.order_number} was paid.\n"
            f"Amount: {amount}\nMethod: {order.payment_method or '-'}\nCustomer: {who}\n{details}\n"
        )
        ids.append(queue_email(db, settings.ADMIN_EMAIL, f"[Paid] {label} {order.order_number}", body, related_order_number=order.order_number))
    return ids
