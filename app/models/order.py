import enum
from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime, ForeignKey, JSON, Text, Enum
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base


class OrderKind(str, enum.Enum):
    TOUR = "tour"
    GUIDE_HIRE = "guide_hire"
    TRANSFER = "transfer"
    CUSTOM_TOUR = "custom_tour"


def _now():
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(40), unique=True, index=True)  # GUIDE-1700000000000-42
    kind: Mapped[OrderKind] = mapped_column(
        Enum(OrderKind, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        index=True,
    )

    customer_id: Mapped[int | None] = mapped_column(ForeignKey("customers.id"), nullable=True, index=True)
    # Exactly one of these is set, matching `kind`
    tour_id: Mapped[int | None] = mapped_column(ForeignKey("tours.id"), nullable=True)
    guide_hire_request_id: Mapped[int | None] = mapped_column(ForeignKey("guide_hire_requests.id"), nullable=True, index=True)
    transfer_request_id: Mapped[int | None] = mapped_column(ForeignKey("transfer_requests.id"), nullable=True, index=True)
    custom_tour_order_id: Mapped[int | None] = mapped_column(ForeignKey("custom_tour_orders.id"), nullable=True, index=True)

    tour_date: Mapped[str] = mapped_column(String(10), default="")
    tourists: Mapped[list] = mapped_column(JSON, default=list)  # [{"name": ..., "passport": ...}]
    wishes: Mapped[str] = mapped_column(Text, default="")

    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))  # TJS snapshot, immutable
    currency: Mapped[str] = mapped_column(String(3), default="TJS")

    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, confirmed, cancelled, completed
    payment_status: Mapped[str] = mapped_column(String(30), default="unpaid", index=True)  # see services.payment_state
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)  # alif|payler
    payment_intent_id: Mapped[str | None] = mapped_column(String(120), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)
