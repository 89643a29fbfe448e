from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class GuideHireRequest(Base):
    __tablename__ = "guide_hire_requests"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    guide_id: Mapped[int] = mapped_column(ForeignKey("guides.id"), index=True)

    tourist_name: Mapped[str] = mapped_column(String(200), default="")
    tourist_email: Mapped[str] = mapped_column(String(320), default="")
    tourist_phone: Mapped[str] = mapped_column(String(40), default="")

    selected_dates: Mapped[list] = mapped_column(JSON, default=list)  # ["2026-05-01", ...]
    number_of_days: Mapped[int] = mapped_column(Integer, default=1)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    currency: Mapped[str] = mapped_column(String(3), default="TJS")
    comments: Mapped[str] = mapped_column(Text, default="")

    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, approved, confirmed, rejected, completed, cancelled
    payment_status: Mapped[str] = mapped_column(String(30), default="unpaid")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
