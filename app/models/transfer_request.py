from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class TransferRequest(Base):
    __tablename__ = "transfer_requests"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(200), default="")
    email: Mapped[str] = mapped_column(String(320), default="")
    phone: Mapped[str] = mapped_column(String(40), default="")

    pickup_location: Mapped[str] = mapped_column(String(300), default="")
    dropoff_location: Mapped[str] = mapped_column(String(300), default="")
    pickup_date: Mapped[str] = mapped_column(String(10), default="")  # YYYY-MM-DD
    pickup_time: Mapped[str] = mapped_column(String(5), default="")   # HH:MM
    number_of_people: Mapped[int] = mapped_column(Integer, default=1)
    special_requests: Mapped[str] = mapped_column(Text, default="")

    # Admin quotes final_price; estimated_price comes from the calculator at request time
    estimated_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    final_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, quoted, approved, confirmed, rejected, completed, cancelled
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
