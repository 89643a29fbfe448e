from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class CustomTourOrder(Base):
    __tablename__ = "custom_tour_orders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_number: Mapped[str | None] = mapped_column(String(40), unique=True, nullable=True)

    full_name: Mapped[str] = mapped_column(String(200), default="")
    email: Mapped[str] = mapped_column(String(320), default="")
    phone: Mapped[str] = mapped_column(String(40), default="")
    tour_date: Mapped[str] = mapped_column(String(10), default="")
    selected_countries: Mapped[list] = mapped_column(JSON, default=list)
    # Frozen at request time: [{"id": 3, "quantity": 2}, ...]; prices are re-read from custom_tour_components
    components: Mapped[list] = mapped_column(JSON, default=list)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)

    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, paid, cancelled
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
