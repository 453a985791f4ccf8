from sqlalchemy import CheckConstraint, String, Integer, Time, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from datetime import time
from valence.db.session import Base

class AvailabilityWindow(Base):
    """Weekly recurring window in which a provider takes bookings (UTC wall clock)."""
    __tablename__ = "provider_availability"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_provider_availability_day"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    provider_id: Mapped[str] = mapped_column(String(36), index=True)
    day_of_week: Mapped[int] = mapped_column(Integer)  # 0=Monday .. 6=Sunday
    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
