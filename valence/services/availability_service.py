"""
Provider availability.

Providers publish weekly windows (UTC). A requested slot is bookable when it
falls inside one of the provider's active windows for that weekday and does
not overlap another ``pending`` or ``confirmed`` booking of the same provider.
A provider who has published no windows takes bookings at any time.
"""

import logging
import uuid
from datetime import datetime
from sqlalchemy import select
from sqlalchemy.orm import Session

from valence.core.errors import ConflictError, ValidationError
from valence.models.availability import AvailabilityWindow
from valence.models.booking import Booking
from valence.models.user import User
from valence.schemas.catalogue import AvailabilityWindowIn
from valence.services import booking_state
from valence.services.audit_service import log_audit

logger = logging.getLogger(__name__)

# Bookings in these states hold their slot.
SLOT_HOLDING = (booking_state.PENDING, booking_state.CONFIRMED)


def set_availability(db: Session, provider: User, windows: list[AvailabilityWindowIn]) -> list[AvailabilityWindow]:
    """Replace the provider's whole weekly schedule."""
    for w in windows:
        if not 0 <= w.dayOfWeek <= 6:
            raise ValidationError("dayOfWeek must be between 0 (Monday) and 6 (Sunday)")
        if w.startTime >= w.endTime:
            raise ValidationError("startTime must be before endTime")

    db.query(AvailabilityWindow).filter(AvailabilityWindow.provider_id == provider.id).delete()
    rows = [
        AvailabilityWindow(
            id=str(uuid.uuid4()),
            provider_id=provider.id,
            day_of_week=w.dayOfWeek,
            start_time=w.startTime.replace(tzinfo=None),
            end_time=w.endTime.replace(tzinfo=None),
            is_active=w.isActive,
        )
        for w in windows
    ]
    db.add_all(rows)
    log_audit(db, actor_user_id=provider.id, action="availability_set", entity_type="user", entity_id=provider.id,
              details={"windows": len(rows)})
    db.commit()
    return windows_for(db, provider.id)


def windows_for(db: Session, provider_id: str, include_inactive: bool = False) -> list[AvailabilityWindow]:
    q = db.query(AvailabilityWindow).filter(AvailabilityWindow.provider_id == provider_id)
    if not include_inactive:
        q = q.filter(AvailabilityWindow.is_active.is_(True))
    return q.order_by(AvailabilityWindow.day_of_week.asc(), AvailabilityWindow.start_time.asc()).all()


def within_windows(windows: list[AvailabilityWindow], start: datetime, end: datetime) -> bool:
    """``start``/``end`` are UTC. Slots may not span midnight."""
    if start.date() != end.date():
        return False
    day, t0, t1 = start.weekday(), start.time(), end.time()
    return any(w.day_of_week == day and w.start_time <= t0 and t1 <= w.end_time for w in windows)


def overlapping_bookings(db: Session, provider_id: str, start: datetime, end: datetime) -> list[Booking]:
    stmt = select(Booking).where(
        Booking.provider_id == provider_id,
        Booking.status.in_(SLOT_HOLDING),
        Booking.start_time < end,
        Booking.end_time > start,
    )
    return list(db.execute(stmt).scalars())


def ensure_slot_available(db: Session, provider_id: str, start: datetime, end: datetime) -> None:
    """Raise ConflictError when the provider cannot take [start, end)."""
    windows = windows_for(db, provider_id, include_inactive=True)
    if windows and not within_windows([w for w in windows if w.is_active], start, end):
        raise ConflictError("Provider is not available at this time")
    clash = overlapping_bookings(db, provider_id, start, end)
    if clash:
        logger.info("Slot %s-%s for provider %s overlaps booking %s", start, end, provider_id, clash[0].id)
        raise ConflictError("Time slot is not available")
