import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from valence.core.errors import ConflictError, Forbidden, ValidationError
from valence.models.booking import Booking
from valence.models.review import Review
from valence.models.user import User
from valence.services import booking_state
from valence.services.audit_service import log_audit

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000


def create_review(db: Session, booking: Booking, reviewer: User, rating: int, comment: str | None) -> Review:
    """The customer rates the provider once the booking is completed. One review per booking."""
    if reviewer.id != booking.customer_id:
        raise Forbidden("Only the customer of this booking can review it")
    if booking.status != booking_state.COMPLETED:
        raise ConflictError("Only completed bookings can be reviewed")
    if rating is None or not 1 <= rating <= 5:
        raise ValidationError("rating must be between 1 and 5")
    text = (comment or "").strip()
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"comment must be at most {MAX_COMMENT_LENGTH} characters")
    if db.query(Review).filter(Review.booking_id == booking.id).first():
        raise ConflictError("Booking already reviewed")

    r = Review(id=str(uuid.uuid4()), booking_id=booking.id, reviewer_id=reviewer.id,
               provider_id=booking.provider_id, rating=rating, comment=text)
    db.add(r)
    log_audit(db, actor_user_id=reviewer.id, action="review_created", entity_type="booking", entity_id=booking.id,
              details={"rating": rating})
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Booking already reviewed")
    db.refresh(r)
    logger.info("Booking %s reviewed (%s stars)", booking.id, rating)
    return r


def reviews_for_provider(db: Session, provider_id: str, limit: int = 50) -> list[Review]:
    return (
        db.query(Review)
        .filter(Review.provider_id == provider_id)
        .order_by(Review.created_at.desc())
        .limit(limit)
        .all()
    )


def rating_stats(db: Session, provider_id: str) -> tuple[int, Decimal | None]:
    """(review count, average rating to two places or None)."""
    count, avg = db.query(func.count(Review.id), func.avg(Review.rating)).filter(Review.provider_id == provider_id).one()
    if not count:
        return 0, None
    return count, Decimal(str(avg)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
