import uuid
from sqlalchemy.orm import Session

from valence.core.errors import ValidationError
from valence.models.booking import Booking
from valence.models.message import BookingMessage
from valence.models.user import User

MAX_MESSAGE_LENGTH = 4000


def send_message(db: Session, booking: Booking, sender: User, body: str) -> BookingMessage:
    text = (body or "").strip()
    if not text:
        raise ValidationError("Message body is required")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")
    recipient = booking.provider_id if sender.id == booking.customer_id else booking.customer_id
    m = BookingMessage(id=str(uuid.uuid4()), booking_id=booking.id, sender_id=sender.id, recipient_id=recipient, body=text)
    db.add(m)
    db.commit()
    db.refresh(m)
    return m


def thread_for(db: Session, booking: Booking, reader: User, limit: int = 50) -> list[BookingMessage]:
    """Latest ``limit`` messages, oldest first; marks the reader's unread ones as read."""
    latest = (
        db.query(BookingMessage)
        .filter(BookingMessage.booking_id == booking.id)
        .order_by(BookingMessage.created_at.desc())
        .limit(limit)
        .all()
    )
    unread = [m for m in latest if m.recipient_id == reader.id and not m.is_read]
    for m in unread:
        m.is_read = True
    if unread:
        db.commit()
    return list(reversed(latest))
