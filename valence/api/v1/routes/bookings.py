from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from valence.db.session import get_db
from valence.api.deps import get_current_user, get_gateway
from valence.models.message import BookingMessage
from valence.models.user import User
from valence.schemas.catalogue import ReviewIn, ReviewOut
from valence.schemas.booking import (
    BookingList, BookingOut, CompleteBookingOut, CompleteBookingRequest, MessageIn, MessageList, MessageOut,
)
from valence.services.booking_service import get_booking_for, list_bookings_for, request_completion
from valence.services.message_service import send_message, thread_for
from valence.services.review_service import create_review
from valence.services.payment_gateway import StripeGateway

router = APIRouter(tags=["bookings"])


def _message_out(m: BookingMessage) -> MessageOut:
    return MessageOut(id=m.id, bookingId=m.booking_id, senderId=m.sender_id, recipientId=m.recipient_id,
                      body=m.body, isRead=m.is_read, createdAt=m.created_at.isoformat())


@router.post("/bookings/complete", response_model=CompleteBookingOut)
def complete_booking(body: CompleteBookingRequest, db: Session = Depends(get_db),
                     gateway: StripeGateway = Depends(get_gateway), me: User = Depends(get_current_user)):
    """Provider marks the service done. Capture is requested; the webhook completes the booking."""
    request_completion(db, gateway, me, body.bookingId)
    return CompleteBookingOut(success=True)


@router.get("/bookings", response_model=BookingList)
def my_bookings(status: str | None = None, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return BookingList(items=[BookingOut.from_booking(b) for b in list_bookings_for(db, me, status)])


@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    return BookingOut.from_booking(get_booking_for(db, me, booking_id))


@router.post("/bookings/{booking_id}/messages", response_model=MessageOut, status_code=201)
def post_message(booking_id: str, body: MessageIn, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    b = get_booking_for(db, me, booking_id)
    return _message_out(send_message(db, b, me, body.body))


@router.get("/bookings/{booking_id}/messages", response_model=MessageList)
def list_messages(booking_id: str, limit: int = 50, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    b = get_booking_for(db, me, booking_id)
    return MessageList(items=[_message_out(m) for m in thread_for(db, b, me, limit=max(1, min(limit, 200)))])


@router.post("/bookings/{booking_id}/review", response_model=ReviewOut, status_code=201)
def review_booking(booking_id: str, body: ReviewIn, db: Session = Depends(get_db), me: User = Depends(get_current_user)):
    b = get_booking_for(db, me, booking_id)
    return ReviewOut.from_review(create_review(db, b, me, body.rating, body.comment))
