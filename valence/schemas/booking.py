from datetime import datetime
from pydantic import BaseModel
from typing import Any, List, Optional

from valence.models.booking import Booking


class BookingIntentRequest(BaseModel):
    # Every field optional so missing ones surface as one "Missing required fields" error.
    serviceId: Optional[str] = None
    providerId: Optional[str] = None
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    price: Optional[Any] = None
    notes: Optional[str] = None


class BookingIntentOut(BaseModel):
    clientSecret: str
    bookingId: str


class CompleteBookingRequest(BaseModel):
    bookingId: Optional[str] = None


class CompleteBookingOut(BaseModel):
    success: bool


class BookingOut(BaseModel):
    id: str
    serviceId: str
    customerId: str
    providerId: str
    status: str
    price: str
    platformFee: str
    totalAmount: str
    providerPayout: str
    currency: str
    startTime: str
    endTime: str
    durationMinutes: int
    notes: Optional[str] = None
    paymentIntentId: Optional[str] = None
    transferId: Optional[str] = None
    createdAt: Optional[str] = None
    completedAt: Optional[str] = None
    cancelledAt: Optional[str] = None

    @classmethod
    def from_booking(cls, b: Booking) -> "BookingOut":
        return cls(
            id=b.id,
            serviceId=b.service_id,
            customerId=b.customer_id,
            providerId=b.provider_id,
            status=b.status,
            price=f"{b.price:.2f}",
            platformFee=f"{b.platform_fee:.2f}",
            totalAmount=f"{b.total_amount:.2f}",
            providerPayout=f"{b.provider_payout:.2f}",
            currency=b.currency,
            startTime=b.start_time.isoformat(),
            endTime=b.end_time.isoformat(),
            durationMinutes=b.duration_minutes,
            notes=b.notes,
            paymentIntentId=b.payment_intent_id,
            transferId=b.transfer_id,
            createdAt=b.created_at.isoformat() if b.created_at else None,
            completedAt=b.completed_at.isoformat() if b.completed_at else None,
            cancelledAt=b.cancelled_at.isoformat() if b.cancelled_at else None,
        )


class BookingList(BaseModel):
    items: List[BookingOut]


class MessageIn(BaseModel):
    body: str


class MessageOut(BaseModel):
    id: str
    bookingId: str
    senderId: str
    recipientId: str
    body: str
    isRead: bool
    createdAt: str


class MessageList(BaseModel):
    items: List[MessageOut]
