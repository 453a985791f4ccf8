from datetime import time
from pydantic import BaseModel
from typing import Any, List, Optional

from valence.models.availability import AvailabilityWindow
from valence.models.review import Review
from valence.models.service import Service


class ServiceIn(BaseModel):
    title: str
    description: str = ""
    category: str
    price: Any
    durationMinutes: int = 60
    imageUrl: Optional[str] = None


class ServiceUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[Any] = None
    durationMinutes: Optional[int] = None
    imageUrl: Optional[str] = None
    isActive: Optional[bool] = None


class ServiceOut(BaseModel):
    id: str
    providerId: str
    title: str
    description: str
    category: str
    price: str
    durationMinutes: int
    imageUrl: Optional[str] = None
    isActive: bool

    @classmethod
    def from_service(cls, s: Service) -> "ServiceOut":
        return cls(
            id=s.id,
            providerId=s.provider_id,
            title=s.title,
            description=s.description or "",
            category=s.category,
            price=f"{s.price:.2f}",
            durationMinutes=s.duration_minutes,
            imageUrl=s.image_url,
            isActive=s.is_active,
        )


class ServiceList(BaseModel):
    items: List[ServiceOut]


class AvailabilityWindowIn(BaseModel):
    dayOfWeek: int  # 0=Monday .. 6=Sunday
    startTime: time
    endTime: time
    isActive: bool = True


class AvailabilityIn(BaseModel):
    windows: List[AvailabilityWindowIn]


class AvailabilityWindowOut(BaseModel):
    dayOfWeek: int
    startTime: str
    endTime: str
    isActive: bool

    @classmethod
    def from_window(cls, w: AvailabilityWindow) -> "AvailabilityWindowOut":
        return cls(dayOfWeek=w.day_of_week, startTime=w.start_time.strftime("%H:%M"),
                   endTime=w.end_time.strftime("%H:%M"), isActive=w.is_active)


class AvailabilityOut(BaseModel):
    providerId: str
    windows: List[AvailabilityWindowOut]


class ReviewIn(BaseModel):
    rating: int
    comment: Optional[str] = None


class ReviewOut(BaseModel):
    id: str
    bookingId: str
    reviewerId: str
    providerId: str
    rating: int
    comment: str
    createdAt: str

    @classmethod
    def from_review(cls, r: Review) -> "ReviewOut":
        return cls(id=r.id, bookingId=r.booking_id, reviewerId=r.reviewer_id, providerId=r.provider_id,
                   rating=r.rating, comment=r.comment or "", createdAt=r.created_at.isoformat())


class ProviderReviews(BaseModel):
    providerId: str
    count: int
    averageRating: Optional[str] = None
    items: List[ReviewOut]
