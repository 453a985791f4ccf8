from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from valence.db.session import get_db
from valence.api.deps import require_roles
from valence.models.user import User
from valence.schemas.catalogue import AvailabilityIn, AvailabilityOut, AvailabilityWindowOut, ProviderReviews, ReviewOut
from valence.services.availability_service import set_availability, windows_for
from valence.services.review_service import rating_stats, reviews_for_provider

router = APIRouter(tags=["providers"])


@router.put("/providers/me/availability", response_model=AvailabilityOut)
def replace_availability(body: AvailabilityIn, db: Session = Depends(get_db),
                         me: User = Depends(require_roles("provider"))):
    windows = set_availability(db, me, body.windows)
    return AvailabilityOut(providerId=me.id, windows=[AvailabilityWindowOut.from_window(w) for w in windows])


@router.get("/providers/{provider_id}/availability", response_model=AvailabilityOut)
def provider_availability(provider_id: str, db: Session = Depends(get_db)):
    windows = windows_for(db, provider_id)
    return AvailabilityOut(providerId=provider_id, windows=[AvailabilityWindowOut.from_window(w) for w in windows])


@router.get("/providers/{provider_id}/reviews", response_model=ProviderReviews)
def provider_reviews(provider_id: str, limit: int = 50, db: Session = Depends(get_db)):
    count, avg = rating_stats(db, provider_id)
    items = reviews_for_provider(db, provider_id, limit=max(1, min(limit, 200)))
    return ProviderReviews(
        providerId=provider_id,
        count=count,
        averageRating=str(avg) if avg is not None else None,
        items=[ReviewOut.from_review(r) for r in items],
    )
