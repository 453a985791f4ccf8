"""Provider service listings. A booking always points at an active listing of its provider."""

import uuid
from datetime import datetime, timezone
from sqlalchemy.orm import Session

from valence.core.errors import Forbidden, NotFoundError, ValidationError
from valence.models.service import Service
from valence.models.user import User
from valence.schemas.catalogue import ServiceIn, ServiceUpdate
from valence.services.audit_service import log_audit
from valence.services.pricing import is_whole_cents, to_decimal


def _clean_price(value):
    try:
        price = to_decimal(value)
    except ValueError:
        raise ValidationError("price must be a positive number")
    if price <= 0:
        raise ValidationError("price must be a positive number")
    if not is_whole_cents(price):
        raise ValidationError("price cannot have more than two decimal places")
    return price


def _clean_text(value: str, field: str, max_len: int) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    if len(text) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters")
    return text


def create_service(db: Session, provider: User, body: ServiceIn) -> Service:
    if body.durationMinutes <= 0:
        raise ValidationError("durationMinutes must be positive")
    s = Service(
        id=str(uuid.uuid4()),
        provider_id=provider.id,
        title=_clean_text(body.title, "title", 200),
        description=(body.description or "").strip(),
        category=_clean_text(body.category, "category", 60).lower(),
        price=_clean_price(body.price),
        duration_minutes=body.durationMinutes,
        image_url=body.imageUrl,
        is_active=True,
    )
    db.add(s)
    log_audit(db, actor_user_id=provider.id, action="service_created", entity_type="service", entity_id=s.id,
              details={"title": s.title, "price": str(s.price)})
    db.commit()
    db.refresh(s)
    return s


def get_service(db: Session, service_id: str) -> Service:
    s = db.get(Service, service_id)
    if not s:
        raise NotFoundError("Service not found")
    return s


def list_services(db: Session, category: str | None = None, provider_id: str | None = None,
                  include_inactive: bool = False) -> list[Service]:
    q = db.query(Service)
    if category:
        q = q.filter(Service.category == category.strip().lower())
    if provider_id:
        q = q.filter(Service.provider_id == provider_id)
    if not include_inactive:
        q = q.filter(Service.is_active.is_(True))
    return q.order_by(Service.created_at.desc()).all()


def update_service(db: Session, provider: User, service_id: str, changes: ServiceUpdate) -> Service:
    s = get_service(db, service_id)
    if s.provider_id != provider.id:
        raise Forbidden("Only the provider of this service can change it")
    data = changes.model_dump(exclude_unset=True)
    if "title" in data:
        s.title = _clean_text(data["title"], "title", 200)
    if "description" in data:
        s.description = (data["description"] or "").strip()
    if "category" in data:
        s.category = _clean_text(data["category"], "category", 60).lower()
    if "price" in data:
        s.price = _clean_price(data["price"])
    if "durationMinutes" in data:
        if not data["durationMinutes"] or data["durationMinutes"] <= 0:
            raise ValidationError("durationMinutes must be positive")
        s.duration_minutes = data["durationMinutes"]
    if "imageUrl" in data:
        s.image_url = data["imageUrl"]
    if "isActive" in data and data["isActive"] is not None:
        s.is_active = bool(data["isActive"])
    s.updated_at = datetime.now(timezone.utc)
    log_audit(db, actor_user_id=provider.id, action="service_updated", entity_type="service", entity_id=s.id,
              details={k: v for k, v in data.items() if k != "description"})
    db.commit()
    db.refresh(s)
    return s


def bookable_service(db: Session, service_id: str, provider_id: str) -> Service:
    """The listing a new booking is for; it must be live and offered by ``provider_id``."""
    s = db.get(Service, service_id)
    if not s or not s.is_active:
        raise NotFoundError("Service not found")
    if s.provider_id != provider_id:
        raise ValidationError("Service is not offered by this provider")
    return s
