import logging
import uuid
from datetime import datetime, timezone
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from valence.core.errors import AppError, ConflictError, Forbidden, NotFoundError, UpstreamError, ValidationError
from valence.models.audit_log import AuditLog
from valence.models.booking import Booking
from valence.models.user import User
from valence.schemas.booking import BookingIntentRequest
from valence.services import booking_state
from valence.services.audit_service import log_audit
from valence.services.availability_service import ensure_slot_available
from valence.services.catalogue_service import bookable_service
from valence.services.email_service import notify_customer_booking_completed
from valence.services.payment_gateway import StripeGateway
from valence.services.pricing import is_whole_cents, quote

logger = logging.getLogger(__name__)


def _as_utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt.astimezone(timezone.utc)


def create_booking_intent(db: Session, gateway: StripeGateway, caller: User, req: BookingIntentRequest) -> tuple[str, str]:
    """Open a manual-capture hold and persist a pending booking against it.

    Returns (client_secret, booking_id). If the booking cannot be stored the
    hold is voided before the error propagates.
    """
    if not (req.serviceId and req.providerId and req.startTime and req.endTime and req.price):
        raise ValidationError("Missing required fields")
    try:
        q = quote(req.price)
    except ValueError:
        raise ValidationError("price must be a positive number")
    if q.price <= 0:
        raise ValidationError("price must be a positive number")
    if not is_whole_cents(q.price):
        raise ValidationError("price cannot have more than two decimal places")
    start, end = _as_utc(req.startTime), _as_utc(req.endTime)
    if end <= start:
        raise ValidationError("endTime must be after startTime")
    if req.providerId == caller.id:
        raise ValidationError("You cannot book your own service")
    # Provider row stays locked until commit: one intent per provider passes the slot check at a time.
    provider = db.execute(select(User).where(User.id == req.providerId).with_for_update()).scalar_one_or_none()
    if not provider or provider.role != "provider" or not provider.is_active:
        raise NotFoundError("Provider not found")
    bookable_service(db, req.serviceId, provider.id)
    ensure_slot_available(db, provider.id, start, end)

    booking_id = str(uuid.uuid4())
    hold = gateway.create_hold(
        amount_minor=q.amount_minor,
        metadata={
            "bookingId": booking_id,
            "serviceId": req.serviceId,
            "providerId": req.providerId,
            "customerId": caller.id,
            "platformFee": str(q.platform_fee),
            "bookingStartTime": start.isoformat(),
            "bookingEndTime": end.isoformat(),
        },
        idempotency_key=f"hold:{booking_id}",
    )

    try:
        db.add(Booking(
            id=booking_id,
            service_id=req.serviceId,
            customer_id=caller.id,
            provider_id=req.providerId,
            price=q.price,
            platform_fee=q.platform_fee,
            total_amount=q.total_amount,
            provider_payout=q.provider_payout,
            currency=gateway.cfg.currency,
            start_time=start,
            end_time=end,
            duration_minutes=int((end - start).total_seconds() // 60),
            notes=req.notes,
            payment_intent_id=hold.id,
            status=booking_state.PENDING,
        ))
        log_audit(db, actor_user_id=caller.id, action="booking_intent_created", entity_type="booking", entity_id=booking_id,
                  details={"paymentIntentId": hold.id, "amountMinor": q.amount_minor, "platformFee": str(q.platform_fee)})
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to persist booking %s; voiding hold %s", booking_id, hold.id)
        try:
            gateway.void_hold(hold.id)
        except UpstreamError:
            logger.error("Hold %s could not be voided after booking persistence failed", hold.id)
        raise AppError("Failed to create booking")

    logger.info("Booking %s pending on hold %s (%s minor units)", booking_id, hold.id, q.amount_minor)
    return hold.client_secret, booking_id


COMPLETION_REQUESTED = "booking_completion_requested"


def _completion_already_requested(db: Session, booking_id: str) -> bool:
    return db.query(AuditLog.id).filter(
        AuditLog.entity_type == "booking",
        AuditLog.entity_id == booking_id,
        AuditLog.action == COMPLETION_REQUESTED,
    ).first() is not None


def request_completion(db: Session, gateway: StripeGateway, caller: User, booking_id: str | None) -> None:
    """Provider marks the work done: ask Stripe to capture the hold.

    The booking stays ``confirmed`` here; the capture webhook completes it and pays the provider.
    """
    if not booking_id:
        raise ValidationError("Missing required fields")
    b = db.get(Booking, booking_id)
    if not b:
        raise NotFoundError("Booking not found")
    if caller.id != b.provider_id:
        raise Forbidden("Only the provider of this booking can complete it")
    if b.status != booking_state.CONFIRMED or not b.payment_intent_id:
        raise ConflictError("Booking is not awaiting completion")

    try:
        gateway.capture_hold(b.payment_intent_id, idempotency_key=f"capture:{b.id}")
    except UpstreamError:
        raise UpstreamError("Failed to complete booking")

    if _completion_already_requested(db, b.id):
        # Capture replayed under the same key; the customer was already told.
        logger.info("Completion of booking %s already requested", b.id)
        return

    log_audit(db, actor_user_id=caller.id, action=COMPLETION_REQUESTED, entity_type="booking", entity_id=b.id,
              details={"paymentIntentId": b.payment_intent_id})
    db.commit()

    try:
        notify_customer_booking_completed(db, b)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not queue completion email for booking %s", b.id)


def get_booking_for(db: Session, caller: User, booking_id: str) -> Booking:
    b = db.get(Booking, booking_id)
    if not b:
        raise NotFoundError("Booking not found")
    if not b.is_participant(caller.id):
        raise Forbidden("Not a participant in this booking")
    return b


def list_bookings_for(db: Session, caller: User, status: str | None = None) -> list[Booking]:
    stmt = select(Booking).where(or_(Booking.customer_id == caller.id, Booking.provider_id == caller.id))
    if status:
        if status not in booking_state.STATUSES:
            raise ValidationError(f"Unknown status {status!r}")
        stmt = stmt.where(Booking.status == status)
    return list(db.execute(stmt.order_by(Booking.start_time.asc())).scalars())
