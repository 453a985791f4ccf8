"""
Stripe webhook reconciliation.

Maps verified Stripe events onto booking state. Each event id is recorded in
``processed_webhook_events`` in the same transaction as the change it caused,
so a redelivered event is acknowledged without being applied again. Payout
transfers carry an idempotency key derived from the payment intent, so even a
retry that slips past the event table gets back the original transfer.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from valence.core.errors import IllegalTransition, NotFoundError
from valence.models.booking import Booking
from valence.models.webhook_event import ProcessedWebhookEvent
from valence.services import booking_state
from valence.services.audit_service import STRIPE_ACTOR, log_audit
from valence.services.connect_service import payout_account_for, sync_account
from valence.services.payment_gateway import StripeGateway
from valence.services.pricing import to_minor_units

logger = logging.getLogger(__name__)

PROCESSED = "processed"
DUPLICATE = "duplicate"
IGNORED = "ignored"
REJECTED = "rejected"

Outcome = Tuple[str, Optional[str]]


def _locate_booking(db: Session, obj: Dict[str, Any]) -> Booking:
    """Find the booking an event refers to, locking the row for the rest of the transaction."""
    booking_id = (obj.get("metadata") or {}).get("bookingId")
    if booking_id:
        stmt = select(Booking).where(Booking.id == booking_id)
    else:
        pi_id = obj.get("id") if obj.get("object") == "payment_intent" else obj.get("payment_intent")
        if not pi_id:
            raise NotFoundError("Event carries no booking reference")
        stmt = select(Booking).where(Booking.payment_intent_id == pi_id)
    b = db.execute(stmt.with_for_update()).scalar_one_or_none()
    if not b:
        raise NotFoundError(f"Booking not found for event object {obj.get('id')}")
    return b


def _transition(db: Session, b: Booking, target: str, event_type: str, **kwargs) -> str:
    """Apply one status change on behalf of Stripe; refused transitions are audited, not raised."""
    try:
        changed = booking_state.apply_transition(b, target, **kwargs)
    except IllegalTransition as e:
        level = logging.WARNING if booking_state.is_behind(e.current, e.target) else logging.ERROR
        logger.log(level, "Ignoring %s for booking %s: %s", event_type, b.id, e.message)
        log_audit(db, actor_user_id=STRIPE_ACTOR, action="transition_rejected", entity_type="booking", entity_id=b.id,
                  details={"event": event_type, **e.details})
        return REJECTED
    if not changed:
        logger.info("Booking %s already %s; %s is a no-op", b.id, target, event_type)
        return DUPLICATE
    log_audit(db, actor_user_id=STRIPE_ACTOR, action=f"booking_{target}", entity_type="booking", entity_id=b.id,
              details={"event": event_type, **({"transferId": b.transfer_id} if b.transfer_id else {})})
    logger.info("Booking %s -> %s (%s)", b.id, target, event_type)
    return PROCESSED


def _release_hold(db: Session, gateway: StripeGateway, b: Booking, event_type: str) -> None:
    """Void the intent behind a cancelled booking. Safe to repeat."""
    if not b.payment_intent_id:
        return
    status = gateway.void_hold(b.payment_intent_id)
    logger.info("Released hold %s for cancelled booking %s (%s)", b.payment_intent_id, b.id, event_type)
    log_audit(db, actor_user_id=STRIPE_ACTOR, action="hold_released", entity_type="booking", entity_id=b.id,
              details={"event": event_type, "paymentIntentId": b.payment_intent_id, "status": status})


def _on_hold_authorized(db: Session, gateway: StripeGateway, obj: Dict[str, Any], event_type: str) -> Outcome:
    b = _locate_booking(db, obj)
    if b.status == booking_state.CANCELLED:
        # The customer retried on the same intent after the booking was cancelled.
        logger.warning("Authorization for cancelled booking %s; voiding hold", b.id)
        _release_hold(db, gateway, b, event_type)
        return REJECTED, b.id
    return _transition(db, b, booking_state.CONFIRMED, event_type), b.id


def _on_hold_failed(db: Session, gateway: StripeGateway, obj: Dict[str, Any], event_type: str) -> Outcome:
    b = _locate_booking(db, obj)
    outcome = _transition(db, b, booking_state.CANCELLED, event_type)
    if b.status == booking_state.CANCELLED:
        # A cancelled booking keeps no open intent.
        _release_hold(db, gateway, b, event_type)
    return outcome, b.id


def _on_charge_captured(db: Session, gateway: StripeGateway, charge: Dict[str, Any], event_type: str) -> Outcome:
    b = _locate_booking(db, charge)
    if b.status == booking_state.COMPLETED and b.transfer_id:
        logger.info("Capture for booking %s already paid out (transfer %s)", b.id, b.transfer_id)
        return DUPLICATE, b.id
    if b.status == booking_state.PENDING:
        # A capture proves the authorization happened even if that event has not arrived yet.
        _transition(db, b, booking_state.CONFIRMED, event_type)
    if b.status != booking_state.CONFIRMED:
        return _transition(db, b, booking_state.COMPLETED, event_type), b.id

    captured = int(charge.get("amount_captured") or charge.get("amount") or 0)
    transfer_amount = captured - to_minor_units(b.platform_fee)
    if transfer_amount <= 0:
        logger.error("Booking %s captured %s minor units, not enough to cover fee %s", b.id, captured, b.platform_fee)
        log_audit(db, actor_user_id=STRIPE_ACTOR, action="payout_skipped", entity_type="booking", entity_id=b.id,
                  details={"capturedMinor": captured, "platformFee": str(b.platform_fee)})
        return REJECTED, b.id

    pi_id = charge.get("payment_intent") or b.payment_intent_id
    transfer_id = gateway.create_transfer(
        amount_minor=transfer_amount,
        destination=payout_account_for(db, b.provider_id),
        idempotency_key=f"transfer:{pi_id}",
        source_transaction=charge.get("id"),
        transfer_group=f"booking_{b.id}",
        metadata={"bookingId": b.id, "providerId": b.provider_id},
    )
    logger.info("Transferred %s minor units to provider %s for booking %s (%s)", transfer_amount, b.provider_id, b.id, transfer_id)
    return _transition(db, b, booking_state.COMPLETED, event_type, transfer_id=transfer_id), b.id


def _on_account_updated(db: Session, gateway: StripeGateway, account: Dict[str, Any], event_type: str) -> Outcome:
    sync_account(db, account)
    return PROCESSED, None


def _on_transfer_created(db: Session, gateway: StripeGateway, transfer: Dict[str, Any], event_type: str) -> Outcome:
    booking_id = (transfer.get("metadata") or {}).get("bookingId")
    log_audit(db, actor_user_id=STRIPE_ACTOR, action="transfer_created", entity_type="transfer", entity_id=str(transfer.get("id")),
              details={"bookingId": booking_id, "amount": transfer.get("amount"), "destination": transfer.get("destination")})
    return PROCESSED, booking_id


HANDLERS: Dict[str, Callable[[Session, StripeGateway, Dict[str, Any], str], Outcome]] = {
    "payment_intent.amount_capturable_updated": _on_hold_authorized,
    "payment_intent.succeeded": _on_hold_authorized,
    "payment_intent.payment_failed": _on_hold_failed,
    "charge.captured": _on_charge_captured,
    "account.updated": _on_account_updated,
    "transfer.created": _on_transfer_created,
}


def reconcile_event(db: Session, gateway: StripeGateway, event: Dict[str, Any]) -> str:
    """Apply one verified event. Returns the outcome; raises on processing errors so Stripe retries."""
    event_id = event.get("id")
    event_type = event.get("type", "")
    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled Stripe event type %s (%s)", event_type, event_id)
        return IGNORED

    if event_id and db.get(ProcessedWebhookEvent, event_id):
        logger.info("Stripe event %s already processed", event_id)
        return DUPLICATE

    obj = (event.get("data") or {}).get("object") or {}
    try:
        outcome, booking_id = handler(db, gateway, obj, event_type)
        if event_id:
            db.add(ProcessedWebhookEvent(event_id=event_id, event_type=event_type, booking_id=booking_id))
        db.commit()
    except IntegrityError:
        # Another delivery of the same event committed first.
        db.rollback()
        logger.info("Stripe event %s recorded concurrently; treating as duplicate", event_id)
        return DUPLICATE
    except Exception:
        db.rollback()
        raise
    return outcome
