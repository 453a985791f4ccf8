import json

from sqlalchemy import select

from conftest import make_booking, post_event, reload, sign_payload, stripe_event
from valence.models.audit_log import AuditLog
from valence.models.booking import Booking
from valence.models.connected_account import ConnectedAccount
from valence.models.webhook_event import ProcessedWebhookEvent


def _intent(b, **extra):
    obj = {"id": b.payment_intent_id, "object": "payment_intent", "metadata": {"bookingId": b.id}}
    obj.update(extra)
    return obj


def _charge(b, amount_captured=10700):
    return {
        "id": "ch_1",
        "object": "charge",
        "payment_intent": b.payment_intent_id,
        "amount": amount_captured,
        "amount_captured": amount_captured,
        "metadata": {"bookingId": b.id},
    }


def _audit_actions(db):
    return sorted(a.action for a in db.execute(select(AuditLog)).scalars())


def test_bad_signature_changes_nothing(client, db, customer, provider):
    b = make_booking(db, customer, provider)
    payload = stripe_event("payment_intent.amount_capturable_updated", _intent(b))
    r = post_event(client, payload, signature=sign_payload(payload, secret="whsec_wrong"))
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid signature"}
    assert reload(db, Booking, b.id).status == "pending"
    assert db.execute(select(ProcessedWebhookEvent)).first() is None


def test_missing_signature_header(client):
    r = client.post("/api/v1/webhooks/stripe", content=b"{}", headers={"Content-Type": "application/json"})
    assert r.status_code == 400


def test_tampered_body_rejected(client, db, customer, provider):
    b = make_booking(db, customer, provider)
    payload = stripe_event("payment_intent.payment_failed", _intent(b))
    sig = sign_payload(payload)
    r = post_event(client, payload.replace("payment_failed", "succeeded"), signature=sig)
    assert r.status_code == 400
    assert reload(db, Booking, b.id).status == "pending"


def test_authorized_hold_confirms(client, db, customer, provider):
    b = make_booking(db, customer, provider)
    r = post_event(client, stripe_event("payment_intent.amount_capturable_updated", _intent(b), "evt_auth"))
    assert r.status_code == 200
    assert r.json() == {"received": True}
    assert reload(db, Booking, b.id).status == "confirmed"
    assert db.get(ProcessedWebhookEvent, "evt_auth").booking_id == b.id
    assert _audit_actions(db) == ["booking_confirmed"]


def test_succeeded_also_confirms(client, db, customer, provider):
    b = make_booking(db, customer, provider)
    r = post_event(client, stripe_event("payment_intent.succeeded", _intent(b)))
    assert r.status_code == 200
    assert reload(db, Booking, b.id).status == "confirmed"


def test_locates_booking_by_intent_id_without_metadata(client, db, customer, provider):
    b = make_booking(db, customer, provider)
    obj = {"id": b.payment_intent_id, "object": "payment_intent", "metadata": {}}
    r = post_event(client, stripe_event("payment_intent.amount_capturable_updated", obj))
    assert r.status_code == 200
    assert reload(db, Booking, b.id).status == "confirmed"


def test_failed_payment_cancels(client, db, gateway, customer, provider):
    b = make_booking(db, customer, provider)
    r = post_event(client, stripe_event("payment_intent.payment_failed", _intent(b)))
    assert r.status_code == 200
    b = reload(db, Booking, b.id)
    assert b.status == "cancelled"
    assert b.cancelled_at is not None
    assert gateway.voided == [b.payment_intent_id]


def test_capture_pays_provider_and_completes(client, db, gateway, customer, provider, payout_account):
    b = make_booking(db, customer, provider, status="confirmed")
    r = post_event(client, stripe_event("charge.captured", _charge(b)))
    assert r.status_code == 200

    assert gateway.transfer_calls == [{
        "amount": 10000,
        "destination": "acct_provider",
        "idempotency_key": f"transfer:{b.payment_intent_id}",
        "source_transaction": "ch_1",
    }]
    b = reload(db, Booking, b.id)
    assert b.status == "completed"
    assert b.transfer_id == "tr_1"
    assert b.completed_at is not None


def test_capture_replay_transfers_once(client, db, gateway, customer, provider, payout_account):
    b = make_booking(db, customer, provider, status="confirmed")
    payload = stripe_event("charge.captured", _charge(b), "evt_cap")
    assert post_event(client, payload).status_code == 200
    assert post_event(client, payload).status_code == 200
    # A second delivery under a new event id is caught by the booking state.
    assert post_event(client, stripe_event("charge.captured", _charge(b), "evt_cap_2")).status_code == 200

    assert len(gateway.transfer_calls) == 1
    assert len(gateway.transfers) == 1
    assert reload(db, Booking, b.id).status == "completed"


def test_capture_before_authorization_event(client, db, gateway, customer, provider, payout_account):
    b = make_booking(db, customer, provider, status="pending")
    r = post_event(client, stripe_event("charge.captured", _charge(b)))
    assert r.status_code == 200
    assert reload(db, Booking, b.id).status == "completed"
    assert _audit_actions(db) == ["booking_completed", "booking_confirmed"]


def test_capture_on_cancelled_booking_is_refused(client, db, gateway, customer, provider, payout_account):
    b = make_booking(db, customer, provider, status="cancelled")
    r = post_event(client, stripe_event("charge.captured", _charge(b)))
    assert r.status_code == 200
    assert gateway.transfer_calls == []
    assert reload(db, Booking, b.id).status == "cancelled"
    assert _audit_actions(db) == ["transition_rejected"]


def test_capture_without_payout_account_is_retried(client, db, gateway, customer, provider):
    b = make_booking(db, customer, provider, status="confirmed")
    payload = stripe_event("charge.captured", _charge(b), "evt_no_acct")
    r = post_event(client, payload)
    assert r.status_code == 500
    assert gateway.transfer_calls == []
    assert reload(db, Booking, b.id).status == "confirmed"
    assert db.get(ProcessedWebhookEvent, "evt_no_acct") is None


def test_transfer_failure_is_retried(client, db, gateway, customer, provider, payout_account):
    b = make_booking(db, customer, provider, status="confirmed")
    gateway.fail.add("create_transfer")
    payload = stripe_event("charge.captured", _charge(b), "evt_retry")
    assert post_event(client, payload).status_code == 500
    assert reload(db, Booking, b.id).status == "confirmed"

    gateway.fail.clear()
    assert post_event(client, payload).status_code == 200
    assert reload(db, Booking, b.id).status == "completed"
    assert len(gateway.transfers) == 1


def test_stale_event_after_completion_is_acknowledged(client, db, customer, provider):
    b = make_booking(db, customer, provider, status="completed")
    r = post_event(client, stripe_event("payment_intent.succeeded", _intent(b)))
    assert r.status_code == 200
    assert reload(db, Booking, b.id).status == "completed"
    rejected = db.execute(select(AuditLog).where(AuditLog.action == "transition_rejected")).scalar_one()
    assert json.loads(rejected.details_json) == {
        "event": "payment_intent.succeeded", "from": "completed", "to": "confirmed",
    }


def test_unknown_booking_returns_500(client, db):
    obj = {"id": "pi_missing", "object": "payment_intent", "metadata": {"bookingId": "nope"}}
    r = post_event(client, stripe_event("payment_intent.succeeded", obj, "evt_orphan"))
    assert r.status_code == 500
    assert db.get(ProcessedWebhookEvent, "evt_orphan") is None


def test_unhandled_type_is_acknowledged(client, db):
    r = post_event(client, stripe_event("customer.created", {"id": "cus_1", "object": "customer"}))
    assert r.status_code == 200
    assert db.execute(select(ProcessedWebhookEvent)).first() is None


def test_account_updated_syncs_flags(client, db, provider, payout_account):
    account = {
        "id": "acct_provider",
        "object": "account",
        "charges_enabled": False,
        "payouts_enabled": False,
        "details_submitted": True,
    }
    r = post_event(client, stripe_event("account.updated", account))
    assert r.status_code == 200
    acct = reload(db, ConnectedAccount, payout_account.id)
    assert acct.payouts_enabled is False
    assert acct.charges_enabled is False
    assert acct.details_submitted is True


def test_transfer_created_is_audited(client, db):
    transfer = {"id": "tr_9", "object": "transfer", "amount": 10000, "destination": "acct_provider",
                "metadata": {"bookingId": "b_9"}}
    r = post_event(client, stripe_event("transfer.created", transfer))
    assert r.status_code == 200
    row = db.execute(select(AuditLog)).scalar_one()
    assert row.action == "transfer_created"
    assert row.entity_id == "tr_9"


def test_authorization_after_failure_releases_hold(client, db, gateway, customer, provider):
    b = make_booking(db, customer, provider)
    assert post_event(client, stripe_event("payment_intent.payment_failed", _intent(b))).status_code == 200
    # The customer retries on the same intent and the card is authorized.
    r = post_event(client, stripe_event("payment_intent.amount_capturable_updated", _intent(b), "evt_late_auth"))

    assert r.status_code == 200
    assert reload(db, Booking, b.id).status == "cancelled"
    assert gateway.voided == [b.payment_intent_id, b.payment_intent_id]
    assert gateway.holds[b.payment_intent_id]["status"] == "canceled"
    assert db.get(ProcessedWebhookEvent, "evt_late_auth") is not None
    assert _audit_actions(db) == ["booking_cancelled", "hold_released", "hold_released"]


def test_authorization_for_cancelled_booking_is_voided(client, db, gateway, customer, provider):
    b = make_booking(db, customer, provider, status="cancelled")
    r = post_event(client, stripe_event("payment_intent.succeeded", _intent(b)))
    assert r.status_code == 200
    assert gateway.voided == [b.payment_intent_id]
    assert reload(db, Booking, b.id).status == "cancelled"


def test_failure_on_confirmed_booking_keeps_hold(client, db, gateway, customer, provider):
    b = make_booking(db, customer, provider, status="confirmed")
    r = post_event(client, stripe_event("payment_intent.payment_failed", _intent(b)))
    assert r.status_code == 200
    assert reload(db, Booking, b.id).status == "confirmed"
    assert gateway.voided == []


def test_void_failure_is_retried(client, db, gateway, customer, provider):
    b = make_booking(db, customer, provider)
    gateway.fail.add("void_hold")
    payload = stripe_event("payment_intent.payment_failed", _intent(b), "evt_void_down")
    assert post_event(client, payload).status_code == 500
    assert reload(db, Booking, b.id).status == "pending"
    assert db.get(ProcessedWebhookEvent, "evt_void_down") is None

    gateway.fail.clear()
    assert post_event(client, payload).status_code == 200
    assert reload(db, Booking, b.id).status == "cancelled"
    assert gateway.voided == [b.payment_intent_id]
