import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from valence.db.session import get_db
from valence.api.deps import get_gateway
from valence.schemas.payments import WebhookAck
from valence.services.payment_gateway import StripeGateway
from valence.services.webhook_service import reconcile_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(req: Request, db: Session = Depends(get_db), gateway: StripeGateway = Depends(get_gateway)):
    """Verify, then reconcile. Any processing failure answers 500 so Stripe redelivers."""
    body = await req.body()
    # SignatureError propagates to the app handler as a 400 before anything is touched.
    event = gateway.construct_event(body, req.headers.get("stripe-signature"))
    try:
        outcome = reconcile_event(db, gateway, event)
    except Exception:
        logger.exception("Webhook processing failed for event %s (%s)", event.get("id"), event.get("type"))
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})
    logger.debug("Stripe event %s: %s", event.get("id"), outcome)
    return WebhookAck(received=True)
