"""Provider payout accounts (Stripe Connect Express)."""

import logging
import uuid
from datetime import datetime, timezone
from sqlalchemy.orm import Session

from valence.core.config import settings
from valence.core.errors import NotFoundError
from valence.models.connected_account import ConnectedAccount
from valence.models.user import User
from valence.services.audit_service import STRIPE_ACTOR, log_audit
from valence.services.payment_gateway import StripeGateway

logger = logging.getLogger(__name__)


def account_for_user(db: Session, user_id: str) -> ConnectedAccount | None:
    return db.query(ConnectedAccount).filter(ConnectedAccount.user_id == user_id).first()


def payout_account_for(db: Session, provider_id: str) -> str:
    acct = account_for_user(db, provider_id)
    if not acct:
        raise NotFoundError(f"No payout account for provider {provider_id}")
    return acct.stripe_account_id


def start_onboarding(db: Session, gateway: StripeGateway, provider: User) -> tuple[str, str]:
    """Create the Express account on first call, then always hand back a fresh onboarding link."""
    site = settings.SITE_URL.rstrip("/")
    acct = account_for_user(db, provider.id)
    if not acct:
        account_id = gateway.create_connected_account(email=provider.email, profile_url=f"{site}/providers/{provider.id}")
        acct = ConnectedAccount(id=str(uuid.uuid4()), user_id=provider.id, stripe_account_id=account_id)
        db.add(acct)
        log_audit(db, actor_user_id=provider.id, action="connect_account_created", entity_type="connected_account", entity_id=account_id)
        db.commit()
        logger.info("Created connected account %s for provider %s", account_id, provider.id)

    url = gateway.create_onboarding_link(
        acct.stripe_account_id,
        refresh_url=f"{site}/dashboard/provider/onboarding",
        return_url=f"{site}/dashboard/provider/onboarding/complete",
    )
    return acct.stripe_account_id, url


def dashboard_link(db: Session, gateway: StripeGateway, provider: User) -> str:
    acct = account_for_user(db, provider.id)
    if not acct:
        raise NotFoundError("No payout account; start onboarding first")
    return gateway.create_login_link(acct.stripe_account_id)


def sync_account(db: Session, account: dict) -> ConnectedAccount | None:
    """Refresh stored capability flags from an ``account.updated`` payload. Does not commit."""
    acct = db.query(ConnectedAccount).filter(ConnectedAccount.stripe_account_id == account.get("id")).first()
    if not acct:
        logger.info("account.updated for unknown connected account %s", account.get("id"))
        return None
    acct.charges_enabled = bool(account.get("charges_enabled"))
    acct.payouts_enabled = bool(account.get("payouts_enabled"))
    acct.details_submitted = bool(account.get("details_submitted"))
    acct.updated_at = datetime.now(timezone.utc)
    log_audit(db, actor_user_id=STRIPE_ACTOR, action="connect_account_updated", entity_type="connected_account", entity_id=acct.stripe_account_id,
              details={"chargesEnabled": acct.charges_enabled, "payoutsEnabled": acct.payouts_enabled})
    return acct
