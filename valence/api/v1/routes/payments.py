from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from valence.db.session import get_db
from valence.api.deps import get_current_user, get_gateway, require_roles
from valence.models.user import User
from valence.schemas.booking import BookingIntentOut, BookingIntentRequest
from valence.schemas.payments import ConnectStatusOut, LoginLinkOut, OnboardingOut
from valence.services.booking_service import create_booking_intent
from valence.services.connect_service import account_for_user, dashboard_link, start_onboarding
from valence.services.payment_gateway import StripeGateway

router = APIRouter(tags=["payments"])


@router.post("/payments/intents", response_model=BookingIntentOut, status_code=201)
def create_payment_intent(body: BookingIntentRequest, db: Session = Depends(get_db),
                          gateway: StripeGateway = Depends(get_gateway), me: User = Depends(get_current_user)):
    """Open an escrow hold for a booking. The client confirms payment with the returned secret."""
    client_secret, booking_id = create_booking_intent(db, gateway, me, body)
    return BookingIntentOut(clientSecret=client_secret, bookingId=booking_id)


@router.post("/payments/connect/onboard", response_model=OnboardingOut)
def connect_onboard(db: Session = Depends(get_db), gateway: StripeGateway = Depends(get_gateway),
                    me: User = Depends(require_roles("provider"))):
    account_id, url = start_onboarding(db, gateway, me)
    return OnboardingOut(accountId=account_id, onboardingUrl=url)


@router.post("/payments/connect/login-link", response_model=LoginLinkOut)
def connect_login_link(db: Session = Depends(get_db), gateway: StripeGateway = Depends(get_gateway),
                       me: User = Depends(require_roles("provider"))):
    return LoginLinkOut(url=dashboard_link(db, gateway, me))


@router.get("/payments/connect/status", response_model=ConnectStatusOut)
def connect_status(db: Session = Depends(get_db), me: User = Depends(require_roles("provider"))):
    acct = account_for_user(db, me.id)
    if not acct:
        return ConnectStatusOut(hasAccount=False)
    return ConnectStatusOut(
        hasAccount=True,
        accountId=acct.stripe_account_id,
        chargesEnabled=acct.charges_enabled,
        payoutsEnabled=acct.payouts_enabled,
        detailsSubmitted=acct.details_submitted,
    )
