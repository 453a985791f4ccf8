from pydantic import BaseModel
from typing import Optional


class OnboardingOut(BaseModel):
    accountId: str
    onboardingUrl: str


class LoginLinkOut(BaseModel):
    url: str


class ConnectStatusOut(BaseModel):
    hasAccount: bool
    accountId: Optional[str] = None
    chargesEnabled: bool = False
    payoutsEnabled: bool = False
    detailsSubmitted: bool = False


class WebhookAck(BaseModel):
    received: bool = True
