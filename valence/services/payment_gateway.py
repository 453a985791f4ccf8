"""
Stripe gateway.

Thin wrapper over the ``stripe`` SDK for the calls the booking lifecycle needs:
manual-capture holds, capture, void, payout transfers, Connect onboarding and
webhook verification. One instance is built by the process bootstrap and
handed to request handlers; it passes its API key per request instead of
setting ``stripe.api_key`` globally.

Every SDK failure surfaces as ``UpstreamError``; signature failures as
``SignatureError``.
"""

from dataclasses import dataclass
import json
import logging
from typing import Any, Dict, Optional

import stripe

from valence.core.errors import SignatureError, UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class StripeConfig:
    secret_key: str
    webhook_secret: str
    api_version: str = "2023-10-16"
    currency: str = "usd"
    max_network_retries: int = 2


@dataclass(frozen=True)
class Hold:
    id: str
    client_secret: str
    status: str


class StripeGateway:
    def __init__(self, cfg: StripeConfig):
        self.cfg = cfg
        stripe.max_network_retries = cfg.max_network_retries

    def _opts(self, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        opts: Dict[str, Any] = {"api_key": self.cfg.secret_key, "stripe_version": self.cfg.api_version}
        if idempotency_key:
            opts["idempotency_key"] = idempotency_key
        return opts

    # ---- holds ----

    def create_hold(self, *, amount_minor: int, metadata: Dict[str, str], idempotency_key: str) -> Hold:
        """Authorize ``amount_minor`` without capturing it."""
        try:
            pi = stripe.PaymentIntent.create(
                amount=amount_minor,
                currency=self.cfg.currency,
                capture_method="manual",
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
                **self._opts(idempotency_key),
            )
        except stripe.StripeError as e:
            logger.error("Stripe error creating hold: %s", e)
            raise UpstreamError("Failed to create payment intent") from e
        return Hold(id=pi["id"], client_secret=pi["client_secret"], status=pi["status"])

    def void_hold(self, payment_intent_id: str) -> str:
        """Cancel a hold. Voiding an already-cancelled hold is a no-op."""
        try:
            pi = stripe.PaymentIntent.cancel(payment_intent_id, **self._opts(f"void:{payment_intent_id}"))
            return pi["status"]
        except stripe.InvalidRequestError as e:
            if e.code == "payment_intent_unexpected_state":
                current = self.retrieve_hold_status(payment_intent_id)
                if current == "canceled":
                    logger.info("Hold %s already voided", payment_intent_id)
                    return current
            logger.error("Stripe error voiding hold %s: %s", payment_intent_id, e)
            raise UpstreamError("Failed to void payment intent") from e
        except stripe.StripeError as e:
            logger.error("Stripe error voiding hold %s: %s", payment_intent_id, e)
            raise UpstreamError("Failed to void payment intent") from e

    def retrieve_hold_status(self, payment_intent_id: str) -> str:
        try:
            pi = stripe.PaymentIntent.retrieve(payment_intent_id, **self._opts())
        except stripe.StripeError as e:
            logger.error("Stripe error retrieving hold %s: %s", payment_intent_id, e)
            raise UpstreamError("Failed to retrieve payment intent") from e
        return pi["status"]

    def capture_hold(self, payment_intent_id: str, *, idempotency_key: str) -> str:
        try:
            pi = stripe.PaymentIntent.capture(payment_intent_id, **self._opts(idempotency_key))
        except stripe.StripeError as e:
            logger.error("Stripe error capturing hold %s: %s", payment_intent_id, e)
            raise UpstreamError("Failed to capture payment") from e
        return pi["status"]

    # ---- payouts ----

    def create_transfer(
        self,
        *,
        amount_minor: int,
        destination: str,
        idempotency_key: str,
        source_transaction: Optional[str] = None,
        transfer_group: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        params: Dict[str, Any] = {
            "amount": amount_minor,
            "currency": self.cfg.currency,
            "destination": destination,
            "metadata": metadata or {},
        }
        if source_transaction:
            params["source_transaction"] = source_transaction
        if transfer_group:
            params["transfer_group"] = transfer_group
        try:
            transfer = stripe.Transfer.create(**params, **self._opts(idempotency_key))
        except stripe.StripeError as e:
            logger.error("Stripe error creating transfer to %s: %s", destination, e)
            raise UpstreamError("Failed to transfer funds to provider") from e
        return transfer["id"]

    # ---- Connect ----

    def create_connected_account(self, *, email: str, profile_url: str) -> str:
        try:
            account = stripe.Account.create(
                type="express",
                country="US",
                email=email,
                capabilities={"card_payments": {"requested": True}, "transfers": {"requested": True}},
                business_type="individual",
                business_profile={"url": profile_url, "mcc": "7299"},
                **self._opts(),
            )
        except stripe.StripeError as e:
            logger.error("Stripe error creating connected account: %s", e)
            raise UpstreamError("Failed to create payout account") from e
        return account["id"]

    def create_onboarding_link(self, account_id: str, *, refresh_url: str, return_url: str) -> str:
        try:
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
                **self._opts(),
            )
        except stripe.StripeError as e:
            logger.error("Stripe error creating onboarding link for %s: %s", account_id, e)
            raise UpstreamError("Failed to create onboarding link") from e
        return link["url"]

    def create_login_link(self, account_id: str) -> str:
        try:
            link = stripe.Account.create_login_link(account_id, **self._opts())
        except stripe.StripeError as e:
            logger.error("Stripe error creating login link for %s: %s", account_id, e)
            raise UpstreamError("Failed to create dashboard link") from e
        return link["url"]

    # ---- webhooks ----

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the Stripe-Signature header and return the event as a plain dict."""
        if not signature:
            raise SignatureError("Invalid signature")
        if not self.cfg.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not configured; rejecting webhook")
            raise SignatureError("Invalid signature")
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.cfg.webhook_secret, stripe.Webhook.DEFAULT_TOLERANCE
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", e)
            raise SignatureError("Invalid signature") from e
        try:
            event = json.loads(body)
        except ValueError as e:
            logger.warning("Invalid webhook payload: %s", e)
            raise SignatureError("Invalid signature") from e
        if not isinstance(event, dict) or "type" not in event:
            raise SignatureError("Invalid signature")
        return event


def build_gateway(settings) -> StripeGateway:
    return StripeGateway(StripeConfig(
        secret_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        api_version=settings.STRIPE_API_VERSION,
        currency=settings.PAYMENT_CURRENCY,
        max_network_retries=settings.STRIPE_MAX_NETWORK_RETRIES,
    ))
