# clinicdesk/services/payment_gateway.py
import json
import logging
from typing import Optional, Dict, Any

import stripe
from fastapi import status

from ..config import get_settings
from ..exceptions import ApiError

logger = logging.getLogger(__name__)


class PaymentGateway:
    """Thin wrapper over the Stripe API returning plain dicts."""

    def __init__(self, secret_key: Optional[str], webhook_secret: Optional[str] = None, currency: str = "usd"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        self.enabled = bool(secret_key)
        if not self.enabled:
            logger.warning("STRIPE_SECRET_KEY not set - payments disabled")

    def _require_enabled(self):
        if not self.enabled:
            raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Payment provider is not configured")

    @staticmethod
    def _wrap(error: Exception) -> ApiError:
        message = getattr(error, "user_message", None) or str(error)
        logger.error(f"Stripe error: {message}")
        return ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Payment provider error: {message}")

    @staticmethod
    def _intent_dict(intent) -> Dict[str, Any]:
        metadata = getattr(intent, "metadata", None)
        return {
            "id": intent.id,
            "client_secret": getattr(intent, "client_secret", None),
            "status": intent.status,
            "amount": intent.amount,
            "currency": intent.currency,
            "metadata": {k: metadata[k] for k in metadata.keys()} if metadata else {},
        }

    def create_payment_intent(self, amount: int, currency: Optional[str] = None,
                              metadata: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """``amount`` is in minor units (cents)."""
        self._require_enabled()
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.secret_key,
                amount=amount,
                currency=currency or self.currency,
                metadata=metadata or {},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            raise self._wrap(e)
        logger.info(f"Created payment intent {intent.id} for {amount} {currency or self.currency}")
        return self._intent_dict(intent)

    def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        self._require_enabled()
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise self._wrap(e)
        return self._intent_dict(intent)

    def cancel_subscription(self, stripe_subscription_id: str) -> None:
        self._require_enabled()
        try:
            stripe.Subscription.cancel(stripe_subscription_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise self._wrap(e)
        logger.info(f"Cancelled Stripe subscription {stripe_subscription_id}")

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify a webhook payload and return the event as a dict."""
        if not self.webhook_secret:
            raise ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Stripe webhook secret is not configured")
        if not signature:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Missing Stripe signature header")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Invalid webhook payload")
        except stripe.SignatureVerificationError:
            raise ApiError(status.HTTP_400_BAD_REQUEST, "Invalid webhook signature")
        # Signature checked; the raw payload is the plain-dict form of the event
        return json.loads(payload)


def get_payment_gateway() -> PaymentGateway:
    settings = get_settings()
    return PaymentGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        currency=settings.invoice_currency,
    )
