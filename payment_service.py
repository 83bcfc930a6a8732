"""
payment_service.py — The Till
=============================
Stripe payment intents for a single analysis.

- create_intent: called by the browser before an analysis (returns client secret)
- verify_intent: called by /analyze before any model call; an intent is only
  good if Stripe says it SUCCEEDED. Intents are re-checked every time, never
  marked as used.
"""

import logging
from typing import Optional

import stripe

from config import AnalysisConfig
from errors import GatewayError, PaymentRequired

log = logging.getLogger("payments")

SUCCEEDED = "succeeded"


class PaymentIntentFailed(GatewayError):
    message = "Failed to create payment intent"


class StripePayments:
    def __init__(self, cfg: AnalysisConfig):
        self.cfg = cfg
        self.api_key = cfg.stripe_secret_key

    def _require_key(self):
        if not self.api_key:
            log.error("Stripe secret key not configured")
            raise PaymentIntentFailed(details="Payment processor is not configured")

    def create_intent(self) -> dict:
        self._require_key()
        try:
            intent = stripe.PaymentIntent.create(
                amount=self.cfg.analysis_price_cents,
                currency=self.cfg.currency,
                description="Appliance Age Analysis",
                metadata={"service": "appliance_analysis"},
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            log.error(f"Payment error: {e.user_message or e.__class__.__name__}")
            raise PaymentIntentFailed(details=e.user_message or "Payment processor error")

        log.info(f"Payment intent created: {intent.id} ({self.cfg.analysis_price_cents} cents)")
        return {"clientSecret": intent.client_secret, "amount": self.cfg.analysis_price_cents}

    def intent_status(self, payment_intent_id: str) -> str:
        self._require_key()
        intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key)
        return intent.status


def verify_intent(payments, payment_intent_id: Optional[str]) -> None:
    """Raise PaymentRequired unless the referenced intent has succeeded."""
    if not payment_intent_id:
        log.warning("Analysis attempted without a payment reference")
        raise PaymentRequired("Payment required. Please complete payment first.")

    try:
        status = payments.intent_status(payment_intent_id)
    except stripe.StripeError as e:
        log.warning(f"Payment lookup failed for {payment_intent_id}: {e.__class__.__name__}")
        raise PaymentRequired("Payment verification failed. Please try payment again.")
    except GatewayError:
        log.error("Payment lookup impossible: processor not configured")
        raise PaymentRequired("Payment verification failed. Please try payment again.")

    if status != SUCCEEDED:
        log.warning(f"Payment {payment_intent_id} not completed (status={status})")
        raise PaymentRequired("Payment not completed. Please complete payment first.")

    log.info(f"✅ Payment verified: {payment_intent_id}")
