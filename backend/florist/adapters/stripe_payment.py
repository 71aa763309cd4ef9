import json
from typing import Optional

import stripe

from florist.adapters.payment import PaymentIntentInfo
from florist.errors import PaymentGatewayError, WebhookSignatureInvalid
from florist.utils.logging import get_logger

log = get_logger("stripe")


class StripePaymentAdapter:
    def __init__(self, secret_key: str, webhook_secret: str):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentInfo:
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            log.error("retrieve %s failed: %s", payment_intent_id, e)
            raise PaymentGatewayError(
                getattr(e, "user_message", None) or "Payment service error",
                details={"stripe_code": getattr(e, "code", None)},
            )
        last_error = intent.get("last_payment_error")
        return PaymentIntentInfo(
            id=intent["id"],
            status=intent["status"],
            amount=intent["amount"],
            currency=intent["currency"],
            metadata=dict(intent.get("metadata") or {}),
            client_secret=intent.get("client_secret"),
            last_error=last_error.get("message") if last_error else None,
        )

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict:
        if not signature:
            raise WebhookSignatureInvalid("Missing Stripe signature")
        if not self.webhook_secret:
            raise PaymentGatewayError("Webhook secret not configured")
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), signature, self.webhook_secret
            )
        except stripe.SignatureVerificationError as e:
            log.warning("webhook signature rejected: %s", e)
            raise WebhookSignatureInvalid(f"Invalid signature: {e}")
        return json.loads(payload)

    def health_check(self) -> bool:
        return bool(self.secret_key)
