import hashlib
import hmac
import json
import time
from typing import Dict, Optional
from uuid import uuid4

from florist.adapters.payment import SUCCEEDED, PaymentIntentInfo
from florist.errors import PaymentGatewayError, WebhookSignatureInvalid


class MockPaymentAdapter:
    """
    In-memory stand-in for the payment gateway, used in development and tests.

    Payment intents live in a dict; tests move them between statuses with
    `set_status`. Webhook payloads are signed with HMAC-SHA256 over the raw
    body so the signature check is exercised the same way as in production.
    """

    def __init__(self, webhook_secret: str = "whsec_mock", delay_ms: int = 0, auto_succeed: bool = False):
        self.webhook_secret = webhook_secret or "whsec_mock"
        self.delay_seconds = delay_ms / 1000.0
        self.auto_succeed = auto_succeed
        self._intents: Dict[str, PaymentIntentInfo] = {}

    def create_payment_intent(
        self,
        amount_cents: int,
        currency: str = "eur",
        metadata: Optional[Dict[str, str]] = None,
        status: str = SUCCEEDED,
        payment_intent_id: Optional[str] = None,
    ) -> PaymentIntentInfo:
        pi = PaymentIntentInfo(
            id=payment_intent_id or f"pi_mock_{uuid4().hex[:24]}",
            status=status,
            amount=amount_cents,
            currency=currency,
            metadata=dict(metadata or {}),
            client_secret=f"secret_{uuid4().hex[:12]}",
        )
        self._intents[pi.id] = pi
        return pi

    def set_status(self, payment_intent_id: str, status: str, last_error: Optional[str] = None):
        pi = self._intents[payment_intent_id]
        pi.status = status
        pi.last_error = last_error

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentInfo:
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        pi = self._intents.get(payment_intent_id)
        if pi is None and self.auto_succeed:
            pi = self.create_payment_intent(0, payment_intent_id=payment_intent_id)
        if pi is None:
            raise PaymentGatewayError(f"No such payment_intent: {payment_intent_id}")
        return pi

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict:
        if not signature or not hmac.compare_digest(signature, self.sign(payload)):
            raise WebhookSignatureInvalid("Invalid webhook signature")
        try:
            return json.loads(payload)
        except ValueError:
            raise WebhookSignatureInvalid("Webhook payload is not valid JSON")

    def build_event(self, event_type: str, payment_intent_id: str) -> bytes:
        """Serialized webhook body for a stored intent (tests and local tooling)."""
        pi = self._intents[payment_intent_id]
        return json.dumps(
            {
                "id": f"evt_mock_{uuid4().hex[:16]}",
                "type": event_type,
                "data": {
                    "object": {
                        "id": pi.id,
                        "status": pi.status,
                        "amount": pi.amount,
                        "currency": pi.currency,
                        "metadata": pi.metadata,
                    }
                },
            }
        ).encode()

    def health_check(self) -> bool:
        return True
