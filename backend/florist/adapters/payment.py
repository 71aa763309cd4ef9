from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

SUCCEEDED = "succeeded"
REQUIRES_ACTION = "requires_action"
PROCESSING = "processing"
CANCELED = "canceled"
REQUIRES_PAYMENT_METHOD = "requires_payment_method"

EVENT_PAYMENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_PAYMENT_FAILED = "payment_intent.payment_failed"


@dataclass
class PaymentIntentInfo:
    id: str
    status: str
    amount: int
    currency: str = "eur"
    metadata: Dict[str, str] = field(default_factory=dict)
    client_secret: Optional[str] = None
    last_error: Optional[str] = None


class PaymentGateway(Protocol):
    """What the core needs from the payment provider: status lookup and webhook verification."""

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentInfo: ...

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict: ...

    def health_check(self) -> bool: ...
