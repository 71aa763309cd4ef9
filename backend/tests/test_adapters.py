import hashlib
import hmac
import json
import smtplib
import time
from types import SimpleNamespace

import pytest
import stripe

from florist.adapters import smtp_notifier
from florist.adapters.mock_payment import MockPaymentAdapter
from florist.adapters.smtp_notifier import SmtpNotifier
from florist.adapters.stripe_payment import StripePaymentAdapter
from florist.errors import PaymentGatewayError, WebhookSignatureInvalid
from florist.services.notifications import send_best_effort

ORDER = SimpleNamespace(
    order_number="BF-20300514-0001",
    status="prête",
    total_amount_cents=4500,
    customer_info={"name": "Camille", "email": "camille@example.com", "phone": "0601"},
    delivery_info={"type": "pickup", "date": "2030-05-14"},
    is_gift=True,
    gift_info={"recipient_name": "Louise", "sender_name": "Camille"},
    lines=[SimpleNamespace(name="Bouquet", variant_name="Moyen", quantity=1, unit_price_cents=4500)],
)


class FakeSMTP:
    sent = []
    fail_with = None

    def __init__(self, host, port, timeout=None):
        if FakeSMTP.fail_with:
            raise FakeSMTP.fail_with

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        pass

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(smtp_notifier.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def _notifier():
    return SmtpNotifier(
        host="smtp.test", port=587, mail_from="shop@test", admin_email="admin@test", shop_name="Bella Fleurs"
    )


def test_smtp_confirmation_and_admin_mail(fake_smtp):
    n = _notifier()
    assert n.send_order_confirmation(ORDER) is True
    assert n.send_new_order_notification(ORDER) is True
    customer_mail, admin_mail = fake_smtp.sent
    assert customer_mail["To"] == "camille@example.com"
    assert "BF-20300514-0001" in customer_mail["Subject"]
    assert "Bouquet (Moyen)" in customer_mail.get_content()
    assert admin_mail["To"] == "admin@test"
    assert "Louise" in admin_mail.get_content()


def test_smtp_status_mail_uses_labels(fake_smtp):
    assert _notifier().send_order_status_email(ORDER, "prête", "À retirer demain", previous_status="en_creation")
    body = fake_smtp.sent[0].get_content()
    assert "En cours de création" in body
    assert "Prête" in body
    assert "À retirer demain" in body


def test_smtp_failure_returns_false(fake_smtp):
    fake_smtp.fail_with = smtplib.SMTPConnectError(421, "busy")
    assert _notifier().send_order_confirmation(ORDER) is False


def test_send_best_effort_swallows_and_reports():
    def boom(order):
        raise RuntimeError("smtp down")

    assert send_best_effort("confirmation", boom, ORDER) is False
    assert send_best_effort("confirmation", lambda order: False, ORDER) is False
    assert send_best_effort("confirmation", lambda order: True, ORDER) is True


def test_mock_gateway_signature_roundtrip():
    gateway = MockPaymentAdapter(webhook_secret="whsec_x")
    pi = gateway.create_payment_intent(1000, metadata={"order_id": "7"})
    payload = gateway.build_event("payment_intent.succeeded", pi.id)
    event = gateway.construct_event(payload, gateway.sign(payload))
    assert event["data"]["object"]["metadata"] == {"order_id": "7"}
    with pytest.raises(WebhookSignatureInvalid):
        gateway.construct_event(payload, None)
    with pytest.raises(PaymentGatewayError):
        gateway.retrieve_payment_intent("pi_nope")


def _stripe_header(payload: bytes, secret: str) -> str:
    ts = int(time.time())
    sig = hmac.new(secret.encode(), f"{ts}.{payload.decode()}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def test_stripe_adapter_verifies_webhook_signature():
    adapter = StripePaymentAdapter("sk_test_x", "whsec_live")
    payload = json.dumps({"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_1"}}}).encode()
    event = adapter.construct_event(payload, _stripe_header(payload, "whsec_live"))
    assert event["data"]["object"]["id"] == "pi_1"

    with pytest.raises(WebhookSignatureInvalid):
        adapter.construct_event(payload, _stripe_header(payload, "whsec_other"))
    with pytest.raises(WebhookSignatureInvalid):
        adapter.construct_event(payload, None)


def test_stripe_adapter_retrieve(monkeypatch):
    def fake_retrieve(pi_id, api_key=None):
        assert api_key == "sk_test_x"
        return {
            "id": pi_id,
            "status": "requires_payment_method",
            "amount": 4500,
            "currency": "eur",
            "metadata": {"order_id": "3"},
            "client_secret": "cs",
            "last_payment_error": {"message": "card declined"},
        }

    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", fake_retrieve)
    info = StripePaymentAdapter("sk_test_x", "whsec").retrieve_payment_intent("pi_9")
    assert (info.id, info.status, info.amount) == ("pi_9", "requires_payment_method", 4500)
    assert info.metadata == {"order_id": "3"}
    assert info.last_error == "card declined"


def test_stripe_adapter_maps_sdk_errors(monkeypatch):
    def failing_retrieve(pi_id, api_key=None):
        raise stripe.StripeError("network down")

    monkeypatch.setattr(stripe.PaymentIntent, "retrieve", failing_retrieve)
    with pytest.raises(PaymentGatewayError):
        StripePaymentAdapter("sk_test_x", "whsec").retrieve_payment_intent("pi_9")
