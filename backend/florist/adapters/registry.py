"""
Process-wide adapter instances, picked from settings.

Routes receive them through FastAPI dependencies so tests can swap them via
`app.dependency_overrides`.
"""
from functools import lru_cache

from florist.adapters.mock_notifier import MockNotifier
from florist.adapters.mock_payment import MockPaymentAdapter
from florist.config import settings


@lru_cache(maxsize=1)
def get_payment_gateway():
    if settings.PAYMENT_ADAPTER == "stripe":
        from florist.adapters.stripe_payment import StripePaymentAdapter

        return StripePaymentAdapter(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
    return MockPaymentAdapter(
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        delay_ms=settings.PAYMENT_MOCK_DELAY_MS,
        auto_succeed=settings.PAYMENT_MOCK_AUTO_SUCCEED,
    )


@lru_cache(maxsize=1)
def get_notifier():
    if settings.NOTIFIER == "smtp":
        from florist.adapters.smtp_notifier import SmtpNotifier

        return SmtpNotifier(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            mail_from=settings.MAIL_FROM,
            admin_email=settings.ADMIN_EMAIL,
            shop_name=settings.SHOP_NAME,
            user=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
        )
    return MockNotifier()
