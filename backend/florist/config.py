from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # payment gateway: "mock" or "stripe"
    PAYMENT_ADAPTER: str = "mock"
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    PAYMENT_MOCK_DELAY_MS: int = 0
    # mock gateway reports unknown payment intents as succeeded (local race testing)
    PAYMENT_MOCK_AUTO_SUCCEED: bool = False

    # notifications: "mock" or "smtp"
    NOTIFIER: str = "mock"
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    MAIL_FROM: str = "boutique@example.com"
    ADMIN_EMAIL: str = "admin@example.com"
    SHOP_NAME: str = "Bella Fleurs"

    CART_MAX_QUANTITY: int = 50
    CART_TTL_DAYS: int = 7
    CART_SESSION_COOKIE: str = "cart_session"
    CART_SESSION_MAX_AGE: int = 30 * 24 * 60 * 60
    CART_CLEANUP_INTERVAL_SECONDS: int = 3600

    ORDER_NUMBER_PREFIX: str = "BF"
    ORDER_NUMBER_MAX_ATTEMPTS: int = 5

    # invoices: prices are VAT-inclusive, the VAT share is shown on the invoice
    INVOICE_PREFIX: str = "FA"
    VAT_RATE_PERCENT: int = 20

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
