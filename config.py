"""
Application settings.

Every external credential is read once into ``settings``. A missing key never
stops the process: the feature that needs it reports itself as not configured.
"""
from __future__ import annotations
import os
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # App / site
    APP_URL: str = os.getenv("APP_URL", "http://localhost:8000")
    SITE_NAME: str = "Geek Creations"
    SITE_EMAIL: str = "noreply@geekcreations.com"
    SITE_LOGO_URL: str = "/logo.png"

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "pod_storefront")
    DATABASE_ADMIN_URL: str = ""

    # Shopify
    SHOPIFY_STORE_DOMAIN: str = ""
    SHOPIFY_ACCESS_TOKEN: str = ""
    SHOPIFY_WEBHOOK_SECRET: str = ""
    SHOPIFY_CURRENCY_CODE: str = "NGN"
    SHOPIFY_API_VERSION: str = "2024-10"

    # Print-on-demand providers
    PRINTFUL_API_KEY: str = ""
    PRINTIFY_API_KEY: str = ""
    PRINTIFY_SHOP_ID: str = ""
    IKONSHOP_API_KEY: str = ""
    IKONSHOP_API_URL: str = "https://api.ikonshop.com/v1"

    # Payments
    PAYMENT_PROVIDER: str = "paystack"
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_PUBLIC_KEY: str = ""
    FLUTTERWAVE_SECRET_KEY: str = ""
    FLUTTERWAVE_PUBLIC_KEY: str = ""
    FLUTTERWAVE_SECRET_HASH: str = ""
    MONNIFY_API_KEY: str = ""
    MONNIFY_SECRET_KEY: str = ""

    # Crypto
    SOLANA_RPC_URL: str = "https://api.mainnet-beta.solana.com"
    SOLANA_WALLET_ADDRESS: str = ""
    SOLANA_SPL_TOKEN: str = ""

    # Email (EmailJS REST API)
    EMAILJS_SERVICE_ID: str = ""
    EMAILJS_TEMPLATE_ID: str = ""
    EMAILJS_PUBLIC_KEY: str = ""

    # Admin access
    ADMIN_EMAIL_DOMAINS: str = "geekcreations.com,codeoven.tech"
    ADMIN_EMAILS: str = "admin@geekscreation.com"

    CRON_SECRET: str = ""
    EXCHANGE_RATE_API_URL: str = "https://open.er-api.com/v6/latest"

    # Commerce rules
    TAX_RATE: float = 0.075
    FREE_SHIPPING_THRESHOLD: float = 50000
    SHIPPING_COST: float = 2500

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"

    @property
    def admin_database_url(self) -> str:
        return self.DATABASE_ADMIN_URL or self.DATABASE_URL

    @property
    def admin_domains(self) -> list[str]:
        return [d.strip().lower().lstrip("@") for d in self.ADMIN_EMAIL_DOMAINS.split(",") if d.strip()]

    @property
    def admin_emails(self) -> list[str]:
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()]

    def is_shopify_configured(self) -> bool:
        return bool(self.SHOPIFY_STORE_DOMAIN and self.SHOPIFY_ACCESS_TOKEN)

    def is_email_configured(self) -> bool:
        return bool(self.EMAILJS_SERVICE_ID and self.EMAILJS_TEMPLATE_ID and self.EMAILJS_PUBLIC_KEY)

    def is_pod_configured(self, provider: str) -> bool:
        if provider == "printful":
            return bool(self.PRINTFUL_API_KEY)
        if provider == "printify":
            return bool(self.PRINTIFY_API_KEY and self.PRINTIFY_SHOP_ID)
        if provider == "ikonshop":
            return bool(self.IKONSHOP_API_KEY)
        return provider in ("manual", "local_print")

    def is_payment_configured(self, provider: str) -> bool:
        if provider == "paystack":
            return bool(self.PAYSTACK_SECRET_KEY)
        if provider == "flutterwave":
            return bool(self.FLUTTERWAVE_SECRET_KEY and self.FLUTTERWAVE_PUBLIC_KEY)
        if provider == "monnify":
            return bool(self.MONNIFY_API_KEY and self.MONNIFY_SECRET_KEY)
        if provider == "solana":
            return bool(self.SOLANA_WALLET_ADDRESS)
        return False

    def configuration_status(self) -> dict[str, Any]:
        return {
            "shopify": self.is_shopify_configured(),
            "webhook_secret": bool(self.SHOPIFY_WEBHOOK_SECRET),
            "email": self.is_email_configured(),
            "pod": {p: self.is_pod_configured(p) for p in ("printful", "printify", "ikonshop")},
            "payments": {
                p: self.is_payment_configured(p)
                for p in ("paystack", "flutterwave", "monnify", "solana")
            },
            "payment_provider": self.PAYMENT_PROVIDER,
        }


settings = Settings()
