"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Provider credentials live under their own prefix (``WOMPI__PUBLIC_KEY``,
``STRIPE__WEBHOOK_SECRET`` ...); a provider counts as configured when its
required credentials are present.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 10.0
    write: float = 10.0
    total: float = 12.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    signature_header: str = "X-Webhook-Signature"
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks


class ProviderCredentials(BaseModel):
    webhook_secret: Optional[str] = None
    sandbox: bool = True
    # optional overrides of the built-in provider table
    min_amount: Optional[int] = None
    max_amount: Optional[int] = None

    def required_credentials(self) -> tuple[Optional[str], ...]:
        return ()

    @property
    def configured(self) -> bool:
        required = self.required_credentials()
        return bool(required) and all(required)


class WompiSettings(ProviderCredentials):
    public_key: Optional[str] = None
    private_key: Optional[str] = None
    base_url: str = "https://sandbox.wompi.co/v1"

    def required_credentials(self):
        return (self.public_key, self.private_key)


class MercadoPagoSettings(ProviderCredentials):
    access_token: Optional[str] = None
    public_key: Optional[str] = None
    base_url: str = "https://api.mercadopago.com"

    def required_credentials(self):
        return (self.access_token,)


class StripeSettings(ProviderCredentials):
    secret_key: Optional[str] = None
    publishable_key: Optional[str] = None

    def required_credentials(self):
        return (self.secret_key,)


class PayPalSettings(ProviderCredentials):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    base_url: str = "https://api-m.sandbox.paypal.com"

    def required_credentials(self):
        return (self.client_id, self.client_secret)


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="stripe", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    default_currency: str = Field(default="COP", validation_alias="PAYMENT__DEFAULT_CURRENCY")
    platform_fee_rate: Decimal = Field(default=Decimal("0.05"), validation_alias="PAYMENT__PLATFORM_FEE_RATE")
    iva_rate: Decimal = Field(default=Decimal("0.19"), validation_alias="PAYMENT__IVA_RATE")
    retention_rate: Decimal = Field(default=Decimal("0"), validation_alias="PAYMENT__RETENTION_RATE")
    charge_timeout_seconds: float = Field(default=15.0, validation_alias="PAYMENT__CHARGE_TIMEOUT_SECONDS")
    processing_timeout_seconds: int = Field(default=900, validation_alias="PAYMENT__PROCESSING_TIMEOUT_SECONDS")
    sweep_interval_seconds: int = Field(default=300, validation_alias="PAYMENT__SWEEP_INTERVAL_SECONDS")
    invoice_due_days: int = Field(default=30, validation_alias="PAYMENT__INVOICE_DUE_DAYS")
    stale_retry_attempts: int = Field(default=3, validation_alias="PAYMENT__STALE_RETRY_ATTEMPTS")

    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    wompi: WompiSettings = Field(default_factory=WompiSettings)
    mercadopago: MercadoPagoSettings = Field(default_factory=MercadoPagoSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)
    paypal: PayPalSettings = Field(default_factory=PayPalSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
        populate_by_name=True,
    )

    @field_validator("platform_fee_rate", "iva_rate", "retention_rate")
    @classmethod
    def _rate_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 1:
            raise ValueError(f"rate must be within [0, 1], got {v}")
        return v

    @field_validator("charge_timeout_seconds", "processing_timeout_seconds", "sweep_interval_seconds")
    @classmethod
    def _positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v

    def provider(self, key: str) -> ProviderCredentials:
        creds = getattr(self, key, None)
        if not isinstance(creds, ProviderCredentials):
            raise KeyError(key)
        return creds


payment_settings = PaymentSettings()
