"""
Payment gateway and refund policy settings using pydantic-settings v2 with
nested env keys (e.g. PAYMENT__RAZORPAY__KEY_ID).

Kept apart from core.config.Settings; an explicit PaymentSettings instance is
handed to the gateway factory instead of the client reading ambient state.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class RazorpaySettings(BaseModel):
    key_id: Optional[str] = None
    key_secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    base_url: str = "https://api.razorpay.com/v1"
    # UPI handle used by the sandbox; other VPAs are real bank instruments
    sandbox_vpa_handle: str = "@razorpay"
    # None -> derived from the key prefix (rzp_test_)
    test_mode: Optional[bool] = None

    @property
    def is_test_mode(self) -> bool:
        if self.test_mode is not None:
            return self.test_mode
        return bool(self.key_id and self.key_id.startswith("rzp_test_"))

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)


class RefundPolicy(BaseModel):
    minimum_amount: int = 100  # minor units
    stale_after_days: int = 180
    store_timeout_seconds: float = 5.0
    effect_retry_attempts: int = 3
    effect_retry_backoff: float = 0.2
    # sandbox customer details that should never appear on live payments
    sandbox_emails: list[str] = Field(default_factory=lambda: ["user@example.com"])
    sandbox_contacts: list[str] = Field(default_factory=lambda: ["9999999999", "+919999999999"])


class NotificationSettings(BaseModel):
    # None -> notifications are logged only
    endpoint: Optional[str] = None
    timeout: float = 5.0
    api_key: Optional[str] = None


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="razorpay")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    razorpay: RazorpaySettings = Field(default_factory=RazorpaySettings)
    refund: RefundPolicy = Field(default_factory=RefundPolicy)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
