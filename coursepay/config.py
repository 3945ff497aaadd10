"""coursepay configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import SecretStr
from pydantic_settings import BaseSettings


@dataclass(frozen=True)
class WebhookSecrets:
    """Per-provider webhook signing secrets, read-only for the process lifetime."""

    cashfree: str = field(default="", repr=False)
    razorpay: str = field(default="", repr=False)

    def for_provider(self, provider: str) -> str:
        """Return the secret for a provider tag ("" when not configured)."""
        name = getattr(provider, "value", provider)
        return {"cashfree": self.cashfree, "razorpay": self.razorpay}.get(name, "")


class Settings(BaseSettings):
    """Environment-driven settings for the webhook service."""

    cashfree_webhook_secret: SecretStr = SecretStr("")
    razorpay_webhook_secret: SecretStr = SecretStr("")

    # Delivery dedup; empty disables it
    redis_url: str = ""
    webhook_dedup_ttl_seconds: int = 86400

    webhook_rate_limit: str = "120/minute"
    webhook_max_body_bytes: int = 1_048_576

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    def webhook_secrets(self) -> WebhookSecrets:
        return WebhookSecrets(
            cashfree=self.cashfree_webhook_secret.get_secret_value(),
            razorpay=self.razorpay_webhook_secret.get_secret_value(),
        )
