"""Payment gateway settings configuration."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PAYMENT_GATEWAY_URL: str = "https://api.tosspayments.com"
    PAYMENT_CLIENT_KEY: str = "test_ck_local"
    PAYMENT_SECRET_KEY: SecretStr = SecretStr("test_sk_local")
    PAYMENT_WEBHOOK_SECRET: SecretStr = SecretStr("whsec_local_webhook_secret")
    PAYMENT_GATEWAY_TIMEOUT: float = 30.0
    # Skip the confirm round trip when the gateway is not configured (local dev)
    PAYMENT_GATEWAY_ENABLED: bool = True


payment_settings = PaymentSettings()
