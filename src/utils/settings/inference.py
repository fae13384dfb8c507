"""AI inference provider settings configuration."""

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class InferenceSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    INFERENCE_SERVER_URL: str = "http://localhost:8020"
    INFERENCE_API_KEY: SecretStr = SecretStr("")


inference_settings = InferenceSettings()
