from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Tokens are minted by the identity service; this service only verifies them
    JWT_SECRET: SecretStr = SecretStr("local-development-jwt-secret")
    JWT_AUDIENCE: str = "authenticated"
    ADMIN_ROLE: str = "admin"
