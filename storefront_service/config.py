"""
config.py — Runtime Configuration for the Storefront Service

All settings are read from the environment (or a local `.env` file) exactly once,
when the application is created. The resulting `Settings` object is frozen and
handed to every handler through `app.state`, so no module reads `os.environ`
at call time.

Required:
    STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, PRINTFUL_API_KEY, FRONTEND_URL

Missing required values raise a `pydantic.ValidationError` at startup.
"""

from __future__ import annotations

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PORT: int = 5000
    HOST: str = "0.0.0.0"

    STRIPE_SECRET_KEY: str = Field(min_length=1)
    STRIPE_WEBHOOK_SECRET: str = Field(min_length=1)
    PRINTFUL_API_KEY: str = Field(min_length=1)
    FRONTEND_URL: AnyHttpUrl

    PRINTFUL_BASE_URL: AnyHttpUrl = "https://api.printful.com"
    PRINTFUL_STORE_ID: str | None = None
    PRINTFUL_TIMEOUT_SECONDS: float = 10.0
    PRINTFUL_MAX_CONCURRENCY: int = Field(default=8, ge=1)
    PRINTFUL_CONFIRM_ORDERS: bool = True

    CHECKOUT_CURRENCY: str = Field(default="usd", min_length=3, max_length=3)
    SHIPPING_COUNTRIES: str = "US,CA"
    DEFAULT_COUNTRY_CODE: str = Field(default="US", min_length=2, max_length=2)

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None
    API_BANNER: str = "Welcome to the DadHatHub API!"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    @field_validator("SHIPPING_COUNTRIES")
    @classmethod
    def validate_shipping_countries(cls, value: str) -> str:
        countries = [code.strip().upper() for code in value.split(",") if code.strip()]
        if not countries:
            raise ValueError("SHIPPING_COUNTRIES must include at least one country code")
        return ",".join(countries)

    @field_validator("CHECKOUT_CURRENCY")
    @classmethod
    def normalize_currency(cls, value: str) -> str:
        return value.lower()

    @field_validator("DEFAULT_COUNTRY_CODE")
    @classmethod
    def normalize_country(cls, value: str) -> str:
        return value.upper()

    @property
    def frontend_url(self) -> str:
        return str(self.FRONTEND_URL).rstrip("/")

    @property
    def printful_base_url(self) -> str:
        return str(self.PRINTFUL_BASE_URL).rstrip("/")

    @property
    def allowed_countries(self) -> list[str]:
        return self.SHIPPING_COUNTRIES.split(",")


def load_settings(**overrides) -> Settings:
    """Builds the settings object; keyword overrides win over the environment."""
    return Settings(**overrides)
