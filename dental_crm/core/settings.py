from __future__ import annotations

import json
from typing import Annotated, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# raw env strings reach the validator instead of being JSON-decoded first
StrList = Annotated[List[str], NoDecode]


def _csv_list(value) -> List[str]:
    """'a, b' or ['a', 'b'] -> ['a', 'b']; empty input means everything ('*')."""
    if isinstance(value, str) and value.lstrip().startswith("["):
        value = json.loads(value)
    elif isinstance(value, str):
        value = [part.strip() for part in value.split(",")]
    items = [str(v) for v in (value or []) if str(v).strip()]
    return items or ["*"]


class AppSettings(BaseSettings):
    """
    Service-wide settings read from the environment (and .env).

    Database connection settings live in dental_crm.db.config.Settings.
    """

    APP_NAME: str = "Dental CRM API"
    APP_DESCRIPTION: str = (
        "Sales-force backend for a dental supply distributor: clients, field visits, "
        "quotations, dispatch routes, permissions and dashboards."
    )
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = Field(default="INFO", description="Root log level name")

    CORS_ORIGINS: StrList = Field(default_factory=lambda: ["*"], description="Comma-separated or JSON list")
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: StrList = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: StrList = Field(default_factory=lambda: ["*"])

    RUN_MIGRATIONS_ON_STARTUP: bool = Field(default=True, description="alembic upgrade head at startup")
    AUTO_SEED: bool = Field(default=False, description="Insert roles, permissions and demo rows at startup")

    # Tokens
    JWT_SECRET_KEY: str = Field(default="change-me", description="HMAC signing secret")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # The owner always holds every permission and cannot be edited by anyone
    OWNER_EMAIL: Optional[str] = None

    # Field work
    GEOFENCE_RADIUS_METERS: float = 500.0
    VISIT_TIME_LIMIT_MINUTES: int = 20
    NEGLECTED_CLIENT_DAYS: int = 15
    DEFAULT_CLIENT_LAT: float = Field(default=-33.4489, description="Fallback latitude (Santiago)")
    DEFAULT_CLIENT_LNG: float = Field(default=-70.6693, description="Fallback longitude (Santiago)")
    DEFAULT_CLIENT_ZONE: str = "Santiago"

    # Dispatch origin: Americo Vespucio 2880, Conchali
    DEPOT_LAT: float = -33.3768
    DEPOT_LNG: float = -70.6725
    MAPS_MAX_WAYPOINTS_PER_LINK: int = Field(default=8, ge=1)

    # Quotations
    TAX_RATE: float = Field(default=0.19, description="IVA over the subtotal")
    QUOTATION_VALIDITY_DAYS: int = 15
    COMPANY_NAME: str = "3Dental Digital"

    # Dashboard time accounting, in minutes per item
    DIGITAL_ORDER_MINUTES: int = 15
    CALL_MINUTES: int = 7
    DEFAULT_COMMISSION_RATE: float = 0.01

    # Google
    GOOGLE_MAPS_API_KEY: Optional[str] = None
    GOOGLE_HTTP_TIMEOUT_SECONDS: float = 30.0
    EMAIL_ATTACHMENT_MAX_BYTES: int = 20 * 1024 * 1024

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("CORS_ORIGINS", "CORS_ALLOW_METHODS", "CORS_ALLOW_HEADERS", mode="before")
    @classmethod
    def _parse_lists(cls, v):
        return _csv_list(v)

    @property
    def owner_email(self) -> Optional[str]:
        """Owner e-mail lower-cased for comparisons."""
        return self.OWNER_EMAIL.strip().lower() if self.OWNER_EMAIL else None


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """Settings built from the current environment on every call."""
    return AppSettings()
