from __future__ import annotations

import re
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_SCHEME = re.compile(r"^postgres(?:ql)?(\+\w+)?://")


def with_driver(url: str, driver: Optional[str] = None) -> str:
    """Rewrite the scheme of a Postgres URL to ``postgresql`` or ``postgresql+<driver>``."""
    scheme = f"postgresql+{driver}://" if driver else "postgresql://"
    return _SCHEME.sub(scheme, url, count=1)


class Settings(BaseSettings):
    """
    Connection settings for the CRM database.

    Either a full URL (POSTGRES_URL, or DATABASE_URL as hosted providers name it)
    or the POSTGRES_USER / POSTGRES_PASSWORD / POSTGRES_DB triple plus optional
    host, port and sslmode.
    """

    POSTGRES_URL: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("POSTGRES_URL", "DATABASE_URL"),
        description="Full connection URL; wins over the individual parts.",
    )
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_SSLMODE: Optional[str] = Field(default=None, description="libpq sslmode, e.g. 'require'")

    SQL_ECHO: bool = Field(default=False, description="Log every SQL statement")
    POOL_SIZE: int = Field(default=5, ge=1)
    MAX_OVERFLOW: int = Field(default=10, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    @property
    def database_url(self) -> str:
        if self.POSTGRES_URL:
            return with_driver(self.POSTGRES_URL)
        missing = [
            name
            for name in ("POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_DB")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"Database configuration missing: set POSTGRES_URL or {', '.join(missing)}")
        url = (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )
        if self.POSTGRES_SSLMODE:
            url += f"?sslmode={self.POSTGRES_SSLMODE}"
        return url

    @property
    def async_database_url(self) -> str:
        """URL for the asyncpg engine; asyncpg takes ``ssl=`` where libpq takes ``sslmode=``."""
        url = with_driver(self.database_url, "asyncpg")
        return re.sub(r"([?&])sslmode=", r"\1ssl=", url)

    @property
    def sync_database_url(self) -> str:
        return self.database_url


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Fresh database settings read from the environment."""
    return Settings()
