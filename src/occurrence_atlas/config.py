"""Application settings loaded from environment variables and ``.env``.

GBIF account credentials (``GBIF_USER``, ``GBIF_PWD``, ``GBIF_EMAIL``) are
only needed to submit bulk downloads.  They are read here once and handed to
``BulkDownloadClient`` explicitly via ``Settings.credentials()``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from occurrence_atlas.schemas import Credentials

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Runtime configuration for the library, CLI and flows."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "occurrence-atlas"
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Transport
    api_base: str = "https://api.gbif.org/v1"
    timeout: float = 30.0

    # Local data store (archives, cached search results)
    data_dir: Path = Path("data")

    # Bulk download account
    gbif_user: str | None = None
    gbif_pwd: SecretStr | None = None
    gbif_email: str | None = None

    def credentials(self) -> Credentials | None:
        """Credentials for download submission, or None if any part is unset."""
        if not (self.gbif_user and self.gbif_pwd and self.gbif_email):
            return None
        return Credentials(user=self.gbif_user, password=self.gbif_pwd, email=self.gbif_email)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, built on first use."""
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger with the project format.

    ``level`` wins; otherwise ``DEBUG=true`` forces DEBUG, else ``LOG_LEVEL``.
    """
    settings = get_settings()
    level_name = (level or ("DEBUG" if settings.debug else settings.log_level)).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
    # urllib3 logs full request URLs at DEBUG; keep it quiet unless asked.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
