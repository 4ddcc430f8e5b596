"""LPO uploader configuration.

Read once at startup from the environment (prefix ``LPO_``) and an optional
``.env`` file, then passed explicitly to every component. The settings
object is frozen; nothing reads the environment after ``load_settings()``.
"""

from __future__ import annotations

import logging
import sys
from typing import Literal

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings

from lpo_uploader.errors import ConfigurationError

logger = logging.getLogger(__name__)

_REQUIRED = ("shop_domain", "access_token", "webhook_secret")

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseSettings):
    """Environment-driven settings for the uploader service."""

    # Shopify store + credentials (required, checked by load_settings)
    shop_domain: str = ""
    access_token: str = ""
    webhook_secret: str = ""
    api_version: str = "2025-01"

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = ["*"]

    # Upload transport: inline base64 data URL or staged multipart upload
    transport_mode: Literal["base64", "staged"] = "base64"
    file_alt: str = "LPO File"
    max_upload_bytes: int = 20 * 1024 * 1024

    # Metafield slot
    metafield_namespace: str = "custom"
    metafield_key: str = "lpo_file"
    metafield_type: str = "single_line_text_field"

    # Order note attribute carrying the file URL in webhooks
    attribute_name: str = "lpo_file"

    # Outbound call policy
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    resolve_attempts: int = 6
    resolve_base_delay: float = 0.5
    resolve_max_delay: float = 8.0

    log_level: str = "INFO"

    model_config = {
        "env_prefix": "LPO_",
        "env_file": ".env",
        "extra": "ignore",
        "frozen": True,
    }

    @field_validator("shop_domain")
    @classmethod
    def _strip_scheme(cls, value: str) -> str:
        value = value.strip()
        for prefix in ("https://", "http://"):
            if value.startswith(prefix):
                value = value[len(prefix):]
        return value.rstrip("/")

    @property
    def graphql_endpoint(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

    def missing_credentials(self) -> list[str]:
        """Env var names of required settings that are unset or blank."""
        return [
            f"LPO_{name.upper()}"
            for name in _REQUIRED
            if not str(getattr(self, name)).strip()
        ]


def load_settings(**overrides) -> Settings:
    """Build settings and fail fast if any credential is missing.

    Raises:
        ConfigurationError: listing every missing required variable, or a
            value that fails validation.
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ConfigurationError([f"LPO_{f.upper()} (invalid)" for f in fields]) from e

    missing = settings.missing_credentials()
    if missing:
        raise ConfigurationError(missing)

    logger.info(
        "Configuration loaded: shop=%s api_version=%s transport=%s",
        settings.shop_domain,
        settings.api_version,
        settings.transport_mode,
    )
    return settings


def configure_logging(level: str = "INFO") -> None:
    """Install a single stderr handler on the root logger."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level.upper())
    # httpx logs every request at INFO; keep that out of the audit trail
    logging.getLogger("httpx").setLevel(logging.WARNING)
