"""Application settings.

Settings are resolved once at startup from three places, highest precedence first:

1. environment variables (only when set to a non-empty value)
2. ``config.<mode>.json``, or ``config.json`` when no mode-specific file exists
3. field defaults

Config files are optional. File keys match field names ignoring case and
underscores, so ``POSTGRES_DB_URL`` and ``PostgresDbUrl`` are equivalent.
``TEMPLATE_DATA`` is only read from the file.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, ValidationError, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    EnvSettingsSource,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
)

from task_mgmt.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEVELOP_MODE = "develop"
PRODUCTION_MODE = "production"
TEST_MODE = "test"

MODE_ENV_VAR = "TASK_MGMT_MODE"
CONFIG_DIR_ENV_VAR = "TASK_MGMT_CONFIG_DIR"
DEFAULT_PORT = "8080"

# Checked in this order; the first empty one is reported.
REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("PORT", "port"),
    ("POSTGRES_DB_URL", "postgres_db_url"),
    ("GITHUB_REPO_OWNER", "github_repo_owner"),
    ("GITHUB_REPO_NAME", "github_repo_name"),
    ("IDENTITY_SERVER_URL", "identity_server_url"),
)

# Read from the config file only, never from the environment.
FILE_ONLY_FIELDS = frozenset({"template_data"})


class _EnvSource(EnvSettingsSource):
    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        if field_name in FILE_ONLY_FIELDS:
            return None, field_name, False
        return super().get_field_value(field, field_name)


class Settings(BaseSettings):
    """Process-wide settings. Built once by ``resolve_settings`` and never mutated."""

    port: str = ""
    url_root: str = ""
    # Public key used for signing.
    public_key: str = ""
    # Serve TLS directly. Not needed behind a TLS-terminating proxy.
    tls: bool = False
    # Redirect requests carrying X-Forwarded-Proto: http to https.
    proxy_force_https: bool = False
    postgres_db_url: str = ""
    # Only used for manual certificate generation.
    certbot_response: str = ""
    github_repo_owner: str = ""
    github_repo_name: str = ""
    postmark_key: str = ""
    user_cookie_key: str = ""
    identity_server_url: str = ""
    email_notification_recipients: Annotated[list[str], NoDecode] = Field(default_factory=list)
    template_data: dict[str, Any] = Field(default_factory=dict)

    model_config = SettingsConfigDict(
        frozen=True,
        extra="ignore",
        case_sensitive=False,
        env_ignore_empty=True,
        coerce_numbers_to_str=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Config file values arrive as init kwargs; the environment wins over them.
        return (_EnvSource(settings_cls), init_settings)

    @field_validator("tls", "proxy_force_https", mode="before")
    @classmethod
    def _parse_flag(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() in {"true", "t"}
        return value

    @field_validator("email_notification_recipients", mode="before")
    @classmethod
    def _split_recipients(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    def summary(self) -> dict[str, Any]:
        """Notable, non-secret settings for the startup log line."""
        return {
            "port": self.port,
            "url_root": self.url_root,
            "tls": self.tls,
            "proxy_force_https": self.proxy_force_https,
            "github_repo": f"{self.github_repo_owner}/{self.github_repo_name}",
            "identity_server_url": self.identity_server_url,
            "notification_recipients": len(self.email_notification_recipients),
        }


_FOLDED_FIELD_NAMES = {name.replace("_", ""): name for name in Settings.model_fields}


def current_mode() -> str:
    return os.getenv(MODE_ENV_VAR, "").strip() or DEVELOP_MODE


def find_config_file(mode: str, config_dir: str | Path | None = None) -> Path | None:
    """Return ``config.<mode>.json`` if present, else ``config.json``, else None."""
    base = Path(config_dir or os.getenv(CONFIG_DIR_ENV_VAR) or Path.cwd())
    candidates = [base / "config.json"]
    if mode:
        candidates.insert(0, base / f"config.{mode}.json")
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def load_config_file(path: Path) -> dict[str, Any]:
    """Read a JSON config file into field-name keyed values."""
    logger.info("config event=read_file path=%s", path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"error reading {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"error parsing {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"error parsing {path}: expected a JSON object")
    return {_field_name(key): value for key, value in raw.items()}


def _field_name(key: Any) -> str:
    # POSTGRES_DB_URL, postgres_db_url and PostgresDbUrl all name the same field.
    folded = str(key).replace("_", "").lower()
    return _FOLDED_FIELD_NAMES.get(folded, str(key).lower())


def resolve_settings(mode: str | None = None, *, config_dir: str | Path | None = None) -> Settings:
    """Resolve settings for ``mode``; raise ConfigurationError when required values are missing."""
    if mode is None:
        mode = current_mode()

    file_values: dict[str, Any] = {}
    config_file = find_config_file(mode, config_dir)
    if config_file is not None:
        file_values = load_config_file(config_file)

    try:
        settings = Settings(**file_values)
    except (ValidationError, SettingsError) as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc

    if not settings.port:
        settings = settings.model_copy(update={"port": DEFAULT_PORT})

    for key, attr in REQUIRED_FIELDS:
        if not getattr(settings, attr):
            raise ConfigurationError(
                f"{key} env variable or config key must be set",
                field=key,
            )

    return settings
