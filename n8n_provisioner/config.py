"""Provisioning configuration.

One immutable ``Settings`` object is built at process start (environment
variables plus an optional ``.env`` file) and passed to every step.
"""

from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings

from .errors import ConfigurationError
from .retry import Backoff, RetryPolicy

ACTIVATION_METHOD_NAMES = ("activate", "patch", "resave")


class ImportStrategy(str, Enum):
    """How templates that want to be active are created."""
    INACTIVE_THEN_ACTIVATE = "inactive"  # create inactive, then activate
    DIRECT = "direct"                    # create with the template's active flag


class Settings(BaseSettings):
    """Settings from environment variables."""

    # n8n instance
    N8N_EDITOR_BASE_URL: str = "http://localhost:5678"
    N8N_USER_EMAIL: str = ""
    N8N_USER_PASSWORD: str = ""
    N8N_FIRST_NAME: str = "User"
    N8N_LAST_NAME: str = ""
    REQUEST_TIMEOUT: float = 30.0

    # Templates
    WORKFLOW_TEMPLATES: str = "default"
    TEMPLATES_ROOT: str = "/templates"
    IMPORT_STRATEGY: ImportStrategy = ImportStrategy.INACTIVE_THEN_ACTIVATE
    STRIP_NODE_CREDENTIALS: bool = False

    # Activation timing
    ACTIVATION_METHODS: str = "activate,patch"
    IMPORT_DELAY: float = 3.0
    ACTIVATION_SETTLE_DELAY: float = 2.0
    ACTIVATION_MAX_ATTEMPTS: int = 3
    ACTIVATION_BACKOFF: float = 2.0
    ACTIVATION_BACKOFF_MULTIPLIER: float = 1.0
    VERIFY_MAX_ATTEMPTS: int = 10
    VERIFY_INTERVAL: float = 2.0

    # Neon / Postgres
    DATABASE_URL: str = ""
    DATABASE_SSL: str = "require"
    CLERK_USER_ID: str = ""
    USER_EMAIL: str = ""
    N8N_ENCRYPTION_KEY: str = ""
    NORTHFLANK_PROJECT_ID: str = ""
    NORTHFLANK_PROJECT_NAME: str = ""

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: str = ""
    SUPABASE_TABLE: str = "launchmvpfast-saas-starterkit_user"
    USER_ID: str = ""
    N8N_URL: str = ""  # public n8n URL stored in Supabase, defaults to the editor URL
    SUPABASE_ERROR_COLUMN: str = ""  # column for the failure text; empty stores status only

    # Completion webhook
    SETUP_WEBHOOK_URL: str = ""
    SETUP_WEBHOOK_TOKEN: str = ""
    SETUP_WEBHOOK_API_KEY: str = ""
    N8N_VERSION: str = ""  # reported in the webhook payload when set

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"
        frozen = True

    @field_validator("ACTIVATION_METHODS")
    @classmethod
    def _check_activation_methods(cls, value: str) -> str:
        methods = [m.strip().lower() for m in value.split(",") if m.strip()]
        if not methods:
            raise ValueError("at least one activation method is required")
        unknown = [m for m in methods if m not in ACTIVATION_METHOD_NAMES]
        if unknown:
            raise ValueError(
                f"unknown activation method(s) {unknown}, "
                f"expected any of {list(ACTIVATION_METHOD_NAMES)}"
            )
        return ",".join(methods)

    @field_validator("N8N_EDITOR_BASE_URL", "SUPABASE_URL", "N8N_URL")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def activation_methods(self) -> List[str]:
        return self.ACTIVATION_METHODS.split(",")

    @property
    def template_dir(self) -> Path:
        folder = "default-workflows" if self.WORKFLOW_TEMPLATES == "default" else "custom-workflows"
        return Path(self.TEMPLATES_ROOT) / folder

    @property
    def public_n8n_url(self) -> str:
        return self.N8N_URL or self.N8N_EDITOR_BASE_URL

    @property
    def full_name(self) -> str:
        return f"{self.N8N_FIRST_NAME} {self.N8N_LAST_NAME}".strip()

    def activation_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.ACTIVATION_MAX_ATTEMPTS,
            base_delay=self.ACTIVATION_BACKOFF,
            multiplier=self.ACTIVATION_BACKOFF_MULTIPLIER,
            backoff=Backoff.LINEAR,
        )

    def verify_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.VERIFY_MAX_ATTEMPTS,
            base_delay=self.VERIFY_INTERVAL,
            backoff=Backoff.FIXED,
        )

    def require(self, *names: str) -> None:
        """Raise ConfigurationError naming every empty variable in ``names``."""
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing=missing,
            )


def load_settings(env_file: Optional[str] = None, **overrides) -> Settings:
    """Build Settings, turning validation errors into ConfigurationError."""
    try:
        if env_file is not None:
            return Settings(_env_file=env_file, **overrides)
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
