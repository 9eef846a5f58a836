"""Provisioning result record shared by the stores."""

import secrets
import string
import time
from dataclasses import dataclass
from typing import Dict

from ..config import Settings

STATUS_READY = "ready"
STATUS_FAILED = "failed"

MAX_ERROR_LENGTH = 500

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_id() -> str:
    """cuid-like id: ``c`` + base36 milliseconds + random base36 suffix."""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(13))
    return f"c{timestamp}{suffix}"


def truncate_error(error: BaseException) -> str:
    return str(error)[:MAX_ERROR_LENGTH]


@dataclass(frozen=True)
class ProvisioningRecord:
    """Outputs of one provisioned n8n environment, keyed by external user id."""
    user_key: str
    user_email: str
    n8n_url: str
    n8n_user_email: str
    n8n_user_password: str
    n8n_encryption_key: str
    project_id: str
    project_name: str = ""

    @classmethod
    def for_neon(cls, settings: Settings) -> "ProvisioningRecord":
        return cls(
            user_key=settings.CLERK_USER_ID,
            user_email=settings.USER_EMAIL,
            n8n_url=settings.N8N_EDITOR_BASE_URL,
            n8n_user_email=settings.N8N_USER_EMAIL,
            n8n_user_password=settings.N8N_USER_PASSWORD,
            n8n_encryption_key=settings.N8N_ENCRYPTION_KEY,
            project_id=settings.NORTHFLANK_PROJECT_ID,
            project_name=settings.NORTHFLANK_PROJECT_NAME,
        )

    @classmethod
    def for_supabase(cls, settings: Settings) -> "ProvisioningRecord":
        return cls(
            user_key=settings.USER_ID,
            user_email=settings.USER_EMAIL,
            n8n_url=settings.public_n8n_url,
            n8n_user_email=settings.N8N_USER_EMAIL,
            n8n_user_password=settings.N8N_USER_PASSWORD,
            n8n_encryption_key=settings.N8N_ENCRYPTION_KEY,
            project_id=settings.NORTHFLANK_PROJECT_ID,
            project_name=settings.NORTHFLANK_PROJECT_NAME,
        )

    def describe(self) -> Dict[str, str]:
        """Loggable view without secrets."""
        return {
            "user_key": self.user_key,
            "n8n_url": self.n8n_url,
            "n8n_user_email": self.n8n_user_email,
            "project": f"{self.project_name} ({self.project_id})",
        }
