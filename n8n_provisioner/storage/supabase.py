"""Send n8n credentials to the Supabase user table (PostgREST)."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from ..config import Settings
from ..errors import StorageError
from .records import STATUS_FAILED, STATUS_READY, ProvisioningRecord, truncate_error

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check(response: httpx.Response, action: str) -> None:
    logger.info(f"Supabase {action} status: {response.status_code}")
    if not 200 <= response.status_code < 300:
        raise StorageError(f"HTTP {response.status_code}: {response.text[:500]}")


def _rows(response: httpx.Response) -> Optional[list]:
    """Rows of a ``return=representation`` body, None when there is none."""
    if not response.content:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, list) else None


class SupabaseStore:
    """Upserts one row per user id through Supabase's REST API.

    PATCH with ``return=representation`` returns the updated rows; an empty
    list means the row does not exist yet and it is inserted with POST. When
    the representation is missing (204, or a proxy dropping ``Prefer``) the
    row is looked up before deciding.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        service_role_key: str,
        table: str,
        error_column: str = "",
    ):
        self.client = client
        self.url = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.service_role_key = service_role_key
        self.error_column = error_column

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
            "Prefer": "return=representation",
        }

    @staticmethod
    def build_row(record: ProvisioningRecord) -> Dict[str, Any]:
        now = _now_iso()
        return {
            "id": record.user_key,
            "n8n_url": record.n8n_url,
            "n8n_user_email": record.n8n_user_email,
            "n8n_user_password": record.n8n_user_password,
            "n8n_encryption_key": record.n8n_encryption_key,
            "northflank_project_id": record.project_id,
            "northflank_project_name": record.project_name,
            "northflank_project_status": STATUS_READY,
            "template_completed_at": now,
            "updated_at": now,
        }

    async def _row_exists(self, user_key: str) -> bool:
        response = await self.client.get(
            self.url, params={"id": f"eq.{user_key}", "select": "id"}, headers=self._headers()
        )
        _check(response, "GET")
        return bool(_rows(response))

    async def _write(self, user_key: str, row: Dict[str, Any]) -> str:
        response = await self.client.patch(
            self.url, params={"id": f"eq.{user_key}"}, json=row, headers=self._headers()
        )
        _check(response, "PATCH")

        rows = _rows(response)
        if rows is None:
            exists = await self._row_exists(user_key)
        else:
            exists = bool(rows)
        if exists:
            return "updated"

        response = await self.client.post(self.url, json=row, headers=self._headers())
        _check(response, "POST")
        return "created"

    async def upsert(self, record: ProvisioningRecord) -> str:
        """Update the row of ``record.user_key`` or insert it; returns "updated" or "created"."""
        outcome = await self._write(record.user_key, self.build_row(record))
        logger.info(f"Supabase row {outcome}: {record.describe()}")
        return outcome

    async def mark_failed(self, user_key: str, error: BaseException) -> None:
        row = {
            "id": user_key,
            "northflank_project_status": STATUS_FAILED,
            "updated_at": _now_iso(),
        }
        if self.error_column:
            row[self.error_column] = truncate_error(error)
        await self._write(user_key, row)
        logger.info("Error status updated in Supabase")

    async def store(self, record: ProvisioningRecord) -> str:
        """Upsert ``record``; on failure write a failed status, then re-raise."""
        try:
            return await self.upsert(record)
        except Exception as e:
            logger.error(f"Supabase update failed: {e}")
            try:
                await self.mark_failed(record.user_key, e)
            except Exception as update_error:
                logger.error(f"Could not update error status: {update_error}")
            raise


SUPABASE_REQUIRED = (
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "USER_ID",
    "N8N_USER_EMAIL",
    "N8N_USER_PASSWORD",
    "N8N_ENCRYPTION_KEY",
    "NORTHFLANK_PROJECT_ID",
    "NORTHFLANK_PROJECT_NAME",
)


async def send_to_supabase(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Upsert the provisioning result from ``settings`` into Supabase."""
    settings.require(*SUPABASE_REQUIRED)
    record = ProvisioningRecord.for_supabase(settings)

    async with httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT, transport=transport) as client:
        store = SupabaseStore(
            client,
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_ROLE_KEY,
            settings.SUPABASE_TABLE,
            error_column=settings.SUPABASE_ERROR_COLUMN,
        )
        return await store.store(record)
