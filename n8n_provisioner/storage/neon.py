"""Store n8n credentials in the application's Neon (Postgres) database."""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import asyncpg

from ..config import Settings
from .records import (
    STATUS_FAILED,
    STATUS_READY,
    ProvisioningRecord,
    generate_id,
    truncate_error,
)

logger = logging.getLogger(__name__)

SELECT_USER = """
    SELECT id FROM "User"
    WHERE "clerkId" = $1
    LIMIT 1
"""

UPDATE_USER = """
    UPDATE "User"
    SET
        email = $2,
        "n8nUrl" = $3,
        "n8nUserEmail" = $4,
        "n8nEncryptionKey" = $5,
        "northflankProjectId" = $6,
        "northflankProjectName" = $7,
        "northflankProjectStatus" = $8,
        "northflankCreatedAt" = $9,
        "templateCompletedAt" = $9,
        "updatedAt" = $9,
        "n8nSetupError" = NULL
    WHERE "clerkId" = $1
"""

INSERT_USER = """
    INSERT INTO "User" (
        id,
        "clerkId",
        email,
        "subscriptionTier",
        "apiCallsCount",
        "usageResetAt",
        "n8nUrl",
        "n8nUserEmail",
        "n8nEncryptionKey",
        "northflankProjectId",
        "northflankProjectName",
        "northflankProjectStatus",
        "northflankCreatedAt",
        "templateCompletedAt",
        "createdAt",
        "updatedAt"
    ) VALUES ($1, $2, $3, 'FREE', 0, $10, $4, $5, $6, $7, $8, $9, $10, $10, $10, $10)
"""

MARK_FAILED = """
    UPDATE "User"
    SET "northflankProjectStatus" = $1,
        "n8nSetupError" = $2,
        "updatedAt" = $3
    WHERE "clerkId" = $4
"""

INSERT_FAILED = """
    INSERT INTO "User" (
        id,
        "clerkId",
        email,
        "subscriptionTier",
        "apiCallsCount",
        "usageResetAt",
        "northflankProjectStatus",
        "n8nSetupError",
        "createdAt",
        "updatedAt"
    ) VALUES ($1, $2, $3, 'FREE', 0, $6, $4, $5, $6, $6)
"""


def _utcnow() -> datetime:
    # "User" timestamps are timestamp without time zone
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _rows_affected(status: str) -> int:
    """Parse asyncpg's command tag, e.g. ``UPDATE 1``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class NeonStore:
    """Upserts one "User" row per Clerk user id.

    ``conn`` is an asyncpg connection (or anything with the same
    ``fetchrow``/``execute``/``transaction`` methods).
    """

    def __init__(self, conn: Any):
        self.conn = conn

    async def upsert(self, record: ProvisioningRecord) -> str:
        """Update the row of ``record.user_key`` or insert it; returns "updated" or "created"."""
        now = _utcnow()
        async with self.conn.transaction():
            existing = await self.conn.fetchrow(SELECT_USER, record.user_key)

            if existing is not None:
                logger.info("Updating existing user...")
                await self.conn.execute(
                    UPDATE_USER,
                    record.user_key,
                    record.user_email,
                    record.n8n_url,
                    record.n8n_user_email,
                    record.n8n_encryption_key,
                    record.project_id,
                    record.project_name,
                    STATUS_READY,
                    now,
                )
                logger.info("User updated successfully")
                return "updated"

            user_id = generate_id()
            logger.info("Creating new user...")
            await self.conn.execute(
                INSERT_USER,
                user_id,
                record.user_key,
                record.user_email,
                record.n8n_url,
                record.n8n_user_email,
                record.n8n_encryption_key,
                record.project_id,
                record.project_name,
                STATUS_READY,
                now,
            )
            logger.info(f"User created successfully (ID: {user_id})")
            return "created"

    async def mark_failed(self, user_key: str, error: BaseException, email: str = "") -> None:
        """Record a failed status for ``user_key``, inserting the row if needed."""
        now = _utcnow()
        message = truncate_error(error)
        status = await self.conn.execute(MARK_FAILED, STATUS_FAILED, message, now, user_key)
        if _rows_affected(status) == 0:
            await self.conn.execute(
                INSERT_FAILED, generate_id(), user_key, email, STATUS_FAILED, message, now
            )
        logger.info("Error status updated in database")

    async def store(self, record: ProvisioningRecord) -> str:
        """Upsert ``record``; on failure write a failed status, then re-raise."""
        try:
            return await self.upsert(record)
        except Exception as e:
            logger.error(f"Failed to store credentials: {e}")
            try:
                await self.mark_failed(record.user_key, e, record.user_email)
            except Exception as update_error:
                logger.error(f"Could not update error status: {update_error}")
            raise


NEON_REQUIRED = (
    "DATABASE_URL",
    "CLERK_USER_ID",
    "USER_EMAIL",
    "N8N_EDITOR_BASE_URL",
    "N8N_USER_EMAIL",
    "N8N_USER_PASSWORD",
    "N8N_ENCRYPTION_KEY",
    "NORTHFLANK_PROJECT_ID",
)


async def store_to_neon(
    settings: Settings,
    connect: Optional[Callable[..., Awaitable[Any]]] = None,
) -> str:
    """Connect to Neon and upsert the provisioning result from ``settings``."""
    settings.require(*NEON_REQUIRED)
    record = ProvisioningRecord.for_neon(settings)
    connect = connect or asyncpg.connect

    logger.info(f"Connecting to Neon database: {record.describe()}")
    conn = await connect(
        settings.DATABASE_URL,
        ssl=settings.DATABASE_SSL or None,
        timeout=30,
    )
    logger.info("Connected to Neon database")

    try:
        outcome = await NeonStore(conn).store(record)
    finally:
        await conn.close()
        logger.info("Database connection closed")

    logger.info(f"n8n credentials stored in Neon database ({outcome})")
    return outcome
