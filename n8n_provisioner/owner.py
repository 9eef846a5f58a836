"""Owner account bootstrap for a fresh n8n instance."""

import logging
from enum import Enum
from typing import Optional

import httpx

from .client import N8nClient, is_success
from .config import Settings
from .errors import N8nAPIError

logger = logging.getLogger(__name__)


class OwnerStatus(str, Enum):
    CREATED = "created"
    EXISTING = "existing"
    EXISTING_UNVERIFIED = "existing-unverified"


def _owner_exists_error(response: httpx.Response) -> bool:
    """n8n answers 400 "Instance owner already setup" on a second setup."""
    if response.status_code != 400:
        return False
    try:
        message = str(response.json().get("message", ""))
    except (ValueError, AttributeError):
        message = response.text
    return "owner" in message.lower()


async def ensure_owner(n8n: N8nClient, settings: Settings) -> OwnerStatus:
    """Create the instance owner unless one already exists."""
    email = settings.N8N_USER_EMAIL
    password = settings.N8N_USER_PASSWORD

    logger.info("Checking if owner already exists...")
    owner = await n8n.get_owner_status()

    if owner and owner.get("hasOwner"):
        logger.info("Owner already exists, checking credentials...")
        try:
            if await n8n.check_login(email, password):
                logger.info("Existing user credentials verified")
                return OwnerStatus.EXISTING
        except httpx.HTTPError as e:
            logger.warning(f"Could not verify existing credentials: {e}")
        else:
            logger.warning("Existing owner found but credentials may be different")
        return OwnerStatus.EXISTING_UNVERIFIED

    logger.info(f"Creating owner account {email} ({settings.full_name})")
    response = await n8n.setup_owner({
        "email": email,
        "password": password,
        "firstName": settings.N8N_FIRST_NAME,
        "lastName": settings.N8N_LAST_NAME,
        "agreedToLicense": True,
    })

    if _owner_exists_error(response):
        logger.info("Owner already exists, continuing")
        return OwnerStatus.EXISTING

    if not is_success(response):
        raise N8nAPIError(
            f"Owner setup failed with status: {response.status_code}",
            response.status_code,
            response.text[:500],
        )

    logger.info("n8n owner account created, verifying login...")
    if await n8n.check_login(email, password):
        logger.info("Account verification successful")
    else:
        logger.warning("Owner created but login verification failed")
    return OwnerStatus.CREATED


async def create_owner(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> OwnerStatus:
    settings.require("N8N_EDITOR_BASE_URL", "N8N_USER_EMAIL", "N8N_USER_PASSWORD", "N8N_FIRST_NAME")
    logger.info(f"Initializing n8n owner at {settings.N8N_EDITOR_BASE_URL}")

    async with N8nClient(settings.N8N_EDITOR_BASE_URL, settings.REQUEST_TIMEOUT, transport) as n8n:
        try:
            return await ensure_owner(n8n, settings)
        except httpx.ConnectError:
            logger.error("Connection refused - n8n might not be ready yet")
            raise
        except httpx.TimeoutException:
            logger.error("Request timed out - n8n might be starting up")
            raise
