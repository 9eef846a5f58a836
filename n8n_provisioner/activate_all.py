"""Activate every inactive workflow already present on the instance."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .activation import Activator
from .client import N8nClient
from .config import Settings
from .retry import Sleep

logger = logging.getLogger(__name__)


@dataclass
class PublishSummary:
    total: int = 0
    published: int = 0
    already_active: int = 0
    failed: int = 0


async def activate_existing(
    n8n: N8nClient,
    activator: Activator,
    sleep: Sleep = asyncio.sleep,
    pause: float = 1.0,
) -> PublishSummary:
    """Activate the inactive workflows of a logged-in client."""
    workflows = await n8n.list_workflows()
    summary = PublishSummary(total=len(workflows))
    logger.info(f"Found {summary.total} workflows")

    for workflow in workflows:
        if not workflow.get("id"):
            logger.error(f"Skipping workflow without an id: {workflow.get('name')}")
            summary.failed += 1
            continue

        workflow_id = str(workflow["id"])
        logger.info(f"Checking: {workflow.get('name')} (ID: {workflow_id})")

        if workflow.get("active") is True:
            logger.info("Already published and active")
            summary.already_active += 1
            continue

        result = await activator.activate(workflow_id)
        if result.ok:
            summary.published += 1
        else:
            logger.error(f"Failed to publish {workflow_id}: {result.status_code} {result.detail}")
            summary.failed += 1

        await sleep(pause)

    logger.info(
        f"Publish summary: published={summary.published} "
        f"already_active={summary.already_active} failed={summary.failed} total={summary.total}"
    )
    if summary.failed:
        logger.warning(f"{summary.failed} workflows failed to publish, publish them manually via UI")
    return summary


async def activate_all_workflows(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Sleep = asyncio.sleep,
) -> PublishSummary:
    """Log in and activate every inactive workflow.

    Per-workflow failures are counted; login or listing failures raise.
    """
    settings.require("N8N_EDITOR_BASE_URL", "N8N_USER_EMAIL", "N8N_USER_PASSWORD")

    async with N8nClient(settings.N8N_EDITOR_BASE_URL, settings.REQUEST_TIMEOUT, transport) as n8n:
        await n8n.login(settings.N8N_USER_EMAIL, settings.N8N_USER_PASSWORD)
        activator = Activator(
            n8n, settings.activation_methods, settings.activation_policy(), sleep=sleep
        )
        return await activate_existing(n8n, activator, sleep=sleep)
