"""Workflow activation and verification.

n8n versions disagree on how a workflow is switched on: newer releases want
``POST /rest/workflows/{id}/activate`` with the current ``versionId``, older
ones accept ``PATCH`` with ``active: true``, and some only register webhooks
after a full re-save. Each way is an activation candidate returning an
``OperationResult``; the ``Activator`` tries them in order on every attempt.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, Sequence

import httpx

from .client import N8nClient, is_success
from .errors import N8nAPIError
from .retry import RetryPolicy, Sleep, retry_async

logger = logging.getLogger(__name__)

# Fields n8n rejects when a fetched workflow is sent back
READ_ONLY_FIELDS = ("id", "createdAt", "updatedAt", "shared", "scopes", "triggerCount", "homeProject")


@dataclass(frozen=True)
class OperationResult:
    """Outcome of one activation call."""
    ok: bool
    method: str
    status_code: Optional[int] = None
    detail: str = ""


ActivationCandidate = Callable[[N8nClient, str], Awaitable[OperationResult]]


def _from_response(method: str, response: httpx.Response) -> OperationResult:
    if is_success(response):
        return OperationResult(True, method, response.status_code)
    return OperationResult(False, method, response.status_code, response.text[:300])


async def activate_via_endpoint(n8n: N8nClient, workflow_id: str) -> OperationResult:
    """``POST /activate`` with the workflow's current versionId."""
    workflow = await n8n.get_workflow(workflow_id)
    version_id = workflow.get("versionId")
    if version_id:
        logger.debug(f"Found versionId {version_id[:8]}... for {workflow_id}")
    response = await n8n.activate_workflow(workflow_id, version_id)
    return _from_response("activate", response)


async def activate_via_patch(n8n: N8nClient, workflow_id: str) -> OperationResult:
    """``PATCH`` the workflow with ``active: true``."""
    response = await n8n.patch_workflow(workflow_id, {"active": True})
    return _from_response("patch", response)


async def activate_via_resave(n8n: N8nClient, workflow_id: str) -> OperationResult:
    """Re-save the full workflow as active so its webhooks get registered."""
    workflow = await n8n.get_workflow(workflow_id)
    for field in READ_ONLY_FIELDS:
        workflow.pop(field, None)
    workflow["active"] = True
    response = await n8n.patch_workflow(workflow_id, workflow)
    return _from_response("resave", response)


ACTIVATION_CANDIDATES: Dict[str, ActivationCandidate] = {
    "activate": activate_via_endpoint,
    "patch": activate_via_patch,
    "resave": activate_via_resave,
}


class Activator:
    """Tries the activation candidates in order, with bounded retries.

    Usage:
        activator = Activator(n8n, ["activate", "patch"], settings.activation_policy())
        result = await activator.activate(workflow_id)
    """

    def __init__(
        self,
        n8n: N8nClient,
        methods: Sequence[str] = ("activate", "patch"),
        policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        unknown = [m for m in methods if m not in ACTIVATION_CANDIDATES]
        if unknown:
            raise ValueError(f"Unknown activation methods: {unknown}")
        if not methods:
            raise ValueError("At least one activation method is required")

        self.n8n = n8n
        self.methods = list(methods)
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    async def _run_candidate(self, method: str, workflow_id: str) -> OperationResult:
        candidate = ACTIVATION_CANDIDATES[method]
        try:
            return await candidate(self.n8n, workflow_id)
        except N8nAPIError as e:
            return OperationResult(False, method, e.status_code, e.message)
        except httpx.HTTPError as e:
            return OperationResult(False, method, None, f"{type(e).__name__}: {e}")

    async def attempt(self, workflow_id: str) -> OperationResult:
        """One attempt: candidates in order until one succeeds."""
        result = None
        for method in self.methods:
            result = await self._run_candidate(method, workflow_id)
            if result.ok:
                logger.info(f"Activation successful via {method} ({result.status_code})")
                return result
            logger.warning(
                f"Activation via {method} failed: {result.status_code} {result.detail}"
            )
        return result

    async def activate(self, workflow_id: str) -> OperationResult:
        """Activate ``workflow_id``; returns the last result when every attempt fails."""
        return await retry_async(
            lambda attempt: self.attempt(workflow_id),
            self.policy,
            is_success=lambda result: result.ok,
            sleep=self.sleep,
            description=f"Activation of workflow {workflow_id}",
        )


async def verify_active(
    n8n: N8nClient,
    workflow_id: str,
    policy: RetryPolicy,
    sleep: Sleep = asyncio.sleep,
) -> bool:
    """Poll the workflow until ``active`` is true or the budget runs out.

    Errors while polling count as "not yet"; running out of budget returns
    False and is never an error.
    """

    async def poll(attempt: int) -> bool:
        try:
            workflow = await n8n.get_workflow(workflow_id)
        except (N8nAPIError, httpx.HTTPError) as e:
            logger.warning(f"Verification error (attempt {attempt}): {e}")
            return False

        if workflow.get("active") is True:
            logger.info(f"Verified active (attempt {attempt})")
            return True

        logger.info(f"Still inactive (attempt {attempt}/{policy.max_attempts})")
        return False

    return await retry_async(
        poll,
        policy,
        sleep=sleep,
        description=f"Verification of workflow {workflow_id}",
    )
