"""Import workflow templates into n8n and activate the ones that ask for it."""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .activation import Activator, verify_active
from .client import N8nClient
from .config import ImportStrategy, Settings
from .errors import ProvisioningError
from .retry import Sleep
from .templates import clean_for_import, discover_templates, load_template

logger = logging.getLogger(__name__)


@dataclass
class TemplateResult:
    """What happened to one template file."""
    file: str
    name: str = ""
    wants_active: bool = False
    workflow_id: Optional[str] = None
    activated: bool = False
    verified: bool = False
    error: Optional[str] = None

    @property
    def imported(self) -> bool:
        return self.workflow_id is not None


@dataclass
class ImportSummary:
    """Counts across a whole import run."""
    results: List[TemplateResult] = field(default_factory=list)

    @property
    def imported(self) -> int:
        return sum(1 for r in self.results if r.imported)

    @property
    def published(self) -> int:
        return sum(1 for r in self.results if r.verified)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.imported)

    @property
    def unverified(self) -> int:
        return sum(1 for r in self.results if r.imported and r.wants_active and not r.verified)

    @property
    def success(self) -> bool:
        """Unverified activations are warnings; only failed imports count."""
        return self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "imported": self.imported,
            "published": self.published,
            "failed": self.failed,
            "unverified": self.unverified,
            "workflows": [asdict(r) for r in self.results],
        }


class WorkflowImporter:
    """Runs the import, activate and verify sequence for each template."""

    def __init__(self, n8n: N8nClient, settings: Settings, sleep: Sleep = asyncio.sleep):
        self.n8n = n8n
        self.settings = settings
        self.sleep = sleep
        self.activator = Activator(
            n8n,
            settings.activation_methods,
            settings.activation_policy(),
            sleep=sleep,
        )

    async def _verify(self, workflow_id: str) -> bool:
        await self.sleep(self.settings.ACTIVATION_SETTLE_DELAY)
        return await verify_active(
            self.n8n, workflow_id, self.settings.verify_policy(), sleep=self.sleep
        )

    async def import_template(self, path: Path) -> TemplateResult:
        result = TemplateResult(file=Path(path).name)
        logger.info(f"Processing: {result.file}")

        try:
            template = load_template(path)
            result.name = template.name
            result.wants_active = template.should_activate
            logger.info(f"Name: {result.name}, should activate: {result.wants_active}")
            if template.has_embedded_credentials and not self.settings.STRIP_NODE_CREDENTIALS:
                logger.warning(
                    f"{result.file} references node credentials; they must already exist on this instance"
                )

            direct = self.settings.IMPORT_STRATEGY == ImportStrategy.DIRECT
            payload = clean_for_import(
                template.data,
                active=direct and result.wants_active,
                strip_credentials=self.settings.STRIP_NODE_CREDENTIALS,
            )
            created = await self.n8n.create_workflow(payload)
        except (ProvisioningError, httpx.HTTPError) as e:
            result.error = str(e)
            logger.error(f"Import of {result.file} failed: {e}")
            return result

        result.workflow_id = str(created["id"])
        logger.info(f"Imported (ID: {result.workflow_id})")

        if not result.wants_active:
            logger.info("Staying as draft (no activation flag)")
            return result

        if direct:
            if await self._verify(result.workflow_id):
                result.activated = result.verified = True
                return result
            logger.warning("Created as active but not active on the server, activating explicitly")

        await self.sleep(self.settings.IMPORT_DELAY)
        activation = await self.activator.activate(result.workflow_id)
        result.activated = activation.ok

        if not activation.ok:
            logger.warning(
                f"Activation of {result.workflow_id} failed after "
                f"{self.activator.policy.max_attempts} attempts, continuing"
            )
            return result

        result.verified = await self._verify(result.workflow_id)
        if result.verified:
            logger.info(f"Workflow {result.workflow_id} is active")
        else:
            logger.warning(f"Workflow {result.workflow_id} not active after all verification attempts")
        return result

    async def import_all(self, paths: Sequence[Path]) -> ImportSummary:
        summary = ImportSummary()
        for path in paths:
            summary.results.append(await self.import_template(path))
        return summary


def log_summary(summary: ImportSummary):
    logger.info(
        f"Import summary: imported={summary.imported} published={summary.published} "
        f"unverified={summary.unverified} failed={summary.failed}"
    )
    if summary.unverified:
        logger.warning(f"{summary.unverified} workflow(s) imported but not verified active")


async def import_workflows(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Sleep = asyncio.sleep,
) -> ImportSummary:
    """Log in and import every template of the configured template set.

    Raises:
        ConfigurationError: credentials are not configured
        LoginError: login was rejected
    """
    settings.require("N8N_EDITOR_BASE_URL", "N8N_USER_EMAIL", "N8N_USER_PASSWORD")

    template_dir = settings.template_dir
    logger.info(f"n8n URL: {settings.N8N_EDITOR_BASE_URL}, template set: {settings.WORKFLOW_TEMPLATES}")

    paths = discover_templates(template_dir)
    if not paths:
        logger.warning(f"No workflow templates found in {template_dir}")
        return ImportSummary()

    logger.info(f"Found {len(paths)} workflow template(s)")

    async with N8nClient(settings.N8N_EDITOR_BASE_URL, settings.REQUEST_TIMEOUT, transport) as n8n:
        await n8n.login(settings.N8N_USER_EMAIL, settings.N8N_USER_PASSWORD)
        summary = await WorkflowImporter(n8n, settings, sleep=sleep).import_all(paths)

    log_summary(summary)
    return summary
