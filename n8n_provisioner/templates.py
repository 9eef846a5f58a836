"""Workflow template discovery and cleaning."""

import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List

from .errors import WorkflowImportError

logger = logging.getLogger(__name__)

TEMPLATE_EXTENSION = ".json"

# Assigned by the server; an export from another instance carries stale values
SERVER_ASSIGNED_FIELDS = (
    "id",
    "createdAt",
    "updatedAt",
    "versionId",
    "versionCounter",
    "shared",
    "scopes",
    "checksum",
    "triggerCount",
    "activeVersion",
    "parentFolder",
    "isArchived",
    "homeProject",
    "usedCredentials",
)


@dataclass(frozen=True)
class WorkflowTemplate:
    """A workflow definition loaded from one template file."""
    path: Path
    data: Dict[str, Any]

    @property
    def name(self) -> str:
        return self.data.get("name") or "Untitled"

    @property
    def should_activate(self) -> bool:
        """Template asks to be active, via ``active`` or ``meta.autoActivate``."""
        if self.data.get("active") is True:
            return True
        meta = self.data.get("meta") or {}
        return isinstance(meta, dict) and meta.get("autoActivate") is True

    @property
    def has_embedded_credentials(self) -> bool:
        return any(node.get("credentials") for node in self.data.get("nodes") or [])


def discover_templates(template_dir: Path) -> List[Path]:
    """List template files in ``template_dir`` (sorted); empty if it does not exist."""
    template_dir = Path(template_dir)
    if not template_dir.is_dir():
        logger.warning(f"Template directory not found: {template_dir}")
        return []
    return sorted(
        p for p in template_dir.iterdir()
        if p.is_file() and p.suffix == TEMPLATE_EXTENSION
    )


def load_template(path: Path) -> WorkflowTemplate:
    """Read and parse one template file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise WorkflowImportError(f"Cannot read template {Path(path).name}: {e}") from e

    if not isinstance(data, dict):
        raise WorkflowImportError(f"Template {Path(path).name} is not a JSON object")
    return WorkflowTemplate(path=Path(path), data=data)


def clean_for_import(
    data: Dict[str, Any],
    active: bool = False,
    strip_credentials: bool = False,
) -> Dict[str, Any]:
    """Build the create payload from a template without touching the template.

    Server-assigned fields are dropped and ``active`` is set explicitly.
    """
    cleaned = copy.deepcopy(data)

    for field in SERVER_ASSIGNED_FIELDS:
        cleaned.pop(field, None)

    cleaned["active"] = active
    cleaned["pinData"] = cleaned.get("pinData") or {}
    cleaned["staticData"] = None
    cleaned["settings"] = cleaned.get("settings") or {"executionOrder": "v1"}
    cleaned["tags"] = cleaned.get("tags") or []
    cleaned["meta"] = cleaned.get("meta") or {"templateCredsSetupCompleted": True}
    cleaned["nodes"] = cleaned.get("nodes") or []
    cleaned["connections"] = cleaned.get("connections") or {}

    if strip_credentials:
        for node in cleaned["nodes"]:
            node.pop("credentials", None)

    return cleaned
