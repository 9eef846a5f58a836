"""n8n instance provisioning.

Modules:
- config: immutable settings built from the environment
- client: n8n editor REST client (session cookie auth)
- templates: template discovery and cleaning
- activation: activation candidates, retrying activator, verification
- importer: import/activate/verify sequence over a template set
- activate_all: activate every inactive workflow on the instance
- owner: owner account bootstrap
- storage: Neon and Supabase persistence of the provisioning result
- notify: completion webhook
"""

from .activation import Activator, OperationResult, verify_active
from .client import N8nClient, Session
from .config import ImportStrategy, Settings, load_settings
from .errors import (
    ConfigurationError,
    LoginError,
    N8nAPIError,
    ProvisioningError,
    StorageError,
    WorkflowImportError,
)
from .importer import ImportSummary, TemplateResult, WorkflowImporter, import_workflows
from .retry import Backoff, RetryPolicy, retry_async
from .templates import WorkflowTemplate, clean_for_import, discover_templates, load_template

__version__ = "0.4.0"

__all__ = [
    # Config
    "Settings",
    "ImportStrategy",
    "load_settings",
    # Errors
    "ProvisioningError",
    "ConfigurationError",
    "N8nAPIError",
    "LoginError",
    "WorkflowImportError",
    "StorageError",
    # Retry
    "Backoff",
    "RetryPolicy",
    "retry_async",
    # Client
    "N8nClient",
    "Session",
    # Templates
    "WorkflowTemplate",
    "clean_for_import",
    "discover_templates",
    "load_template",
    # Activation
    "Activator",
    "OperationResult",
    "verify_active",
    # Import
    "ImportSummary",
    "TemplateResult",
    "WorkflowImporter",
    "import_workflows",
]
