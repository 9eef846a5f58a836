"""Exceptions raised by the provisioning steps."""

from typing import Any, Optional


class ProvisioningError(Exception):
    """Base class for provisioning failures."""


class ConfigurationError(ProvisioningError):
    """Required configuration is missing or invalid."""

    def __init__(self, message: str, missing: Optional[list] = None):
        self.missing = missing or []
        super().__init__(message)


class N8nAPIError(ProvisioningError):
    """n8n REST API returned an unexpected status."""
    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        self.message = message
        self.status_code = status_code
        self.payload = payload
        super().__init__(self.message)


class LoginError(N8nAPIError):
    """Login to n8n failed."""


class WorkflowImportError(ProvisioningError):
    """A single workflow template could not be imported."""


class StorageError(ProvisioningError):
    """Provisioning result could not be persisted."""
