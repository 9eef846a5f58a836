"""n8n REST client (cookie-authenticated ``/rest`` API).

The editor's internal REST API is used instead of the public ``/api/v1`` one
because a freshly provisioned instance has no API key yet; the owner's
session cookie is all we have.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .errors import LoginError, N8nAPIError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Session cookie obtained from login, valid for the whole run."""
    cookie: str

    @classmethod
    def from_response(cls, response: httpx.Response) -> "Session":
        raw_cookies = response.headers.get_list("set-cookie")
        pairs = [c.split(";", 1)[0].strip() for c in raw_cookies]
        pairs = [p for p in pairs if p]
        if not pairs:
            raise LoginError("Login response carried no session cookie", response.status_code)
        return cls(cookie="; ".join(pairs))


def unwrap(payload: Any) -> Any:
    """Strip n8n's ``{"data": ...}`` envelope when present."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


def _json_body(response: httpx.Response) -> Any:
    """Decoded JSON body; an HTML or text body on a 2xx raises N8nAPIError."""
    body = _json_or_text(response)
    if not isinstance(body, (dict, list)):
        raise N8nAPIError(
            f"Unexpected non-JSON response: {response.status_code}",
            response.status_code,
            body,
        )
    return body


class N8nClient:
    """Thin async wrapper over the n8n editor REST API.

    Usage:
        async with N8nClient(settings.N8N_EDITOR_BASE_URL) as n8n:
            await n8n.login(email, password)
            workflows = await n8n.list_workflows()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session: Optional[Session] = None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> "N8nClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        """Close HTTP client."""
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        if self.session is None:
            return {}
        return {"Cookie": self.session.cookie}

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request with the session cookie; never raises on HTTP status."""
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        return await self._client.request(method, path, headers=headers, **kwargs)

    # Auth

    async def login(self, email: str, password: str) -> Session:
        """Exchange email/password for a session cookie. Not retried."""
        logger.info(f"Logging into n8n at {self.base_url} as {email}")
        response = await self._client.post(
            "/rest/login",
            json={"emailOrLdapLoginId": email, "password": password},
        )

        if response.status_code != 200:
            raise LoginError(
                f"Login failed: {response.status_code}",
                response.status_code,
                _json_or_text(response),
            )

        self.session = Session.from_response(response)
        logger.info("Login successful")
        return self.session

    async def check_login(self, email: str, password: str) -> bool:
        """Try a login without keeping the session."""
        response = await self._client.post(
            "/rest/login",
            json={"emailOrLdapLoginId": email, "password": password},
        )
        return response.status_code == 200

    # Owner

    async def get_owner_status(self) -> Optional[Dict[str, Any]]:
        """Owner lookup; returns None when the endpoint is unavailable."""
        try:
            response = await self._client.get("/rest/owner")
        except httpx.HTTPError as e:
            logger.warning(f"Owner endpoint not accessible: {e}")
            return None

        if not is_success(response):
            return None
        body = _json_or_text(response)
        if not isinstance(body, dict):
            return None
        owner = unwrap(body)
        return owner if isinstance(owner, dict) else body

    async def setup_owner(self, owner: Dict[str, Any]) -> httpx.Response:
        return await self._client.post("/rest/owner/setup", json=owner)

    # Workflows

    async def list_workflows(self) -> List[Dict[str, Any]]:
        response = await self.request("GET", "/rest/workflows")
        if response.status_code != 200:
            raise N8nAPIError(
                f"Failed to fetch workflows: {response.status_code}",
                response.status_code,
                _json_or_text(response),
            )
        workflows = unwrap(_json_body(response))
        return workflows or []

    async def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        response = await self.request("GET", f"/rest/workflows/{workflow_id}")
        if response.status_code != 200:
            raise N8nAPIError(
                f"Failed to get workflow {workflow_id}: {response.status_code}",
                response.status_code,
                _json_or_text(response),
            )
        workflow = unwrap(_json_body(response))
        if not isinstance(workflow, dict):
            raise N8nAPIError(f"Unexpected workflow payload for {workflow_id}", response.status_code)
        return workflow

    async def create_workflow(self, workflow: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.request("POST", "/rest/workflows", json=workflow)
        if not is_success(response):
            raise N8nAPIError(
                f"Import failed: {response.status_code} - {response.text[:500]}",
                response.status_code,
                _json_or_text(response),
            )
        created = unwrap(_json_body(response))
        if not isinstance(created, dict) or not created.get("id"):
            raise N8nAPIError("No workflow ID returned", response.status_code, created)
        return created

    async def patch_workflow(self, workflow_id: str, changes: Dict[str, Any]) -> httpx.Response:
        return await self.request("PATCH", f"/rest/workflows/{workflow_id}", json=changes)

    async def activate_workflow(self, workflow_id: str, version_id: Optional[str]) -> httpx.Response:
        body = {"versionId": version_id} if version_id else {}
        return await self.request("POST", f"/rest/workflows/{workflow_id}/activate", json=body)
