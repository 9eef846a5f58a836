import json
import re

import httpx
import pytest

from n8n_provisioner.config import Settings


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class SleepRecorder:
    """Stands in for asyncio.sleep and records every requested delay."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeN8n:
    """In-memory n8n editor REST API behind httpx.MockTransport.

    Args:
        activate_status: status of POST /rest/workflows/{id}/activate
        patch_status: status of PATCH /rest/workflows/{id}
        activation_lag: GETs after a successful activation before ``active`` turns true
        login_status: status of POST /rest/login
        create_status: status of POST /rest/workflows
        honor_active_on_create: keep ``active: true`` from a create payload

    ``queue(method, path_suffix, outcome)`` makes the next matching request
    return ``outcome`` (an httpx.Response) or raise it (an exception).
    """

    WORKFLOW_PATH = re.compile(r"^/rest/workflows/([^/]+)(/activate)?$")

    def __init__(
        self,
        activate_status=200,
        patch_status=200,
        activation_lag=0,
        login_status=200,
        create_status=200,
        honor_active_on_create=True,
    ):
        self.honor_active_on_create = honor_active_on_create
        self.activate_status = activate_status
        self.patch_status = patch_status
        self.activation_lag = activation_lag
        self.login_status = login_status
        self.create_status = create_status
        self.workflows = {}
        self.requests = []
        self._pending = {}
        self._next_id = 1
        self._queued = []

    @property
    def transport(self):
        return httpx.MockTransport(self.handle)

    def queue(self, method, path_suffix, outcome):
        self._queued.append((method, path_suffix, outcome))

    def _take_queued(self, method, path):
        for index, (queued_method, suffix, outcome) in enumerate(self._queued):
            if queued_method == method and path.endswith(suffix):
                del self._queued[index]
                return outcome
        return None

    def calls(self, method, path_suffix=""):
        return [r for r in self.requests if r[0] == method and r[1].endswith(path_suffix)]

    def created_payloads(self):
        return [body for method, path, body, _ in self.requests
                if method == "POST" and path == "/rest/workflows"]

    def activation_calls(self):
        return [r for r in self.requests
                if (r[0] == "POST" and r[1].endswith("/activate")) or r[0] == "PATCH"]

    def _activate(self, workflow_id):
        self._pending[workflow_id] = self.activation_lag
        if self.activation_lag == 0:
            self.workflows[workflow_id]["active"] = True

    def handle(self, request):
        body = json.loads(request.content) if request.content else None
        path = request.url.path
        self.requests.append((request.method, path, body, request.headers.get("cookie")))

        outcome = self._take_queued(request.method, path)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            return outcome

        if path == "/rest/login":
            if self.login_status != 200:
                return httpx.Response(self.login_status, json={"message": "Wrong username or password"})
            return httpx.Response(
                200,
                json={"data": {"email": body["emailOrLdapLoginId"]}},
                headers=[("set-cookie", "n8n-auth=session-token; Path=/; HttpOnly")],
            )

        if path == "/rest/workflows" and request.method == "POST":
            if self.create_status != 200:
                return httpx.Response(self.create_status, json={"message": "bad workflow"})
            workflow_id = f"wf{self._next_id}"
            self._next_id += 1
            stored = dict(body, id=workflow_id, versionId=f"version-{workflow_id}-0000")
            if not self.honor_active_on_create:
                stored["active"] = False
            self.workflows[workflow_id] = stored
            return httpx.Response(200, json={"data": stored})

        if path == "/rest/workflows" and request.method == "GET":
            return httpx.Response(200, json={"data": list(self.workflows.values())})

        match = self.WORKFLOW_PATH.match(path)
        if not match or match.group(1) not in self.workflows:
            return httpx.Response(404, json={"message": "Not found"})

        workflow_id = match.group(1)
        workflow = self.workflows[workflow_id]

        if match.group(2):
            if self.activate_status == 200:
                self._activate(workflow_id)
            return httpx.Response(self.activate_status, json={"data": workflow})

        if request.method == "GET":
            pending = self._pending.get(workflow_id)
            if pending is not None:
                if pending <= 0:
                    workflow["active"] = True
                self._pending[workflow_id] = pending - 1
            return httpx.Response(200, json={"data": workflow})

        if request.method == "PATCH":
            if self.patch_status == 200 and body.get("active") is True:
                self._activate(workflow_id)
            return httpx.Response(self.patch_status, json={"data": workflow})

        return httpx.Response(405)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def fake_n8n_factory():
    return FakeN8n


@pytest.fixture
def make_settings(tmp_path):
    """Settings isolated from any .env file, with zero-second waits."""

    def _make(**overrides):
        values = dict(
            N8N_EDITOR_BASE_URL="http://n8n.test",
            N8N_USER_EMAIL="owner@example.com",
            N8N_USER_PASSWORD="s3cret-Passw0rd",
            N8N_FIRST_NAME="Ada",
            N8N_LAST_NAME="Lovelace",
            TEMPLATES_ROOT=str(tmp_path / "templates"),
            IMPORT_DELAY=0.0,
            ACTIVATION_SETTLE_DELAY=0.0,
            ACTIVATION_BACKOFF=1.0,
            VERIFY_INTERVAL=0.5,
            VERIFY_MAX_ATTEMPTS=5,
        )
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def template_dir(tmp_path):
    """Empty default template directory; write templates with ``write_template``."""
    directory = tmp_path / "templates" / "default-workflows"
    directory.mkdir(parents=True)
    return directory


@pytest.fixture
def write_template(template_dir):
    def _write(filename, data):
        path = template_dir / filename
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def sample_workflow():
    return {
        "id": "exported-id-123",
        "name": "Lead Intake",
        "active": True,
        "createdAt": "2025-01-01T00:00:00.000Z",
        "updatedAt": "2025-01-02T00:00:00.000Z",
        "versionCounter": 7,
        "versionId": "3f1c0d2e-old-version",
        "nodes": [
            {
                "name": "Webhook",
                "type": "n8n-nodes-base.webhook",
                "parameters": {"path": "lead-intake", "httpMethod": "POST"},
            },
            {
                "name": "Save Lead",
                "type": "n8n-nodes-base.postgres",
                "parameters": {"operation": "insert"},
                "credentials": {"postgres": {"id": "12", "name": "Prod DB"}},
            },
        ],
        "connections": {
            "Webhook": {"main": [[{"node": "Save Lead", "type": "main", "index": 0}]]}
        },
        "tags": [],
    }
