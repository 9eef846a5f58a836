import json

import httpx
import pytest

from n8n_provisioner.errors import N8nAPIError
from n8n_provisioner.owner import OwnerStatus, create_owner


def owner_server(has_owner=False, setup_status=200, setup_message="", login_status=200):
    calls = []

    def handler(request):
        body = json.loads(request.content) if request.content else None
        calls.append((request.method, request.url.path, body))
        path = request.url.path
        if path == "/rest/owner":
            return httpx.Response(200, json={"data": {"hasOwner": has_owner}})
        if path == "/rest/owner/setup":
            return httpx.Response(setup_status, json={"message": setup_message})
        if path == "/rest/login":
            return httpx.Response(login_status, json={}, headers={"set-cookie": "n8n-auth=t; Path=/"})
        return httpx.Response(404)

    return httpx.MockTransport(handler), calls


@pytest.mark.asyncio
async def test_creates_owner_and_verifies_login(make_settings):
    transport, calls = owner_server()

    status = await create_owner(make_settings(), transport=transport)

    assert status == OwnerStatus.CREATED
    setup = [c for c in calls if c[1] == "/rest/owner/setup"][0][2]
    assert setup == {
        "email": "owner@example.com",
        "password": "s3cret-Passw0rd",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "agreedToLicense": True,
    }
    assert calls[-1][1] == "/rest/login"


@pytest.mark.asyncio
async def test_existing_owner_is_not_recreated(make_settings):
    transport, calls = owner_server(has_owner=True)

    status = await create_owner(make_settings(), transport=transport)

    assert status == OwnerStatus.EXISTING
    assert all(c[1] != "/rest/owner/setup" for c in calls)


@pytest.mark.asyncio
async def test_existing_owner_with_other_credentials(make_settings):
    transport, _ = owner_server(has_owner=True, login_status=401)

    assert await create_owner(make_settings(), transport=transport) == OwnerStatus.EXISTING_UNVERIFIED


@pytest.mark.asyncio
async def test_already_setup_error_is_tolerated(make_settings):
    transport, _ = owner_server(setup_status=400, setup_message="Instance owner already setup")

    assert await create_owner(make_settings(), transport=transport) == OwnerStatus.EXISTING


@pytest.mark.asyncio
async def test_setup_failure_raises(make_settings):
    transport, _ = owner_server(setup_status=500, setup_message="Internal error")

    with pytest.raises(N8nAPIError) as exc:
        await create_owner(make_settings(), transport=transport)
    assert exc.value.status_code == 500
