import pytest

from n8n_provisioner.errors import ConfigurationError
from n8n_provisioner.storage import neon
from n8n_provisioner.storage.neon import NeonStore, store_to_neon
from n8n_provisioner.storage.records import ProvisioningRecord, generate_id


class FakeTransaction:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class FakeConnection:
    """Minimal asyncpg connection holding "User" rows keyed by clerkId."""

    def __init__(self, fail_on=None):
        self.rows = {}
        self.fail_on = fail_on
        self.closed = False

    def transaction(self):
        return FakeTransaction()

    async def fetchrow(self, query, key):
        row = self.rows.get(key)
        return {"id": row["id"]} if row else None

    async def execute(self, query, *args):
        if query is self.fail_on:
            raise RuntimeError("relation \"User\" does not exist")

        if query is neon.INSERT_USER:
            self.rows[args[1]] = {"id": args[0], "email": args[2], "n8nUrl": args[3], "status": args[8]}
            return "INSERT 0 1"
        if query is neon.UPDATE_USER:
            row = self.rows[args[0]]
            row.update({"email": args[1], "n8nUrl": args[2], "status": args[7], "error": None})
            return "UPDATE 1"
        if query is neon.MARK_FAILED:
            row = self.rows.get(args[3])
            if row is None:
                return "UPDATE 0"
            row.update({"status": args[0], "error": args[1]})
            return "UPDATE 1"
        if query is neon.INSERT_FAILED:
            self.rows[args[1]] = {"id": args[0], "email": args[2], "status": args[3], "error": args[4]}
            return "INSERT 0 1"
        raise AssertionError(f"unexpected query: {query}")

    async def close(self):
        self.closed = True


def make_record(**overrides):
    values = dict(
        user_key="user_2abc",
        user_email="ada@example.com",
        n8n_url="https://n8n.example.com",
        n8n_user_email="owner@example.com",
        n8n_user_password="pw",
        n8n_encryption_key="enc-key",
        project_id="proj-1",
        project_name="ada-n8n",
    )
    values.update(overrides)
    return ProvisioningRecord(**values)


def test_generate_id_shape():
    first, second = generate_id(), generate_id()
    assert first.startswith("c")
    assert first != second
    assert first.isalnum() and first == first.lower()


@pytest.mark.asyncio
async def test_upsert_twice_updates_single_row():
    conn = FakeConnection()
    store = NeonStore(conn)

    assert await store.upsert(make_record()) == "created"
    first_id = conn.rows["user_2abc"]["id"]
    assert await store.upsert(make_record(n8n_url="https://moved.example.com")) == "updated"

    assert len(conn.rows) == 1
    row = conn.rows["user_2abc"]
    assert row["id"] == first_id
    assert row["n8nUrl"] == "https://moved.example.com"
    assert row["status"] == "ready"


@pytest.mark.asyncio
async def test_failure_writes_error_status_then_raises():
    conn = FakeConnection(fail_on=neon.INSERT_USER)

    with pytest.raises(RuntimeError):
        await NeonStore(conn).store(make_record())

    row = conn.rows["user_2abc"]
    assert row["status"] == "failed"
    assert "does not exist" in row["error"]


@pytest.mark.asyncio
async def test_failure_on_existing_row_updates_it():
    conn = FakeConnection()
    store = NeonStore(conn)
    await store.upsert(make_record())
    conn.fail_on = neon.UPDATE_USER

    with pytest.raises(RuntimeError):
        await store.store(make_record())

    assert len(conn.rows) == 1
    assert conn.rows["user_2abc"]["status"] == "failed"


@pytest.mark.asyncio
async def test_error_status_write_failure_keeps_original_error():
    conn = FakeConnection(fail_on=neon.INSERT_USER)

    async def broken_execute(query, *args):
        raise RuntimeError("connection lost")

    conn.execute = broken_execute

    with pytest.raises(RuntimeError, match="connection lost"):
        await NeonStore(conn).store(make_record())


@pytest.mark.asyncio
async def test_store_to_neon_connects_and_closes(make_settings):
    conn = FakeConnection()
    seen = {}

    async def connect(dsn, **kwargs):
        seen["dsn"] = dsn
        seen.update(kwargs)
        return conn

    settings = make_settings(
        DATABASE_URL="postgresql://neon.test/db",
        CLERK_USER_ID="user_2abc",
        USER_EMAIL="ada@example.com",
        N8N_ENCRYPTION_KEY="enc-key",
        NORTHFLANK_PROJECT_ID="proj-1",
        NORTHFLANK_PROJECT_NAME="ada-n8n",
    )

    assert await store_to_neon(settings, connect=connect) == "created"
    assert seen == {"dsn": "postgresql://neon.test/db", "ssl": "require", "timeout": 30}
    assert conn.closed
    assert conn.rows["user_2abc"]["n8nUrl"] == "http://n8n.test"


@pytest.mark.asyncio
async def test_store_to_neon_requires_configuration(make_settings):
    with pytest.raises(ConfigurationError) as exc:
        await store_to_neon(make_settings())
    assert "DATABASE_URL" in exc.value.missing
    assert "CLERK_USER_ID" in exc.value.missing
