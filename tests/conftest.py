"""
Pytest fixtures for the MCP agent backend tests.
"""
import json

import httpx
import pytest
import pytest_asyncio

from convo_mcp.core.config import Settings
from convo_mcp.db.database import Database, set_database
from convo_mcp.services.sso_service import SSOClient, set_sso_client


@pytest_asyncio.fixture
async def database(tmp_path):
    """A connected store on a throwaway SQLite file, installed as the process handle."""
    db = Database(url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.connect(max_retries=1)
    await db.create_schema()
    set_database(db)
    yield db
    set_database(None)
    await db.close()


@pytest_asyncio.fixture
async def session(database):
    """A session whose writes are committed when the test finishes."""
    async with database.session() as s:
        yield s


@pytest.fixture
def sso_settings():
    return Settings(
        _env_file=None,
        SSO_TOKEN_URL="https://sso.test/oauth/token",
        SSO_USER_EXISTS_URL="https://sso.test/api/users/exists",
        SSO_CLIENT_ID="agent",
        SSO_CLIENT_SECRET="client-secret",
        SSO_USERNAME="svc-agent",
        SSO_PASSWORD="svc-password",
    )


class FakeClock:
    """Manually advanced clock for token expiry tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class FakeSSO:
    """
    httpx.MockTransport handler standing in for the SSO server.

    Known document numbers answer {"exists": true, ...}; anything else 404s.
    """

    def __init__(self, known=None, token_status=200, exists_status=None, expires_in=3600):
        self.known = known or {"1020304050": {"exists": True, "name": "Ana Gomez", "email": "ana@example.com"}}
        self.token_status = token_status
        self.exists_status = exists_status
        self.expires_in = expires_in
        self.token_requests = []
        self.exists_requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/token":
            self.token_requests.append(request)
            if self.token_status != 200:
                return httpx.Response(self.token_status)
            body = {"access_token": f"token-{len(self.token_requests)}", "token_type": "bearer"}
            if self.expires_in is not None:
                body["expires_in"] = self.expires_in
            return httpx.Response(200, json=body)

        self.exists_requests.append(request)
        if self.exists_status is not None:
            return httpx.Response(self.exists_status, json={"error": "boom"})
        doc_number = request.url.path.rsplit("/", 1)[-1]
        if doc_number in self.known:
            return httpx.Response(200, json=self.known[doc_number])
        return httpx.Response(404, json={"exists": False})


@pytest.fixture
def fake_sso():
    return FakeSSO()


@pytest_asyncio.fixture
async def sso_client(sso_settings, fake_sso):
    """SSO client wired to the fake SSO and installed as the process client."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_sso))
    client = SSOClient(config=sso_settings, http_client=http_client)
    set_sso_client(client)
    yield client
    set_sso_client(None)
    await http_client.aclose()


def tool_payload(result):
    """
    Unwraps FastMCP.call_tool output into the tool's JSON result.

    Depending on the SDK version call_tool returns the content blocks or a
    (content, structured) tuple.
    """
    if isinstance(result, tuple):
        result = result[0]
    if isinstance(result, dict):
        return result
    text = result[0].text
    try:
        return json.loads(text)
    except ValueError:
        return text
