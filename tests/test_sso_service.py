from urllib.parse import parse_qs

import httpx
import pytest

from convo_mcp.core.config import Settings
from convo_mcp.core.exceptions import SSONotConfiguredError, TokenRequestFailed
from convo_mcp.services.sso_service import SSOClient, TokenCache, validate_document

from conftest import FakeSSO


def make_cache(fake_sso, sso_settings, clock):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_sso))
    return TokenCache(http_client, sso_settings, clock=clock)


@pytest.mark.asyncio
async def test_token_is_reused_within_its_window(sso_settings, clock):
    fake = FakeSSO(expires_in=120)
    cache = make_cache(fake, sso_settings, clock)

    first = await cache.get_token()
    clock.now += 30
    second = await cache.get_token()

    assert first == second == "token-1"
    assert len(fake.token_requests) == 1
    assert cache.expires_at == 1000.0 + 120 - 60


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_once(sso_settings, clock):
    fake = FakeSSO(expires_in=120)
    cache = make_cache(fake, sso_settings, clock)

    await cache.get_token()
    clock.now = 1061.0
    token = await cache.get_token()
    again = await cache.get_token()

    assert token == again == "token-2"
    assert len(fake.token_requests) == 2
    assert cache.expires_at == 1061.0 + 60


@pytest.mark.asyncio
async def test_missing_expires_in_defaults_to_five_minutes(sso_settings, clock):
    cache = make_cache(FakeSSO(expires_in=None), sso_settings, clock)

    await cache.get_token()

    assert cache.expires_at == 1000.0 + 300 - 60


@pytest.mark.asyncio
async def test_zero_expires_in_is_not_treated_as_missing(sso_settings, clock):
    fake = FakeSSO(expires_in=0)
    cache = make_cache(fake, sso_settings, clock)

    await cache.get_token()

    assert cache.expires_at == 1000.0 - 60
    assert not cache.is_valid()
    assert await cache.get_token() == "token-2"
    assert len(fake.token_requests) == 2


@pytest.mark.asyncio
async def test_token_request_is_a_password_grant(sso_settings, clock):
    fake = FakeSSO()
    cache = make_cache(fake, sso_settings, clock)

    await cache.get_token()

    form = parse_qs(fake.token_requests[0].content.decode())
    assert form == {
        "grant_type": ["password"],
        "client_id": ["agent"],
        "client_secret": ["client-secret"],
        "username": ["svc-agent"],
        "password": ["svc-password"],
    }


@pytest.mark.asyncio
async def test_failed_token_request_leaves_cache_unchanged(sso_settings, clock):
    fake = FakeSSO(expires_in=120)
    cache = make_cache(fake, sso_settings, clock)
    await cache.get_token()
    expires_at = cache.expires_at

    fake.token_status = 503
    clock.now = 2000.0
    with pytest.raises(TokenRequestFailed) as excinfo:
        await cache.get_token()

    assert excinfo.value.http_status == 503
    assert excinfo.value.status_text == "Service Unavailable"
    assert cache.token == "token-1"
    assert cache.expires_at == expires_at


@pytest.mark.asyncio
async def test_existence_check_sends_bearer_token(sso_client, fake_sso):
    body = await sso_client.user_exists("1020304050")

    assert body["name"] == "Ana Gomez"
    request = fake_sso.exists_requests[0]
    assert request.headers["Authorization"] == "Bearer token-1"
    assert request.url.path == "/api/users/exists/1020304050"


@pytest.mark.asyncio
async def test_validate_document_success(sso_client):
    result = await validate_document(sso_client, "1020304050")

    assert result == {
        "exists": True,
        "docNumber": "1020304050",
        "userData": {"exists": True, "name": "Ana Gomez", "email": "ana@example.com"},
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 404, 500, 503])
async def test_validate_document_degrades_on_error_status(sso_client, fake_sso, status):
    fake_sso.exists_status = status

    result = await validate_document(sso_client, "1020304050")

    assert result["exists"] is False
    assert result["docNumber"] == "1020304050"
    assert isinstance(result["error"], str) and result["error"]


@pytest.mark.asyncio
async def test_validate_document_degrades_on_token_failure(sso_client, fake_sso):
    fake_sso.token_status = 401

    result = await validate_document(sso_client, "1020304050")

    assert result["exists"] is False
    assert "401" in result["error"]


@pytest.mark.asyncio
async def test_validate_document_degrades_on_network_error(sso_settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = SSOClient(config=sso_settings, http_client=http_client)

    result = await validate_document(client, "1020304050")

    assert result["exists"] is False
    assert "connection refused" in result["error"]


@pytest.mark.asyncio
async def test_validate_document_without_number(sso_client):
    result = await validate_document(sso_client, None)
    assert result == {"exists": False, "error": "No document number available", "docNumber": None}


@pytest.mark.asyncio
async def test_unconfigured_sso():
    client = SSOClient(config=Settings(_env_file=None))

    with pytest.raises(SSONotConfiguredError):
        await client.user_exists("1020304050")

    result = await validate_document(client, "1020304050")
    assert result["exists"] is False
    assert result["error"] == "SSO is not configured"
    await client.close()


@pytest.mark.asyncio
async def test_rejected_token_is_dropped_from_cache(sso_client, fake_sso):
    fake_sso.exists_status = 401
    result = await validate_document(sso_client, "1020304050")
    assert result["exists"] is False
    assert not sso_client.token_cache.is_valid()

    fake_sso.exists_status = None
    result = await validate_document(sso_client, "1020304050")
    assert result["exists"] is True
    assert len(fake_sso.token_requests) == 2
    assert fake_sso.exists_requests[-1].headers["Authorization"] == "Bearer token-2"
