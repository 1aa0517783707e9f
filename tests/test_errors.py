from fastapi.testclient import TestClient
from convo_mcp.main import app
import pytest

client = TestClient(app)


def test_404_not_found():
    response = client.get("/non-existent-route")
    assert response.status_code == 404
    data = response.json()
    assert "error" in data
    assert "code" in data
    assert data["code"] == "HTTP_ERROR"


def test_validation_error_structure():
    # Temporary route to exercise request validation
    from pydantic import BaseModel

    class Item(BaseModel):
        name: str
        price: int

    @app.post("/test-validation")
    def create_item(item: Item):
        return item

    response = client.post("/test-validation", json={"name": "foo", "price": "invalid"})
    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "VALIDATION_ERROR"
    assert "details" in data
    assert len(data["details"]) > 0
    assert all("ctx" not in error for error in data["details"])


def test_custom_exception():
    from convo_mcp.core.exceptions import SSONotConfiguredError

    @app.get("/test-custom-error")
    def trigger_custom_error():
        raise SSONotConfiguredError()

    response = client.get("/test-custom-error")
    assert response.status_code == 502
    data = response.json()
    assert data["code"] == "SSO_NOT_CONFIGURED"
    assert data["error"] == "SSO is not configured"


def test_token_request_failed_maps_to_bad_gateway():
    from convo_mcp.core.exceptions import TokenRequestFailed

    @app.get("/test-token-error")
    def trigger_token_error():
        raise TokenRequestFailed(401, "Unauthorized")

    response = client.get("/test-token-error")
    assert response.status_code == 502
    data = response.json()
    assert data["code"] == "TOKEN_REQUEST_FAILED"
    assert data["error"] == "Token request failed: 401 Unauthorized"


def test_unhandled_exception():
    @app.get("/test-crash")
    def crash():
        raise RuntimeError("boom")

    crash_client = TestClient(app, raise_server_exceptions=False)
    response = crash_client.get("/test-crash")
    assert response.status_code == 500
    assert response.json()["code"] == "INTERNAL_ERROR"
