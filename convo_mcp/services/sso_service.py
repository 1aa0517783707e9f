"""
convo_mcp/services/sso_service.py

Purpose: SSO integration

- Password-grant token with a single-slot cache (refreshed on expiry)
- Existence check of a user by document number
- Catch-and-degrade wrapper so identity checks never break the
  caller's workflow
"""

import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import httpx

from convo_mcp.core.config import Settings, settings
from convo_mcp.core.exceptions import (
    ConvoMCPError,
    ExternalServiceError,
    SSONotConfiguredError,
    TokenRequestFailed,
)
from convo_mcp.core.logging import get_logger

logger = get_logger(__name__)

# Seconds shaved off expires_in so a token is never used right at its expiry
TOKEN_EXPIRY_MARGIN = 60
# Lifetime assumed when the token response has no expires_in
DEFAULT_TOKEN_LIFETIME = 300


class TokenCache:
    """
    Single-slot cache for the SSO bearer token.

    Holds ``token`` and ``expires_at`` (in ``clock`` seconds). Concurrent
    callers that find the slot expired may each request a token; the last
    response wins.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._http = http_client
        self._config = config or settings
        self._clock = clock
        self.token: Optional[str] = None
        self.expires_at: float = 0.0

    def is_valid(self) -> bool:
        return self.token is not None and self._clock() < self.expires_at

    def invalidate(self):
        self.token = None
        self.expires_at = 0.0

    async def get_token(self) -> str:
        """
        Returns the cached token, requesting a new one when expired.

        Raises:
            TokenRequestFailed: The token endpoint answered with a non-success
                status (the cached slot is left as it was)
            ExternalServiceError: The response carried no access token
        """
        if self.is_valid():
            return self.token

        return await self.refresh()

    async def refresh(self) -> str:
        config = self._config
        if not config.SSO_TOKEN_URL:
            raise SSONotConfiguredError("SSO token endpoint is not configured")

        logger.info("Requesting SSO access token")
        response = await self._http.post(
            config.SSO_TOKEN_URL,
            data={
                "grant_type": "password",
                "client_id": config.SSO_CLIENT_ID,
                "client_secret": config.SSO_CLIENT_SECRET,
                "username": config.SSO_USERNAME,
                "password": config.SSO_PASSWORD,
            },
            headers={"Accept": "application/json"},
        )

        if not response.is_success:
            logger.error(f"SSO token request failed: {response.status_code} {response.reason_phrase}")
            raise TokenRequestFailed(response.status_code, response.reason_phrase)

        payload = response.json()
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise ExternalServiceError("SSO token response did not include an access_token")

        expires_in = payload.get("expires_in")
        if expires_in is None:
            expires_in = DEFAULT_TOKEN_LIFETIME
        self.token = token
        self.expires_at = self._clock() + (float(expires_in) - TOKEN_EXPIRY_MARGIN)
        logger.debug(f"SSO token cached for {float(expires_in) - TOKEN_EXPIRY_MARGIN:.0f}s")
        return token


class SSOClient:
    """
    Client for the SSO existence-check endpoint.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        self._config = config or settings
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self._config.SSO_TIMEOUT_SECONDS)
        self.token_cache = token_cache or TokenCache(self._http, self._config)

    async def user_exists(self, doc_number: str) -> Any:
        """
        Asks the SSO whether a user with this document number exists.

        Args:
            doc_number: Document number to look up

        Returns:
            Response body, verbatim (parsed JSON, or text if not JSON)

        Raises:
            SSONotConfiguredError: Endpoint or credentials missing
            TokenRequestFailed: Token could not be obtained
            ExternalServiceError: Non-success response
            httpx.HTTPError: Network failures
        """
        if not self._config.sso_configured:
            raise SSONotConfiguredError()

        token = await self.token_cache.get_token()
        url = f"{self._config.SSO_USER_EXISTS_URL.rstrip('/')}/{quote(doc_number, safe='')}"

        response = await self._http.get(
            url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
        )

        if not response.is_success:
            logger.warning(f"SSO existence check failed: {response.status_code} {response.reason_phrase}")
            if response.status_code == 401:
                # Token revoked before its expiry; fetch a new one next time
                self.token_cache.invalidate()
            raise ExternalServiceError(
                f"SSO existence check failed: {response.status_code} {response.reason_phrase}".strip(),
                details={"status": response.status_code},
            )

        try:
            return response.json()
        except ValueError:
            return response.text

    async def close(self):
        if self._owns_http:
            await self._http.aclose()


async def validate_document(client: SSOClient, doc_number: Optional[str]) -> Dict[str, Any]:
    """
    Checks a document number against the SSO without ever raising.

    Args:
        client: SSO client
        doc_number: Document number (None when the user has none stored)

    Returns:
        {exists, docNumber, userData} on success, or
        {exists: False, error, docNumber} on any failure
    """
    if not doc_number:
        return {"exists": False, "error": "No document number available", "docNumber": doc_number}

    try:
        body = await client.user_exists(doc_number)
    except (ConvoMCPError, httpx.HTTPError, ValueError) as e:
        logger.warning(f"SSO validation degraded: {e}")
        return {
            "exists": False,
            "error": str(e) or type(e).__name__,
            "docNumber": doc_number,
        }

    if isinstance(body, dict) and isinstance(body.get("exists"), bool):
        exists = body["exists"]
    else:
        exists = True

    logger.info(f"SSO validation finished: exists={exists}")
    return {"exists": exists, "docNumber": doc_number, "userData": body}


# Global SSO client instance
_sso_client: Optional[SSOClient] = None


def get_sso_client() -> SSOClient:
    """Get or create the global SSO client."""
    global _sso_client
    if _sso_client is None:
        _sso_client = SSOClient()
    return _sso_client


def set_sso_client(client: Optional[SSOClient]):
    """Installs the global SSO client (used by tests)."""
    global _sso_client
    _sso_client = client


async def close_sso_client():
    """Close the SSO client and release its connections."""
    global _sso_client
    if _sso_client:
        await _sso_client.close()
        _sso_client = None
