"""
convo_mcp/core/security.py

Purpose: Bearer-token guard for the MCP transport

- Rejects /mcp requests whose Authorization header does not match
  the configured secret
- Disabled entirely when no secret is configured (local/dev use)
- Plain ASGI so SSE streams are passed through untouched
"""

import hmac
import json
from typing import Iterable

from starlette.types import ASGIApp, Receive, Scope, Send

from convo_mcp.core.exceptions import AuthenticationError
from convo_mcp.core.logging import get_logger

logger = get_logger(__name__)


def is_authorized(authorization: str, expected_token: str) -> bool:
    """
    Checks an Authorization header value against the configured token.

    Args:
        authorization: Raw header value ("" when absent)
        expected_token: Configured secret; empty means auth is off

    Returns:
        True if the request may proceed
    """
    if not expected_token:
        return True
    return hmac.compare_digest(
        authorization.encode("utf-8"),
        f"Bearer {expected_token}".encode("utf-8"),
    )


class BearerAuthMiddleware:
    """
    ASGI middleware enforcing ``Authorization: Bearer <token>`` on protected paths.
    """

    def __init__(self, app: ASGIApp, token: str, protected_prefixes: Iterable[str] = ("/mcp",)):
        self.app = app
        self.token = token
        self.protected_prefixes = tuple(protected_prefixes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http" or not self._is_protected(scope):
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        authorization = headers.get(b"authorization", b"").decode("latin-1")

        if is_authorized(authorization, self.token):
            await self.app(scope, receive, send)
            return

        client = scope.get("client")
        logger.warning(
            f"Rejected unauthorized request: {scope.get('method')} {scope.get('path')}",
            extra={"client": client[0] if client else "unknown"}
        )
        await self._reject(send)

    def _is_protected(self, scope: Scope) -> bool:
        # Preflight requests carry no credentials; CORS answers them
        if scope.get("method") == "OPTIONS":
            return False
        path = scope.get("path", "")
        return any(
            path == prefix or path.startswith(prefix.rstrip("/") + "/")
            for prefix in self.protected_prefixes
        )

    @staticmethod
    async def _reject(send: Send):
        exc = AuthenticationError()
        body = json.dumps({"error": exc.message, "code": exc.code, "details": exc.details}).encode("utf-8")
        await send({
            "type": "http.response.start",
            "status": exc.status_code,
            "headers": [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode("latin-1")),
                (b"www-authenticate", b"Bearer"),
            ],
        })
        await send({"type": "http.response.body", "body": body})
