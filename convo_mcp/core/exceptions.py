from typing import Optional, Any


class ConvoMCPError(Exception):
    """
    Base exception for the conversational MCP backend.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class AuthenticationError(ConvoMCPError):
    """
    Raised when the transport bearer token is missing or wrong.
    """
    def __init__(self, message: str = "Unauthorized", details: Optional[Any] = None):
        super().__init__(message, code="UNAUTHORIZED", status_code=401, details=details)


class ExternalServiceError(ConvoMCPError):
    """
    Raised when an external service (the SSO) fails.
    """
    def __init__(self, message: str = "External service error", details: Optional[Any] = None):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR", status_code=502, details=details)


class SSONotConfiguredError(ExternalServiceError):
    """
    Raised when an SSO call is attempted without endpoints or credentials.
    """
    def __init__(self, message: str = "SSO is not configured", details: Optional[Any] = None):
        super().__init__(message, details=details)
        self.code = "SSO_NOT_CONFIGURED"


class TokenRequestFailed(ExternalServiceError):
    """
    Raised when the SSO token endpoint answers with a non-success status.
    """
    def __init__(self, status_code: int, status_text: str):
        super().__init__(
            f"Token request failed: {status_code} {status_text}".strip(),
            details={"status": status_code, "statusText": status_text},
        )
        self.code = "TOKEN_REQUEST_FAILED"
        self.http_status = status_code
        self.status_text = status_text
