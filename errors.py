"""
Error Types
===========

Error taxonomy shared by the credential, pacing and posting layers.

Every error carries a machine-readable ``code`` and an HTTP-like ``status`` so
the tool layer can decide how to render it: rate limits become a soft text
result, everything else becomes a protocol-level fault.
"""

from typing import Optional


class TwitterMCPError(Exception):
    """Base class for all errors raised by this service."""

    code = "internal_error"
    status = 500

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, status={self.status!r}, message={self.message!r})"


class InvalidParameters(TwitterMCPError):
    """Malformed or oversized tool input."""

    code = "invalid_params"
    status = 400


class AuthenticationFailure(TwitterMCPError):
    """Missing or invalid credentials, including a failed token refresh."""

    code = "authentication_failed"
    status = 401


class RateLimitExceeded(TwitterMCPError):
    """Throttling reported by the platform (not the internal send pacer)."""

    code = "rate_limit_exceeded"
    status = 429


class InvalidMedia(TwitterMCPError):
    """A media source could not be loaded, or none of the requested media uploaded."""

    code = "invalid_media"
    status = 400


class PlatformError(TwitterMCPError):
    """Any other failed call to the platform API."""

    code = "platform_error"
    status = 502


class InternalError(TwitterMCPError):
    """Unclassified failure."""

    code = "internal_error"
    status = 500


class TokenRefreshError(TwitterMCPError):
    """
    The OAuth2 refresh-token grant failed.

    Attributes:
        error (str): The ``error`` field reported by the token endpoint
        error_description (Optional[str]): The ``error_description`` field, if any
    """

    code = "token_refresh_failed"
    status = 401

    def __init__(
        self,
        message: str,
        error: str = "",
        error_description: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message, status=status)
        self.error = error
        self.error_description = error_description
