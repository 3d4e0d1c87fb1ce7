from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base class for relay failures.

    ``public_message`` is what callers see; the exception text itself may hold
    upstream details and is only ever logged.
    """

    status_code: int = 500
    public_message: str = "Internal server error"


class ValidationError(RelayError):
    """Caller input was empty or malformed."""

    status_code = 400

    def __init__(self, message: str = "Message must not be empty") -> None:
        super().__init__(message)
        self.public_message = message


class UpstreamError(RelayError):
    status_code = 502
    public_message = "AI service error"


class UpstreamTransportError(UpstreamError):
    """Network failure or timeout reaching the completion API."""

    public_message = "Error contacting AI service"


class UpstreamProtocolError(UpstreamError):
    """Non-success status or unparseable body from the completion API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.upstream_status = status_code
        self.upstream_body = body


class EmptyUpstreamResponse(UpstreamError):
    public_message = "AI service returned no answer"


class ConfigurationError(RelayError):
    """Fatal at startup: the process must not serve without it."""
