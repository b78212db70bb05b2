"""Error taxonomy for the assistant service.

Errors raised before a stream starts are rendered as JSON HTTP responses by the
exception handlers in ``assistant.main``. Once an SSE stream has started, errors
are encoded as ``error`` frames instead.
"""

from typing import Any


class AssistantError(Exception):
    """Base class for errors that map to an HTTP status code."""

    status_code: int = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def as_dict(self) -> dict[str, Any]:
        """Return the JSON body for this error."""
        return {"error": self.message, **self.details}


class AuthError(AssistantError):
    """No authenticated identity on the request."""

    status_code = 401


class InvalidRequestError(AssistantError):
    """Malformed or empty request body."""

    status_code = 400


class NotFoundError(AssistantError):
    """Unknown conversation or thread."""

    status_code = 404


class ConfigurationError(AssistantError):
    """A required credential for the agent backend is missing."""

    status_code = 500


class UpstreamAgentError(AssistantError):
    """Failure inside the tool-calling loop after streaming has begun."""

    status_code = 502
