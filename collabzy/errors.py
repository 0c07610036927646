"""
Exceptions raised by the Collabzy data layer.
"""
from typing import Any, Optional


class CollabzyError(Exception):
    """Base class for data layer errors."""


class GatewayError(CollabzyError):
    """
    A call to the Collabzy API failed.

    Raised for network errors, non-2xx responses and envelopes with
    success=false. message is always safe to show to a user.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def __repr__(self) -> str:
        return f"GatewayError({self.message!r}, status_code={self.status_code})"


def extract_error_message(payload: Any, fallback: str) -> str:
    """Server-provided message from a failure body, else the fallback."""
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, str) and message.strip():
            return message
    return fallback
