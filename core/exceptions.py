"""
Custom exceptions for the client
"""

from typing import Optional, Dict, Any


class OrkoClientError(Exception):
    """Base exception for all client errors"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AuthorizationExpired(OrkoClientError):
    """HTTP 401: the session token is no longer valid"""
    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__("Login session expired", details)


class WhitelistExpired(OrkoClientError):
    """HTTP 403: the whitelist grant for this client has lapsed"""
    def __init__(self, details: Optional[Dict[str, Any]] = None):
        super().__init__("Whitelist grant expired", details)


class TransientServerError(OrkoClientError):
    """Any other failed request, carrying a human-readable message"""
    def __init__(self, message: str, status: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        self.status = status
        super().__init__(message, details)

    @classmethod
    def from_response(cls, response) -> "TransientServerError":
        """Build the error from a non-success response"""
        message = response.status_text or f"Server error ({response.status})"
        return cls(message, status=response.status)


class MalformedFrame(OrkoClientError):
    """Raised when a transport frame is not valid JSON"""
    def __init__(self, raw: Any, reason: str):
        self.raw = raw
        super().__init__(f"Malformed frame: {reason}", {"raw": str(raw)[:200]})


class UnknownEnvelopeError(OrkoClientError):
    """Raised when an envelope carries an unknown or missing event type"""
    def __init__(self, event_type: Any):
        self.event_type = event_type
        super().__init__(f"Unknown envelope event type: {event_type!r}")


class AuthServiceError(OrkoClientError):
    """Raised when an auth service call does not succeed"""
    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message, {"status": status} if status is not None else None)
