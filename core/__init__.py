"""
Core components: auth state, errors, logging and configuration validation
"""

from .exceptions import (
    OrkoClientError,
    AuthorizationExpired,
    WhitelistExpired,
    TransientServerError,
    MalformedFrame,
    UnknownEnvelopeError,
    AuthServiceError,
)

__all__ = [
    "OrkoClientError",
    "AuthorizationExpired",
    "WhitelistExpired",
    "TransientServerError",
    "MalformedFrame",
    "UnknownEnvelopeError",
    "AuthServiceError",
]
