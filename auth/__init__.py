"""
Auth lifecycle, gated requests and the backend auth service
"""

from .service import AuthService, ApiResponse
from .gateway import RequestGateway, RequestOutcome
from .controller import AuthController

__all__ = ["AuthService", "ApiResponse", "RequestGateway", "RequestOutcome", "AuthController"]
