"""
HTTP client for the backend's auth endpoints
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from config import API_CONFIG, api_url
from core.exceptions import AuthServiceError
from core.logging_config import get_logger, log_api_call

logger = get_logger(__name__)


@dataclass
class ApiResponse:
    """A fully read HTTP response"""
    status: int
    status_text: str = ""
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    async def json(self) -> Any:
        """Decode the body as JSON; an empty body decodes to None"""
        if not self.body:
            return None
        return json.loads(self.body)


class AuthService:
    """
    Async client for whitelist and auth configuration calls.

    Usage::

        service = AuthService("https://orko.example.com")
        if await service.check_whitelist():
            response = await service.config()
        await service.close()
    """

    def __init__(self,
                 base_url: Optional[str] = None,
                 request_timeout: Optional[float] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = (base_url or API_CONFIG["base_url"]).rstrip("/")
        self.request_timeout = request_timeout or API_CONFIG["request_timeout"]
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
            self._owns_session = True
        return self._session

    async def request(self,
                      method: str,
                      endpoint: str,
                      auth_state=None,
                      params: Optional[Dict[str, str]] = None,
                      json_body: Any = None) -> ApiResponse:
        """
        Perform a request and return the response fully read.

        Args:
            method: HTTP method
            endpoint: Named endpoint from API_CONFIG or a path under the API prefix
            auth_state: When it carries a token, sent as a bearer credential
            params: Query parameters
            json_body: JSON request body
        """
        session = await self._ensure_session()
        url = api_url(endpoint, self.base_url)
        headers = {}
        if auth_state is not None and auth_state.token:
            headers["Authorization"] = f"Bearer {auth_state.token}"

        start = time.time()
        async with session.request(method, url, params=params, json=json_body,
                                   headers=headers) as response:
            body = await response.read()
            result = ApiResponse(status=response.status,
                                 status_text=response.reason or "",
                                 body=body)

        log_api_call(logger, method, url, result.status, (time.time() - start) * 1000)
        return result

    def _raise_for_status(self, response: ApiResponse):
        if not response.ok:
            message = response.status_text or f"Server error ({response.status})"
            raise AuthServiceError(message, status=response.status)

    async def check_whitelist(self) -> bool:
        """Ask whether this client is currently whitelisted"""
        response = await self.request("GET", "whitelist")
        self._raise_for_status(response)
        try:
            return bool(await response.json())
        except ValueError:
            return response.text().strip().lower() == "true"

    async def whitelist(self, token: str) -> None:
        """Request a whitelist grant using a one-time token"""
        response = await self.request("PUT", "whitelist", params={"token": token})
        self._raise_for_status(response)

    async def clear_whitelist(self) -> None:
        """Revoke the whitelist grant"""
        response = await self.request("DELETE", "whitelist")
        self._raise_for_status(response)

    async def config(self, auth_state=None) -> ApiResponse:
        """Fetch the auth configuration; the response is classified by the caller"""
        return await self.request("GET", "config", auth_state=auth_state)

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
