"""
Authenticated request gateway

Every outbound backend request goes through RequestGateway.dispatch, which
suppresses it unless the client is whitelisted and logged in, and turns the
response into exactly one outcome.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Set

from config import API_CONFIG
from core.exceptions import AuthorizationExpired, TransientServerError, WhitelistExpired
from core.logging_config import get_logger
from events import event_bus, EventTypes

logger = get_logger(__name__)


class RequestOutcome(Enum):
    SUPPRESSED = "suppressed"
    SUCCESS = "success"
    WHITELIST_EXPIRED = "whitelist_expired"
    LOGIN_INVALIDATED = "login_invalidated"
    ERROR = "error"


async def _call(handler: Callable, *args) -> Any:
    """Invoke a handler that may be sync or async"""
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class RequestGateway:
    """Gates requests on the auth state and classifies their responses"""

    def __init__(self, state_provider: Callable[[], Any], controller,
                 request_timeout: Optional[float] = None):
        """
        Args:
            state_provider: Returns the current auth state snapshot
            controller: Auth controller that handles 401 and 403 responses
            request_timeout: Seconds before a request fails as a transient error
        """
        self._state_provider = state_provider
        self.controller = controller
        self.request_timeout = request_timeout or API_CONFIG["request_timeout"]
        self._pending: Set[asyncio.Task] = set()

    async def dispatch(self,
                       api_request: Callable[[Any], Awaitable[Any]],
                       on_success: Optional[Callable[[], Any]] = None,
                       on_json_result: Optional[Callable[[Any], Any]] = None,
                       on_error: Optional[Callable[[Exception], Any]] = None) -> RequestOutcome:
        """
        Run a gated request.

        Args:
            api_request: Coroutine function taking the auth state and returning a
                response with ``ok``, ``status``, ``status_text`` and a sync or async ``json()``
            on_success: Called with no arguments on success
            on_json_result: Called with the decoded body on success
            on_error: Called with a TransientServerError for any other failure

        Errors never propagate out of this method.
        """
        state = self._state_provider()
        if not state.whitelisted or not state.logged_in:
            logger.debug("Suppressed request, not authorized", extra={"extra_data": {
                "whitelisted": state.whitelisted, "logged_in": state.logged_in}})
            event_bus.emit(EventTypes.REQUEST_SUPPRESSED, {}, source="gateway")
            return RequestOutcome.SUPPRESSED

        try:
            try:
                response = await asyncio.wait_for(api_request(state), timeout=self.request_timeout)
            except asyncio.TimeoutError:
                raise TransientServerError(
                    f"Request timed out after {self.request_timeout:g}s") from None

            if not response.ok:
                if response.status == 403:
                    raise WhitelistExpired({"status": response.status})
                if response.status == 401:
                    raise AuthorizationExpired({"status": response.status})
                raise TransientServerError.from_response(response)

            if on_success:
                await _call(on_success)
            if on_json_result:
                await _call(on_json_result, await _call(response.json))

            event_bus.emit(EventTypes.REQUEST_COMPLETE, {"status": response.status}, source="gateway")
            return RequestOutcome.SUCCESS

        except WhitelistExpired as e:
            logger.warning(f"{e.message} (403)")
            self.controller.mark_whitelist_expired()
            return RequestOutcome.WHITELIST_EXPIRED

        except AuthorizationExpired as e:
            logger.warning(f"{e.message} (401)")
            self.controller.invalidate_login()
            return RequestOutcome.LOGIN_INVALIDATED

        except Exception as e:
            error = e if isinstance(e, TransientServerError) else TransientServerError(str(e) or type(e).__name__)
            logger.warning(f"Request failed: {error.message}")
            event_bus.emit(EventTypes.REQUEST_ERROR, {"message": error.message, "status": error.status},
                           source="gateway")
            if on_error:
                try:
                    await _call(on_error, error)
                except Exception:
                    logger.exception("Error in request error handler")
            return RequestOutcome.ERROR

    def submit(self,
               api_request: Callable[[Any], Awaitable[Any]],
               on_success: Optional[Callable[[], Any]] = None,
               on_json_result: Optional[Callable[[Any], Any]] = None,
               on_error: Optional[Callable[[Exception], Any]] = None) -> asyncio.Task:
        """Fire-and-forget dispatch on the running loop"""
        task = asyncio.ensure_future(self.dispatch(api_request, on_success, on_json_result, on_error))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self):
        """Wait for every submitted request to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending))
