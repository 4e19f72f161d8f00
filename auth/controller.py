"""
Auth lifecycle controller: the only code that mutates the auth state
"""

from typing import Optional

from config import ERROR_CONFIG
from core.auth_state import AuthAction, AuthStore
from core.error_reporter import ErrorReporter
from core.logging_config import get_logger
from events import event_bus, EventTypes
from .gateway import RequestGateway, RequestOutcome
from .service import AuthService

logger = get_logger(__name__)


class AuthController:
    """
    Login and whitelist lifecycle.

    Each action applies one state transition and then tells the socket client
    to connect or disconnect. Whitelisting also triggers a fetch of the remote
    auth configuration through the gateway.
    """

    def __init__(self,
                 store: AuthStore,
                 service: AuthService,
                 socket,
                 error_reporter: Optional[ErrorReporter] = None,
                 request_timeout: Optional[float] = None):
        """
        Args:
            store: Auth state store
            service: Backend auth endpoints
            socket: Socket client exposing connected, connect() and disconnect()
            error_reporter: Sink for background errors
            request_timeout: Timeout for gated requests
        """
        self.store = store
        self.service = service
        self.socket = socket
        self.error_reporter = error_reporter or ErrorReporter()
        self.gateway = RequestGateway(store.get_state, self, request_timeout=request_timeout)

    @property
    def state(self):
        return self.store.state

    # ------------------------------------------------------------------
    # Whitelist
    # ------------------------------------------------------------------
    async def check_whitelist_status(self) -> bool:
        """Ask the server whether this client is whitelisted and connect accordingly"""
        try:
            result = await self.service.check_whitelist()
        except Exception as e:
            self._whitelist_error(e)
            return False

        self.store.apply(AuthAction.SET_WHITELIST_STATUS, status=bool(result))
        if result:
            logger.info("Verified whitelist")
            self._submit_config_fetch()
            if not self.socket.connected:
                logger.info("Connecting")
                self.socket.connect()
        else:
            logger.info("Whitelist rejected, disconnecting")
            self.socket.disconnect()
        return bool(result)

    async def grant_whitelist(self, token: str) -> bool:
        """Whitelist this client using a one-time token"""
        try:
            await self.service.whitelist(token)
        except Exception as e:
            self._whitelist_error(e)
            return False

        self.store.apply(AuthAction.SET_WHITELIST_STATUS, status=True)
        self._submit_config_fetch()
        if not self.socket.connected:
            logger.info("Connecting")
            self.socket.connect()
        return True

    async def revoke_whitelist(self) -> bool:
        try:
            await self.service.clear_whitelist()
        except Exception as e:
            self._whitelist_error(e)
            return False

        self.store.apply(AuthAction.SET_WHITELIST_STATUS, status=False)
        self.socket.disconnect()
        return True

    def mark_whitelist_expired(self):
        """The server reported the whitelist grant lapsed; the whitelisted flag stays"""
        self.store.apply(AuthAction.SET_WHITELIST_EXPIRED)
        event_bus.emit(EventTypes.AUTH_WHITELIST_EXPIRED, {}, source="auth_controller")

    def _whitelist_error(self, error: Exception):
        message = str(error) or type(error).__name__
        logger.warning(f"Whitelist call failed: {message}")
        self.store.apply(AuthAction.SET_WHITELIST_ERROR, error=message)
        event_bus.emit(EventTypes.AUTH_WHITELIST_ERROR, {"error": message}, source="auth_controller")

    # ------------------------------------------------------------------
    # Remote config
    # ------------------------------------------------------------------
    async def fetch_remote_config(self) -> RequestOutcome:
        """Fetch the auth configuration; suppressed unless whitelisted and logged in"""
        return await self.gateway.dispatch(**self._config_request())

    def _submit_config_fetch(self):
        # Not awaited, so a slow config fetch never holds up the connect
        self.gateway.submit(**self._config_request())

    def _config_request(self):
        key = ERROR_CONFIG["auth_config_key"]

        def apply_config(config):
            self.store.apply(AuthAction.SET_REMOTE_CONFIG, config=config)
            self.error_reporter.clear_background(key)

        def report(error):
            self.error_reporter.add_background(
                "Could not fetch authentication data: " + error.message,
                key,
                ERROR_CONFIG["auth_category"]
            )

        return {
            "api_request": self.service.config,
            "on_json_result": apply_config,
            "on_error": report,
        }

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------
    def login(self, token: str, user_name: Optional[str] = None):
        self.store.apply(AuthAction.SET_TOKEN, token=token, user_name=user_name)
        logger.info("Logged in", extra={"extra_data": {"user": user_name}})
        self.socket.connect()

    def logout(self):
        self.store.apply(AuthAction.LOGOUT)
        logger.info("Logged out")
        self.socket.disconnect()

    def invalidate_login(self):
        """The server rejected the session token"""
        self.store.apply(AuthAction.INVALIDATE_LOGIN)
        event_bus.emit(EventTypes.AUTH_LOGIN_INVALIDATED, {}, source="auth_controller")
        self.socket.disconnect()
