"""
Auth state store: the single authentication/whitelist record and its reducer
"""

import threading
import time
from dataclasses import dataclass, replace, asdict
from enum import Enum
from typing import Dict, Any, Optional, Callable, List
from datetime import datetime

from core.logging_config import get_logger
from events import event_bus, EventTypes

logger = get_logger(__name__)


class AuthAction(Enum):
    """Mutations the store accepts"""
    SET_WHITELIST_STATUS = "set_whitelist_status"
    SET_WHITELIST_ERROR = "set_whitelist_error"
    SET_WHITELIST_EXPIRED = "set_whitelist_expired"
    SET_REMOTE_CONFIG = "set_remote_config"
    SET_TOKEN = "set_token"
    LOGOUT = "logout"
    INVALIDATE_LOGIN = "invalidate_login"


@dataclass(frozen=True)
class AuthState:
    """Immutable snapshot of the auth state"""
    token: Optional[str] = None
    user_name: Optional[str] = None
    logged_in: bool = False
    whitelisted: bool = False
    whitelist_expired: bool = False
    whitelist_error: Optional[str] = None
    remote_config: Optional[Dict[str, Any]] = None

    @property
    def authorized(self) -> bool:
        """True when gated requests may be dispatched"""
        return self.whitelisted and self.logged_in

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["token"] = "***" if self.token else None
        return data


class AuthTransition:
    """Represents an applied action"""
    def __init__(self, action: AuthAction, before: AuthState, after: AuthState):
        self.action = action
        self.before = before
        self.after = after
        self.timestamp = time.time()
        self.datetime = datetime.now()

    def __str__(self):
        return f"{self.action.value} (whitelisted={self.after.whitelisted}, logged_in={self.after.logged_in})"


def reduce(state: AuthState, action: AuthAction, **fields) -> AuthState:
    """Return the state that results from applying an action"""
    if action == AuthAction.SET_WHITELIST_STATUS:
        return replace(state, whitelisted=bool(fields["status"]),
                       whitelist_error=None, whitelist_expired=False)
    if action == AuthAction.SET_WHITELIST_ERROR:
        return replace(state, whitelist_error=fields["error"])
    if action == AuthAction.SET_WHITELIST_EXPIRED:
        return replace(state, whitelist_expired=True)
    if action == AuthAction.SET_REMOTE_CONFIG:
        return replace(state, remote_config=fields["config"])
    if action == AuthAction.SET_TOKEN:
        return replace(state, token=fields["token"], user_name=fields.get("user_name"),
                       logged_in=True)
    if action == AuthAction.LOGOUT:
        return replace(state, token=None, user_name=None, logged_in=False)
    if action == AuthAction.INVALIDATE_LOGIN:
        return replace(state, token=None, logged_in=False)
    raise ValueError(f"Unknown auth action: {action}")


class AuthStore:
    """
    Holds the process-wide auth state.

    Reads go through ``state`` and always return an immutable snapshot, so no
    reader can change the record. ``apply`` is the single mutation point and is
    only called by the auth controller.
    """

    def __init__(self, initial: Optional[AuthState] = None):
        self._state = initial or AuthState()
        self._lock = threading.RLock()

        self.transitions: List[AuthTransition] = []
        self.max_history = 100

        self.listeners: List[Callable[[AuthState, AuthState], None]] = []

    @property
    def state(self) -> AuthState:
        with self._lock:
            return self._state

    def get_state(self) -> AuthState:
        return self.state

    def apply(self, action: AuthAction, **fields) -> AuthState:
        """
        Apply an action and return the new state

        Args:
            action: The mutation to perform
            **fields: Values the action carries (status, error, token, ...)
        """
        with self._lock:
            before = self._state
            after = reduce(before, action, **fields)
            self._state = after

            transition = AuthTransition(action, before, after)
            self.transitions.append(transition)
            if len(self.transitions) > self.max_history:
                self.transitions = self.transitions[-self.max_history:]

            logger.debug(f"Auth transition: {transition}")

            event_bus.emit(EventTypes.AUTH_TRANSITION, {
                "action": action.value,
                "state": after.to_dict()
            }, source="auth_store")

        # Notify listeners outside the lock
        self._notify_listeners(before, after)
        return after

    def add_listener(self, listener: Callable[[AuthState, AuthState], None]):
        """Add state change listener"""
        self.listeners.append(listener)

    def remove_listener(self, listener: Callable[[AuthState, AuthState], None]):
        """Remove state change listener"""
        if listener in self.listeners:
            self.listeners.remove(listener)

    def _notify_listeners(self, before: AuthState, after: AuthState):
        for listener in self.listeners:
            try:
                listener(before, after)
            except Exception:
                logger.exception("Error in auth state listener")

    def get_transition_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Get recent transitions"""
        with self._lock:
            recent = self.transitions[-limit:] if self.transitions else []
            return [
                {
                    "action": t.action.value,
                    "whitelisted": t.after.whitelisted,
                    "logged_in": t.after.logged_in,
                    "timestamp": t.timestamp,
                    "datetime": t.datetime.isoformat()
                }
                for t in recent
            ]
