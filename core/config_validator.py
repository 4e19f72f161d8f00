"""
Configuration validation on startup.

Catches misconfigured endpoints, intervals and logging settings before the
client opens any connection.
"""

from typing import Dict, List, Any, Optional, Tuple
from urllib.parse import urlparse

from core.logging_config import get_logger

logger = get_logger(__name__)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


class ConfigValidator:
    """Validates the API, socket and logging settings"""

    def __init__(self,
                 api_config: Dict[str, Any],
                 socket_config: Dict[str, Any],
                 logging_config: Optional[Dict[str, Any]] = None):
        self.api_config = api_config
        self.socket_config = socket_config
        self.logging_config = logging_config or {}
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        """
        Validate all configuration settings.

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors.clear()
        self.warnings.clear()

        self._validate_api_config()
        self._validate_socket_config()
        self._validate_logging_config()

        return len(self.errors) == 0, self.errors.copy(), self.warnings.copy()

    def _validate_api_config(self):
        base_url = self.api_config.get("base_url", "")
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            self.errors.append(f"base_url must be an absolute http(s) URL, got {base_url!r}")
        elif parsed.scheme == "http" and parsed.hostname not in ("localhost", "127.0.0.1"):
            self.warnings.append("base_url uses plain http; tokens will be sent unencrypted")

        timeout = self.api_config.get("request_timeout")
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            self.errors.append(f"request_timeout must be a positive number, got {timeout!r}")
        elif timeout > 300:
            self.warnings.append(f"request_timeout of {timeout}s is very long")

        for name in ("whitelist", "config"):
            if name not in self.api_config.get("endpoints", {}):
                self.errors.append(f"Missing API endpoint: {name}")

    def _validate_socket_config(self):
        interval = self.socket_config.get("keepalive_interval")
        if not isinstance(interval, (int, float)) or interval <= 0:
            self.errors.append(f"keepalive_interval must be a positive number, got {interval!r}")

        root = self.socket_config.get("root")
        if root:
            scheme = urlparse(root).scheme
            if scheme not in ("ws", "wss"):
                self.errors.append(f"Socket root must use ws:// or wss://, got {root!r}")

        reconnect = self.socket_config.get("reconnect", {})
        min_delay = reconnect.get("min_delay", 0)
        max_delay = reconnect.get("max_delay", 0)
        if min_delay <= 0 or max_delay < min_delay:
            self.errors.append("Reconnect delays must satisfy 0 < min_delay <= max_delay")
        if reconnect.get("growth", 0) < 1:
            self.errors.append("Reconnect growth must be at least 1")

    def _validate_logging_config(self):
        level = str(self.logging_config.get("log_level", "INFO")).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            self.errors.append(f"Invalid log level: {level}")

        if self.logging_config.get("max_log_size_mb", 10) <= 0:
            self.errors.append("max_log_size_mb must be positive")


def validate_startup_config(api_config: Dict[str, Any],
                            socket_config: Dict[str, Any],
                            logging_config: Optional[Dict[str, Any]] = None) -> List[str]:
    """
    Validate configuration and raise on errors.

    Returns:
        The list of warnings

    Raises:
        ConfigValidationError: if any setting is invalid
    """
    validator = ConfigValidator(api_config, socket_config, logging_config)
    is_valid, errors, warnings = validator.validate_all()

    for warning in warnings:
        logger.warning(f"Config warning: {warning}")

    if not is_valid:
        raise ConfigValidationError("Configuration validation failed:\n  - " + "\n  - ".join(errors))

    return warnings
