"""
Centralized configuration for the backend connection and auth settings
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# HTTP API settings
API_CONFIG = {
    "base_url": os.getenv("ORKO_BASE_URL", "http://localhost:8080"),
    "api_prefix": "/api",
    "request_timeout": float(os.getenv("ORKO_REQUEST_TIMEOUT", "30.0")),  # seconds
    "endpoints": {
        "whitelist": "/auth",
        "config": "/auth/config",
    }
}

# Duplex socket settings
SOCKET_CONFIG = {
    "path": "ws",
    "root": os.getenv("ORKO_SOCKET_ROOT") or None,  # Overrides same-origin endpoint
    "keepalive_interval": 3.0,  # seconds between READY frames
    "keepalive_message": {"command": "READY"},
    "reconnect": {
        "min_delay": 1.0,
        "max_delay": 10.0,
        "growth": 1.3
    },
    "subprotocol": "auth"
}

# Background error categories
ERROR_CONFIG = {
    "auth_config_key": "auth-config",
    "auth_category": "auth",
    "max_background_errors": 50
}

# Logging configuration
LOGGING_CONFIG = {
    "log_level": os.getenv("LOG_LEVEL", "INFO"),
    "log_dir": os.getenv("LOG_DIR", "./logs"),
    "enable_file_logging": os.getenv("ENABLE_FILE_LOGGING", "true").lower() == "true",
    "enable_console_logging": os.getenv("ENABLE_CONSOLE_LOGGING", "true").lower() == "true",
    "structured_logging": os.getenv("ENVIRONMENT", "development").lower() == "production",
    "max_log_size_mb": int(os.getenv("MAX_LOG_SIZE_MB", "10")),
    "backup_count": int(os.getenv("LOG_BACKUP_COUNT", "5")),
}


def api_url(endpoint: str, base_url: str = None) -> str:
    """Build the absolute URL for a named API endpoint"""
    base = (base_url or API_CONFIG["base_url"]).rstrip("/")
    path = API_CONFIG["endpoints"].get(endpoint, endpoint)
    return f"{base}{API_CONFIG['api_prefix']}{path}"


def socket_url(root: str = None, base_url: str = None) -> str:
    """
    Compute the socket endpoint.

    Uses ``<root>/ws`` when a root is given, otherwise mirrors the HTTP
    origin's scheme (http -> ws, https -> wss) on the same host.
    """
    path = SOCKET_CONFIG["path"]
    if root:
        return f"{root.rstrip('/')}/{path}"

    base = base_url or API_CONFIG["base_url"]
    if base.startswith("https://"):
        scheme, host = "wss:", base[len("https://"):]
    elif base.startswith("http://"):
        scheme, host = "ws:", base[len("http://"):]
    else:
        scheme, host = "ws:", base
    host = host.split("/", 1)[0]
    return f"{scheme}//{host}/{path}"
