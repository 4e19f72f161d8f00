"""
Logging setup for the client.

Development runs get a colored console; production runs (ENVIRONMENT=production)
emit one JSON object per line. Both go through a filter that masks auth tokens,
since whitelist tokens travel in query strings and session tokens in headers.
"""

import json
import logging
import logging.handlers
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from config import LOGGING_CONFIG

# (file name, minimum level); None means the configured level
LOG_FILES: Tuple[Tuple[str, Optional[int]], ...] = (
    ("orko_client.log", None),
    ("errors.log", logging.ERROR),
)

QUIET_LOGGERS = {
    "websocket": logging.WARNING,
    "aiohttp": logging.WARNING,
    "asyncio": logging.WARNING,
}

_TOKEN_PATTERNS = (
    re.compile(r"(Bearer\s+)[^\s'\",]+", re.IGNORECASE),
    re.compile(r"([?&]token=)[^&\s'\"]+"),
    re.compile(r"(['\"]token['\"]:\s*['\"])[^'\"]+"),
)


def redact(text: str) -> str:
    """Mask anything that looks like a bearer or whitelist token"""
    for pattern in _TOKEN_PATTERNS:
        text = pattern.sub(r"\1***", text)
    return text


class RedactTokensFilter(logging.Filter):
    """Rewrites record messages and context so tokens never reach a handler"""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg, record.args = cleaned, None

        extra = getattr(record, "extra_data", None)
        if extra:
            record.extra_data = {
                key: ("***" if key == "token" and value else
                      redact(value) if isinstance(value, str) else value)
                for key, value in extra.items()
            }
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "line": record.lineno,
        }
        # Context passed via extra={"extra_data": {...}}
        entry.update(getattr(record, "extra_data", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter with colors for development"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[92m',     # Green
        'WARNING': '\033[93m',  # Yellow
        'ERROR': '\033[91m',    # Red
        'CRITICAL': '\033[95m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, '')
        stamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        # [TIME] [LEVEL] [THREAD] logger: message {context}
        line = (f"[{stamp}] [{color}{record.levelname:<7}{self.RESET}] "
                f"[{record.threadName}] {record.name}: {record.getMessage()}")

        extra = getattr(record, "extra_data", None)
        if extra:
            line += " " + " ".join(f"{k}={v}" for k, v in extra.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class LoggingConfig:
    """Builds the root logger's handlers from LOGGING_CONFIG-style settings"""

    def __init__(self,
                 log_level: str = "INFO",
                 log_dir: Optional[str] = None,
                 enable_file_logging: bool = True,
                 enable_console_logging: bool = True,
                 structured_logging: bool = False,
                 max_log_size_mb: int = 10,
                 backup_count: int = 5):
        """
        Args:
            log_level: Level name for the root logger
            log_dir: Directory for the rotating log files
            enable_file_logging: Write LOG_FILES under log_dir
            enable_console_logging: Write to stdout
            structured_logging: JSON output instead of the colored console format
            max_log_size_mb: Rotation size per file
            backup_count: Rotated files to keep
        """
        self.log_level = getattr(logging, log_level.upper())
        self.log_dir = Path(log_dir or "./logs")
        self.enable_file_logging = enable_file_logging
        self.enable_console_logging = enable_console_logging
        self.structured_logging = structured_logging
        self.max_bytes = max_log_size_mb * 1024 * 1024
        self.backup_count = backup_count

    def _file_formatter(self) -> logging.Formatter:
        if self.structured_logging:
            return StructuredFormatter()
        return logging.Formatter(
            '[%(asctime)s] [%(levelname)s] [%(threadName)s] [%(name)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    def build_handlers(self):
        handlers = []
        if self.enable_console_logging:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(StructuredFormatter() if self.structured_logging
                                 else ColoredConsoleFormatter())
            handlers.append(console)

        if self.enable_file_logging:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            for filename, level in LOG_FILES:
                handler = logging.handlers.RotatingFileHandler(
                    self.log_dir / filename,
                    maxBytes=self.max_bytes,
                    backupCount=self.backup_count,
                    encoding='utf-8'
                )
                if level is not None:
                    handler.setLevel(level)
                handler.setFormatter(self._file_formatter())
                handlers.append(handler)

        redactor = RedactTokensFilter()
        for handler in handlers:
            handler.addFilter(redactor)
        return handlers

    def configure(self) -> None:
        """Replace the root logger's handlers"""
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()

        root.setLevel(self.log_level)
        for handler in self.build_handlers():
            root.addHandler(handler)

        for name, level in QUIET_LOGGERS.items():
            logging.getLogger(name).setLevel(level)

        logging.getLogger(__name__).info("Logging configured", extra={"extra_data": {
            "level": logging.getLevelName(self.log_level),
            "structured": self.structured_logging,
            "log_dir": str(self.log_dir) if self.enable_file_logging else None,
        }})


def setup_logging(config_dict: Optional[Dict[str, Any]] = None) -> LoggingConfig:
    """
    Configure logging from a LOGGING_CONFIG-style dict.

    Missing keys fall back to the values in config.LOGGING_CONFIG.
    """
    config = LoggingConfig(**{**LOGGING_CONFIG, **(config_dict or {})})
    config.configure()
    return config


def get_logger(name: str) -> logging.Logger:
    # Handlers are installed by setup_logging() at the entry point only
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, message: str, **context) -> None:
    """Log a message with context attached as extra_data"""
    logger.log(level, message, extra={"extra_data": context})


def log_api_call(logger: logging.Logger, method: str, url: str,
                 status_code: int, duration_ms: float, **context) -> None:
    """Log HTTP call metrics"""
    log_with_context(logger, logging.INFO, f"API call: {method} {url}",
                     method=method, url=url, status_code=status_code,
                     duration_ms=round(duration_ms, 1), **context)


def log_error_with_context(logger: logging.Logger, error: Exception,
                           operation: str, **context) -> None:
    """Log an error with its type and operation"""
    log_with_context(logger, logging.ERROR, f"Error in {operation}: {error}",
                     operation=operation, error_type=type(error).__name__,
                     error_message=str(error), **context)
