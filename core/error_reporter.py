"""
Background error sink for failures that should not interrupt the application
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from core.logging_config import get_logger
from events import event_bus, EventTypes

logger = get_logger(__name__)


@dataclass
class BackgroundError:
    message: str
    key: str
    category: str
    count: int = 1
    first_seen: float = field(default_factory=time.time)
    last_seen: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "key": self.key,
            "category": self.category,
            "count": self.count,
            "first_seen": self.first_seen,
            "last_seen": self.last_seen,
        }


class ErrorReporter:
    """Keeps the latest background error per dedupe key"""

    def __init__(self, max_errors: int = 50):
        self.max_errors = max_errors
        self._errors: "OrderedDict[str, BackgroundError]" = OrderedDict()
        self._lock = threading.Lock()

    def add_background(self, message: str, key: str, category: str) -> BackgroundError:
        """Record a background error, replacing any earlier one with the same key"""
        with self._lock:
            existing = self._errors.pop(key, None)
            if existing:
                existing.message = message
                existing.category = category
                existing.count += 1
                existing.last_seen = time.time()
                error = existing
            else:
                error = BackgroundError(message=message, key=key, category=category)
            self._errors[key] = error

            while len(self._errors) > self.max_errors:
                self._errors.popitem(last=False)

        logger.warning(message, extra={"extra_data": {"key": key, "category": category,
                                                      "count": error.count}})
        event_bus.emit(EventTypes.ERROR_BACKGROUND_ADDED, error.to_dict(), source="error_reporter")
        return error

    def clear_background(self, key: str) -> bool:
        with self._lock:
            removed = self._errors.pop(key, None) is not None
        if removed:
            event_bus.emit(EventTypes.ERROR_BACKGROUND_CLEARED, {"key": key}, source="error_reporter")
        return removed

    def get(self, key: str) -> Optional[BackgroundError]:
        with self._lock:
            return self._errors.get(key)

    def all(self, category: Optional[str] = None) -> List[BackgroundError]:
        with self._lock:
            errors = list(self._errors.values())
        if category:
            errors = [e for e in errors if e.category == category]
        return errors
