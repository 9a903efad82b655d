import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

EMPLOYEE_UPDATE = "employeeUpdate"
ATTENDANCE_UPDATE = "attendanceUpdate"
DATA_SYNC = "dataSync"


class EventEmitter:
    """In-context events for views; a failing listener never affects the others."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable[[Any], None]]] = defaultdict(list)

    def on(self, event: str, callback: Callable[[Any], None]) -> None:
        self._listeners[event].append(callback)

    def off(self, event: str, callback: Callable[[Any], None]) -> None:
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    def emit(self, event: str, data: Any = None) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(data)
            except Exception:
                logger.exception("Listener for '%s' failed", event)
