import logging
import threading
import time
from collections import deque
from typing import Any, List

from fhir_broker.models.events.dto import LogEvent

logger = logging.getLogger(__name__)


class EventLog:
    """
    Bounded, in-memory record of what a service received, matched or rejected. Every
    entry is also written to the python logger so the trail survives without a viewer.
    """

    def __init__(self, name: str, max_entries: int = 200) -> None:
        self.name = name
        self.__entries: deque[LogEvent] = deque(maxlen=max_entries)
        self.__total = 0
        self.__lock = threading.Lock()

    def push(self, type: str, detail: str, **data: Any) -> LogEvent:
        event = LogEvent(
            type=type,
            detail=detail,
            timestamp=int(time.time() * 1000),
            data=data,
        )
        with self.__lock:
            self.__entries.append(event)
            self.__total += 1

        logger.info("[%s] %s: %s", self.name, type, detail)
        return event

    def recent(self, limit: int = 50) -> List[LogEvent]:
        with self.__lock:
            entries = list(self.__entries)
        return entries[-limit:] if limit > 0 else []

    def of_type(self, type: str) -> List[LogEvent]:
        with self.__lock:
            return [e for e in self.__entries if e.type == type]

    @property
    def count(self) -> int:
        return self.__total
