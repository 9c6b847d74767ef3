"""Status surface — user-facing notifications about the search lifecycle."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from loguru import logger

from claimwatch.matching.criteria import Criteria


class NotificationKind(str, Enum):
    STARTED = "started"
    FOUND = "found"
    INTERRUPTED = "interrupted"
    SERVICE = "service"


@dataclass(frozen=True)
class StatusNotification:
    kind: NotificationKind
    title: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


Subscriber = Callable[[StatusNotification], None]


class StatusNotifier:
    """Keep a bounded history of notifications and fan them out to subscribers.

    The ``service_line`` mirrors the persistent "watcher is running" banner:
    idle, searching with a criteria summary, or stopped.
    """

    SERVICE_TITLE = "claimwatch is active"

    def __init__(self, history: int = 50, currency_marker: str = "$"):
        self.currency_marker = currency_marker
        self._history: Deque[StatusNotification] = deque(maxlen=history)
        self._subscribers: List[Subscriber] = []
        self.service_line = "Idle"

    # ── Subscribers ──────────────────────────────────────────────────────

    def subscribe(self, callback: Subscriber):
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber):
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    # ── Publishing ───────────────────────────────────────────────────────

    def notify(self, kind: NotificationKind, title: str, message: str) -> StatusNotification:
        note = StatusNotification(kind=kind, title=title, message=message)
        self._history.append(note)
        logger.info(f"[Status] {title}: {message}")
        for callback in list(self._subscribers):
            try:
                callback(note)
            except Exception as exc:
                logger.warning(f"[Status] Subscriber failed: {exc}")
        return note

    def search_started(self, criteria: Criteria) -> StatusNotification:
        summary = criteria.summary(self.currency_marker)
        self.set_service_line(f"Searching with {summary}")
        return self.notify(NotificationKind.STARTED, "Search started", f"Searching: {summary}")

    def search_found(self, criteria: Optional[Criteria]) -> StatusNotification:
        summary = criteria.summary(self.currency_marker) if criteria else "criteria met"
        self.set_service_line("Idle")
        return self.notify(NotificationKind.FOUND, "Match found!", f"Found: {summary}")

    def search_interrupted(self, reason: str) -> StatusNotification:
        self.set_service_line("Search stopped")
        return self.notify(NotificationKind.INTERRUPTED, "Search stopped", reason)

    def set_service_line(self, message: str):
        self.service_line = message
        logger.debug(f"[Status] {self.SERVICE_TITLE}: {message}")

    # ── History ──────────────────────────────────────────────────────────

    def recent(self, limit: Optional[int] = None) -> List[StatusNotification]:
        items = list(self._history)
        if limit is not None:
            items = items[-limit:]
        return items
