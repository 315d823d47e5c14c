"""
Activity Log
Audit sinks and the fire-and-forget trail used by every engine component
"""

import logging
import threading
from collections import deque
from typing import List, Optional, Iterable, Union

from parkcore.core.constants import ActionCode
from parkcore.core.models import ActivityEntry, utc_now

logger = logging.getLogger(__name__)


class InMemoryActivityLog:
    """Audit sink keeping entries in memory and mirroring them to the events logger"""

    def __init__(self, max_entries: int = 10000, event_logger: Optional[logging.Logger] = None, clock=utc_now):
        self.entries = deque(maxlen=max_entries)
        self.event_logger = event_logger or logging.getLogger('events')
        self.clock = clock
        self.lock = threading.Lock()

    def log(self, actor_id: str, action_code: str, details: str = ""):
        entry = ActivityEntry(actor_id=actor_id, action=action_code, details=details, created_at=self.clock())
        with self.lock:
            self.entries.append(entry)
        self.event_logger.info(entry.format_line())

    def get_user_logs(self, user_id: str) -> List[ActivityEntry]:
        """User's entries, newest first"""
        with self.lock:
            entries = [e for e in self.entries if e.actor_id == user_id]
        # Ties keep insertion order, latest first
        return sorted(reversed(entries), key=lambda e: e.created_at, reverse=True)

    def get_recent(self, limit: int = 50) -> List[ActivityEntry]:
        with self.lock:
            entries = list(self.entries)
        return list(reversed(entries))[:limit]


class AuditTrail:
    """
    Fans audit entries out to one or more sinks

    Sink failures are logged and never propagate into the calling operation.
    """

    def __init__(self, sinks: Iterable = ()):
        self.sinks = list(sinks)
        self.failures = 0

    def add_sink(self, sink):
        self.sinks.append(sink)

    def record(self, actor_id: str, action: Union[ActionCode, str], details: str = ""):
        action_code = action.value if isinstance(action, ActionCode) else str(action)
        for sink in self.sinks:
            try:
                sink.log(actor_id, action_code, details)
            except Exception as e:
                self.failures += 1
                logger.warning(f"⚠️ Audit sink {type(sink).__name__} failed for {action_code}: {e}")
