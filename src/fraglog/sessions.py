from __future__ import annotations

import threading
from typing import Dict, Optional, Protocol

from fraglog.models import ParsedEvent, new_id

SESSION_START_KINDS = frozenset({"map-loading", "map-started", "match-start"})


class SessionDetector(Protocol):
    def detect_session(self, event: ParsedEvent) -> Optional[str]: ...


class MapSessionDetector:
    """
    Correlates events to a per-source session that opens on every map load / match start.

    Events seen before the first session start get no session id.
    """

    def __init__(self):
        self._current: Dict[str, str] = {}
        self._lock = threading.Lock()

    def detect_session(self, event: ParsedEvent) -> Optional[str]:
        with self._lock:
            if event.event_kind in SESSION_START_KINDS:
                # map-loading and map-started arrive back to back; keep one session for both
                if event.event_kind == "map-loading" or event.source_id not in self._current:
                    self._current[event.source_id] = new_id()
            return self._current.get(event.source_id)
