from __future__ import annotations

import json
import os
import threading
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Protocol

from fraglog import config
from fraglog.errors import StorageError
from fraglog.models import FailedParse, ParsedEvent, RawLine


class Store(Protocol):
    def save_raw_line(self, line: RawLine) -> None: ...

    def save_parsed_event(self, event: ParsedEvent) -> None: ...

    def save_failed_parse(self, failed: FailedParse) -> None: ...

    def mark_source_seen(self, source_id: str, client_address: Optional[str]) -> None: ...


class MemoryStore:
    """Bounded in-memory store. Oldest records fall off once max_records is reached."""

    def __init__(self, max_records: int = config.MAX_RECORDS):
        self.raw_lines: Deque[RawLine] = deque(maxlen=max_records)
        self.parsed_events: Deque[ParsedEvent] = deque(maxlen=max_records)
        self.failed_parses: Deque[FailedParse] = deque(maxlen=max_records)
        self.sources: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save_raw_line(self, line: RawLine) -> None:
        with self._lock:
            self.raw_lines.append(line)

    def save_parsed_event(self, event: ParsedEvent) -> None:
        with self._lock:
            self.parsed_events.append(event)

    def save_failed_parse(self, failed: FailedParse) -> None:
        with self._lock:
            self.failed_parses.append(failed)

    def mark_source_seen(self, source_id: str, client_address: Optional[str]) -> None:
        with self._lock:
            self.sources[source_id] = {"client_address": client_address, "last_seen": time.time()}

    def events_for(self, source_id: str) -> List[ParsedEvent]:
        with self._lock:
            return [e for e in self.parsed_events if e.source_id == source_id]


class JsonlStore:
    """
    Appends one JSON document per line:
      <dir>/raw_lines.jsonl, parsed_events.jsonl, failed_parses.jsonl, sources.jsonl
    """

    def __init__(self, directory: str):
        self.directory = directory
        self._lock = threading.Lock()
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            raise StorageError(f"cannot create store directory {directory}: {e}") from e

    def _append(self, name: str, record: Dict[str, Any]) -> None:
        path = os.path.join(self.directory, name)
        try:
            with self._lock, open(path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record) + "\n")
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"write to {name} failed: {e}") from e

    def save_raw_line(self, line: RawLine) -> None:
        self._append("raw_lines.jsonl", line.model_dump(mode="json"))

    def save_parsed_event(self, event: ParsedEvent) -> None:
        self._append("parsed_events.jsonl", event.model_dump(mode="json"))

    def save_failed_parse(self, failed: FailedParse) -> None:
        self._append("failed_parses.jsonl", failed.model_dump(mode="json"))

    def mark_source_seen(self, source_id: str, client_address: Optional[str]) -> None:
        self._append("sources.jsonl", {
            "source_id": source_id,
            "client_address": client_address,
            "last_seen": time.time(),
        })


def build_store(store_dir: str = config.STORE_DIR) -> Store:
    if store_dir:
        return JsonlStore(store_dir)
    return MemoryStore()
