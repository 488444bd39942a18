from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from fraglog.assembler import BlockAssembler
from fraglog.classifier import resolve_line
from fraglog.envelope import extract_canonical
from fraglog.errors import StorageError
from fraglog.log_context import reset_context, set_context
from fraglog.models import FailedParse, ParsedEvent, RawLine, Record
from fraglog.sessions import SessionDetector
from fraglog.store import Store
from fraglog.workers import ShardedWorkerPool

log = logging.getLogger(__name__)


def split_lines(body: bytes) -> List[str]:
    text = body.decode("utf-8", errors="replace")
    return [ln.strip() for ln in text.splitlines() if ln.strip()]


class IngestionCoordinator:
    """
    Accepts batches of raw lines and hands them to the worker that owns their source.

    ingest() only persists RawLines and enqueues them; classification, block assembly
    and event storage happen on the worker thread via process().
    """

    def __init__(
        self,
        store: Store,
        *,
        session_detector: Optional[SessionDetector] = None,
        pool: Optional[ShardedWorkerPool] = None,
        **pool_kwargs,
    ):
        self.store = store
        self.session_detector = session_detector
        self.pool = pool or ShardedWorkerPool(self.process, **pool_kwargs)
        self._source_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def start(self) -> None:
        self.pool.start()

    def stop(self) -> None:
        self.pool.stop()

    def _lock_for(self, source_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._source_locks.get(source_id)
            if lock is None:
                lock = self._source_locks[source_id] = threading.Lock()
            return lock

    def ingest(self, source_id: str, client_address: Optional[str], body: bytes) -> int:
        accepted = 0
        # one batch per source at a time, so concurrent requests never interleave on the shard
        with self._lock_for(source_id):
            for text in split_lines(body):
                raw = RawLine(source_id=source_id, text=text)
                try:
                    self.store.save_raw_line(raw)
                except StorageError as e:
                    log.error("raw line from %s not stored: %s", source_id, e)
                    continue
                self.pool.submit(source_id, raw)
                accepted += 1

        try:
            self.store.mark_source_seen(source_id, client_address)
        except StorageError as e:
            log.warning("could not update liveness for %s: %s", source_id, e)

        return accepted

    # ----------------------------
    # Worker side
    # ----------------------------
    def process(self, raw: RawLine, assembler: BlockAssembler) -> None:
        tokens = set_context(source_id=raw.source_id, raw_line_id=raw.id)
        try:
            text = extract_canonical(raw.text)
            if assembler.wants(raw.source_id, text):
                records = assembler.feed(raw, text)
            else:
                records = [resolve_line(raw.id, raw.source_id, text)]

            for record in records:
                self._persist(record)
        finally:
            reset_context(tokens)

    def _persist(self, record: Record) -> None:
        try:
            if isinstance(record, FailedParse):
                self.store.save_failed_parse(record)
            else:
                self.store.save_parsed_event(self._with_session(record))
        except StorageError as e:
            log.error("record for raw line %s not stored: %s", record.raw_line_id, e)

    def _with_session(self, event: ParsedEvent) -> ParsedEvent:
        if self.session_detector is None:
            return event
        try:
            session_id = self.session_detector.detect_session(event)
        except Exception:
            log.warning("session detection failed for %s", event.id, exc_info=True)
            return event
        if not session_id:
            return event
        return event.model_copy(update={"session_id": session_id})
