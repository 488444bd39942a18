from __future__ import annotations

import logging
import os
import queue
import threading
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

import requests

from fraglog.envelope import wrap_line

log = logging.getLogger(__name__)


class LogShipper:
    """
    Ships log lines to a fraglog server in batches from a background thread.

    emit() never blocks: lines are dropped when the queue is full.
    """

    def __init__(
        self,
        url: str,
        source_id: str,
        key: Optional[str] = None,
        *,
        envelope: bool = False,
        batch_size: int = 200,
        flush_s: float = 1.0,
        max_q: int = 8000,
        timeout: float = 2.0,
    ):
        self.endpoint = f"{url.rstrip('/')}/logs/{source_id}"
        self.source_id = source_id
        self.key = key
        self.envelope = envelope
        self.correlation_id = str(uuid.uuid4())
        self.batch_size = batch_size
        self.flush_s = flush_s
        self.timeout = timeout
        self.dropped = 0
        self.q: "queue.Queue[str]" = queue.Queue(maxsize=max_q)
        threading.Thread(target=self._worker, daemon=True).start()

    def emit(self, line: str) -> None:
        line = line.rstrip("\r\n")
        if not line.strip():
            return
        if self.envelope:
            line = wrap_line(line, self.correlation_id)
        try:
            self.q.put_nowait(line)
        except queue.Full:
            # drop under pressure
            self.dropped += 1

    def _next_batch(self) -> List[str]:
        batch = [self.q.get()]
        deadline = time.time() + self.flush_s
        while len(batch) < self.batch_size:
            remaining = deadline - time.time()
            if remaining <= 0:
                break
            try:
                batch.append(self.q.get(timeout=remaining))
            except queue.Empty:
                break
        return batch

    def send(self, batch: List[str]) -> bool:
        params = {"key": self.key} if self.key else None
        try:
            resp = requests.post(
                self.endpoint,
                data="\n".join(batch).encode("utf-8"),
                params=params,
                headers={"Content-Type": "text/plain; charset=utf-8"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log.warning("shipping %d lines failed: %s", len(batch), e)
            return False
        if resp.status_code != 200:
            log.warning("server refused %d lines: %s %s", len(batch), resp.status_code, resp.text[:200])
            return False
        return True

    def _worker(self):
        while True:
            batch = self._next_batch()
            try:
                self.send(batch)
            finally:
                for _ in batch:
                    self.q.task_done()


@dataclass
class TailHandle:
    thread: threading.Thread
    path: str


def _follow(path: str, shipper: LogShipper, from_start: bool) -> None:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        if not from_start:
            f.seek(0, os.SEEK_END)
        while True:
            line = f.readline()
            if not line:
                time.sleep(0.2)
                continue
            shipper.emit(line)


def tail_file(path: str, shipper: LogShipper, from_start: bool = False) -> TailHandle:
    def worker():
        # keep retrying while the file is missing or rotated away
        while True:
            try:
                _follow(path, shipper, from_start)
            except OSError as e:
                log.warning("cannot read %s: %s", path, e)
                time.sleep(1.0)

    t = threading.Thread(target=worker, daemon=True)
    t.start()
    return TailHandle(thread=t, path=path)
