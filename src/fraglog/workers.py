from __future__ import annotations

import logging
import queue
import threading
import zlib
from typing import Any, Callable, List, Optional

from fraglog import config
from fraglog.assembler import BlockAssembler

log = logging.getLogger(__name__)

Handler = Callable[[Any, BlockAssembler], None]

_SWEEP = object()
_STOP = object()


def shard_for(source_id: str, shards: int) -> int:
    return zlib.crc32(source_id.encode("utf-8")) % shards


class _Shard:
    def __init__(self, index: int, handler: Handler, assembler: BlockAssembler, max_q: int):
        self.index = index
        self.handler = handler
        self.assembler = assembler
        self.q: "queue.Queue[Any]" = queue.Queue(maxsize=max_q)
        self.thread = self._new_thread()

    def _new_thread(self) -> threading.Thread:
        return threading.Thread(target=self._worker, name=f"fraglog-shard-{self.index}", daemon=True)

    def _worker(self):
        while True:
            item = self.q.get()
            try:
                if item is _STOP:
                    return
                if item is _SWEEP:
                    self.assembler.sweep()
                else:
                    self.handler(item, self.assembler)
            except Exception:
                log.exception("shard %d failed to process an item", self.index)
            finally:
                self.q.task_done()


class ShardedWorkerPool:
    """
    Bounded worker pool keyed by source id.

    Every source hashes to one shard; a shard is a single thread draining its own queue,
    so lines of one source are handled strictly in submission order while different
    shards run side by side. Each shard owns a private BlockAssembler.
    """

    def __init__(
        self,
        handler: Handler,
        *,
        workers: int = config.WORKERS,
        queue_size: int = config.QUEUE_SIZE,
        assembler_factory: Callable[[], BlockAssembler] = BlockAssembler,
    ):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.shards: List[_Shard] = [
            _Shard(i, handler, assembler_factory(), queue_size) for i in range(workers)
        ]
        self._started = False
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            for shard in self.shards:
                if shard.thread.is_alive():
                    # an earlier stop() timed out; its stop marker is still queued ahead of new work
                    shard.thread.join()
                if shard.thread.ident is not None:
                    shard.thread = shard._new_thread()
                shard.thread.start()
            self._started = True

    def submit(self, source_id: str, item: Any) -> None:
        # blocks when the shard is full; lines are never dropped
        self.shard(source_id).q.put(item)

    def shard(self, source_id: str) -> _Shard:
        return self.shards[shard_for(source_id, len(self.shards))]

    def assembler_for(self, source_id: str) -> BlockAssembler:
        return self.shard(source_id).assembler

    def request_sweep(self) -> None:
        for shard in self.shards:
            shard.q.put(_SWEEP)

    def queued(self) -> int:
        return sum(shard.q.qsize() for shard in self.shards)

    def drain(self) -> None:
        for shard in self.shards:
            shard.q.join()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Process everything already queued, then stop the shard threads."""
        with self._lock:
            if not self._started:
                return
            self.drain()
            for shard in self.shards:
                shard.q.put(_STOP)
            for shard in self.shards:
                shard.thread.join(timeout=timeout)
                if shard.thread.is_alive():
                    log.warning("shard %d did not stop within %ss", shard.index, timeout)
            self._started = False
