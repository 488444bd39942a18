from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from fraglog import config
from fraglog.classifier import resolve_line
from fraglog.errors import BlockMalformed
from fraglog.grammar import strip_header
from fraglog.models import FailedParse, ParsedEvent, RawLine, Record

log = logging.getLogger(__name__)

BEGIN_TOKEN = "JSON_BEGIN{"
END_TOKEN = "}}JSON_END"

AGGREGATE_KIND = "aggregate-block"
AGGREGATE_REF_KIND = "aggregate-block-ref"

_FIELD_RE = re.compile(r'^"[^"]+"\s*:')
_CLOSER_RE = re.compile(r"^\}+,?$")

Resolver = Callable[[str, str, str], Record]


class BufferState(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"


@dataclass
class BlockLine:
    raw_line_id: str
    text: str    # canonical line, kept for per-line fallback


@dataclass
class SourceBuffer:
    source_id: str
    opened_at: float
    first_raw_line_id: str
    last_raw_line_id: str
    lines: List[str] = field(default_factory=lambda: ["{"])
    interior: List[BlockLine] = field(default_factory=list)
    dropped: int = 0


def is_begin(text: str) -> bool:
    return BEGIN_TOKEN in text


def is_end(text: str) -> bool:
    return END_TOKEN in text


def json_fragment(text: str) -> Optional[str]:
    """Return the JSON piece carried by an interior line, or None if it has none."""
    body = strip_header(text).strip()
    if _FIELD_RE.match(body) or _CLOSER_RE.match(body):
        return body
    return None


def unclosed_braces(text: str) -> int:
    depth = 0
    in_str = False
    escaped = False
    for ch in text:
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
        elif ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
    return depth


class BlockAssembler:
    """
    Reassembles JSON_BEGIN{ ... }}JSON_END blocks, one buffer per source.

    Not thread safe: an assembler belongs to exactly one worker, and every line of a
    source must reach it in arrival order.
    """

    def __init__(
        self,
        resolve: Resolver = resolve_line,
        *,
        stale_after_s: float = config.BLOCK_STALE_S,
        max_lines: int = config.BLOCK_MAX_LINES,
        clock: Callable[[], float] = time.time,
    ):
        self.resolve = resolve
        self.stale_after_s = stale_after_s
        self.max_lines = max_lines
        self.clock = clock
        self.buffers: Dict[str, SourceBuffer] = {}

    def state(self, source_id: str) -> BufferState:
        return BufferState.COLLECTING if source_id in self.buffers else BufferState.IDLE

    def wants(self, source_id: str, text: str) -> bool:
        return is_begin(text) or source_id in self.buffers

    def feed(self, raw: RawLine, text: str) -> List[Record]:
        if is_begin(text):
            self._open(raw)
            return []

        buf = self.buffers.get(raw.source_id)
        if buf is None:
            # stray end marker or a line that was never ours
            return [self.resolve(raw.id, raw.source_id, text)]

        if is_end(text):
            buf.last_raw_line_id = raw.id
            del self.buffers[raw.source_id]
            return self._close(buf)

        fragment = json_fragment(text)
        if fragment is None:
            buf.dropped += 1
            log.debug("dropped non-json line %s inside block", raw.id)
            return []

        if len(buf.interior) >= self.max_lines:
            del self.buffers[raw.source_id]
            log.warning("json block exceeded %d lines; discarded", self.max_lines)
            return [FailedParse(
                raw_line_id=raw.id,
                source_id=raw.source_id,
                error_message=f"json block exceeded {self.max_lines} lines",
            )]

        buf.lines.append(fragment)
        buf.interior.append(BlockLine(raw_line_id=raw.id, text=text))
        buf.last_raw_line_id = raw.id
        return []

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """Evict blocks that stayed open longer than stale_after_s. Returns evicted source ids."""
        now = self.clock() if now is None else now
        evicted = [
            sid for sid, buf in self.buffers.items()
            if now - buf.opened_at > self.stale_after_s
        ]
        for sid in evicted:
            buf = self.buffers.pop(sid)
            log.warning(
                "evicted stale json block for %s (%d lines, open %.0fs)",
                sid, len(buf.interior), now - buf.opened_at,
            )
        return evicted

    # ----------------------------
    # Internal
    # ----------------------------
    def _open(self, raw: RawLine) -> None:
        old = self.buffers.get(raw.source_id)
        if old is not None:
            log.warning("new json block began before the previous one closed; discarded %d lines", len(old.interior))
        self.buffers[raw.source_id] = SourceBuffer(
            source_id=raw.source_id,
            opened_at=self.clock(),
            first_raw_line_id=raw.id,
            last_raw_line_id=raw.id,
        )

    def _close(self, buf: SourceBuffer) -> List[Record]:
        text = "\n".join(buf.lines)
        text += "\n" + "}" * max(unclosed_braces(text), 1)
        try:
            obj = self._parse(text)
        except BlockMalformed as e:
            return self._degrade(buf, e)

        out: List[Record] = []
        if buf.first_raw_line_id != buf.last_raw_line_id:
            out.append(ParsedEvent(
                raw_line_id=buf.first_raw_line_id,
                source_id=buf.source_id,
                event_kind=AGGREGATE_REF_KIND,
                event_payload={"refers_to_raw_line_id": buf.last_raw_line_id},
            ))
        out.append(ParsedEvent(
            raw_line_id=buf.last_raw_line_id,
            source_id=buf.source_id,
            event_kind=AGGREGATE_KIND,
            event_payload=obj,
        ))
        log.debug(
            "assembled json block with %d lines, %d non-json lines dropped",
            len(buf.interior), buf.dropped,
        )
        return out

    @staticmethod
    def _parse(text: str) -> dict:
        try:
            obj = json.loads(text)
        except ValueError as e:
            raise BlockMalformed(f"json block malformed: {e}") from e
        if not isinstance(obj, dict):
            raise BlockMalformed(f"json block is {type(obj).__name__}, not an object")
        return obj

    def _degrade(self, buf: SourceBuffer, err: BlockMalformed) -> List[Record]:
        log.warning("%s; classifying %d lines one by one", err, len(buf.interior))
        out = [self.resolve(line.raw_line_id, buf.source_id, line.text) for line in buf.interior]
        out.append(FailedParse(
            raw_line_id=buf.last_raw_line_id,
            source_id=buf.source_id,
            error_message=str(err),
        ))
        return out
