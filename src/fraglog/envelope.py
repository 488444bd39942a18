"""
Envelope stripping.

Lines reach us in a handful of historical wrappers:

  [2025-08-19T15:12:44Z] 18a5c248-c891-42a6-b72e-af0b184937c1: L 08/19/2025 - 19:03:31: ...
  18a5c248-c891-42a6-b72e-af0b184937c1: L 08/19/2025 - 19:03:31: ...
  08/19/2025 - 19:03:31: ...                      (line marker missing)
  L 08/19/2025 - 19:03:31.735 - ...               (fractional seconds, no colon)

extract_canonical() turns each of them into the form the grammar expects:

  L 08/19/2025 - 19:03:31: ...

It never raises; anything it does not recognise passes through untouched.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

LINE_MARKER = "L "

_TIME_FIELD_RE = re.compile(r"^(?P<time>\d{1,2}:\d{2}:\d{2})(?P<frac>\.\d+)?(?P<colon>:)?(?P<sep> - | )?")


def _looks_like_uuid(token: str) -> bool:
    return len(token) == 36 and token.count("-") == 4


def _strip_bracketed_prefix(line: str) -> Optional[str]:
    if not line.startswith("["):
        return None
    end = line.find("] ")
    if end == -1:
        return None
    remaining = line[end + 2:]
    if remaining.startswith(LINE_MARKER):
        return remaining
    colon = remaining.find(": ")
    if colon == -1:
        return None
    return remaining[colon + 2:]


def _strip_uuid_prefix(line: str) -> Optional[str]:
    if line.startswith(LINE_MARKER):
        return None
    colon = line.find(": ")
    if colon == -1 or not _looks_like_uuid(line[:colon]):
        return None
    return line[colon + 2:]


def _normalize_time_field(line: str) -> str:
    if not line.startswith(LINE_MARKER):
        return line
    dash = line.find(" - ")
    if dash == -1:
        return line
    head, rest = line[:dash], line[dash + 3:]
    m = _TIME_FIELD_RE.match(rest)
    if not m:
        return line
    if m.group("colon") and not m.group("frac"):
        return line
    body = rest[m.end():]
    return f"{head} - {m.group('time')}: {body}"


def extract_canonical(line: str) -> str:
    text = line.strip()

    stripped = _strip_bracketed_prefix(text)
    if stripped is None:
        stripped = _strip_uuid_prefix(text)
    if stripped is not None:
        text = stripped

    if not text.startswith(LINE_MARKER) and " - " in text and ":" in text:
        text = LINE_MARKER + text

    return _normalize_time_field(text)


def wrap_line(line: str, correlation_id: str, ts: Optional[datetime] = None) -> str:
    """Wrap a canonical line the way the HTTP relay does: ``[ts] <uuid>: <line>``."""
    ts = ts or datetime.now(timezone.utc)
    stamp = ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return f"[{stamp}] {correlation_id}: {line}"
