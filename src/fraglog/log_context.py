from __future__ import annotations

import contextvars
import logging
import os
from typing import Dict, Optional

SOURCE_ID = contextvars.ContextVar("source_id", default=None)
RAW_LINE_ID = contextvars.ContextVar("raw_line_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [source=%(source_id)s]: %(message)s"


def set_context(*, source_id: str, raw_line_id: Optional[str] = None) -> Dict[str, contextvars.Token]:
    return {
        "source_id": SOURCE_ID.set(source_id),
        "raw_line_id": RAW_LINE_ID.set(raw_line_id),
    }


def reset_context(tokens: Dict[str, contextvars.Token]) -> None:
    SOURCE_ID.reset(tokens["source_id"])
    RAW_LINE_ID.reset(tokens["raw_line_id"])


def get_context() -> Dict[str, str]:
    out: Dict[str, str] = {}
    source_id = SOURCE_ID.get()
    raw_line_id = RAW_LINE_ID.get()

    if source_id:
        out["source_id"] = source_id
    if raw_line_id:
        out["raw_line_id"] = raw_line_id
    return out


class ContextFilter(logging.Filter):
    """Stamps the current source / raw line id on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_context()
        if not hasattr(record, "source_id"):
            record.source_id = ctx.get("source_id", "-")
        if not hasattr(record, "raw_line_id"):
            record.raw_line_id = ctx.get("raw_line_id", "-")
        return True


def setup_logging(level: Optional[str] = None) -> None:
    level = (level or os.getenv("FRAGLOG_LOG_LEVEL", "INFO")).upper()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(ContextFilter())

    root = logging.getLogger("fraglog")
    root.setLevel(level)
    root.addHandler(handler)
    root.propagate = False
