from __future__ import annotations

import hmac
from typing import Dict, Optional


def parse_sources(value: str) -> Dict[str, Optional[str]]:
    """
    Supports:
      "" -> {}
      "srv-a" -> {"srv-a": None}
      "srv-a=keyA,srv-b=keyB" -> {"srv-a": "keyA", "srv-b": "keyB"}
    """
    out: Dict[str, Optional[str]] = {}
    if not value:
        return out

    parts = [p.strip() for p in value.split(",") if p.strip()]
    for p in parts:
        if "=" in p:
            sid, key = p.split("=", 1)
            out[sid.strip()] = key.strip() or None
        else:
            out[p] = None
    return out


class SourceAccess:
    """
    Answers whether a source may ingest.

    With no configured sources every id is accepted (local dev). A source configured
    without a key is accepted without one; a source with a key must present it.
    """

    def __init__(self, sources: Optional[Dict[str, Optional[str]]] = None):
        self.sources = dict(sources or {})

    @classmethod
    def from_config(cls, value: str) -> "SourceAccess":
        return cls(parse_sources(value))

    def is_source_authorized(self, source_id: str, key: Optional[str] = None) -> bool:
        if not self.sources:
            return True
        if source_id not in self.sources:
            return False
        expected = self.sources[source_id]
        if expected is None:
            return True
        return key is not None and hmac.compare_digest(expected, key)
