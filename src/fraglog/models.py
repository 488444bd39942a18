from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ----------------------------
# Records
# ----------------------------
class RawLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    source_id: str
    text: str
    received_at: datetime = Field(default_factory=utcnow)


class ParsedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    raw_line_id: str
    source_id: str
    event_kind: str
    event_payload: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class FailedParse(BaseModel):
    id: str = Field(default_factory=new_id)
    raw_line_id: str
    source_id: Optional[str] = None
    error_message: str
    retry_count: int = 0          # no retry driver reads these yet
    resolved: bool = False
    created_at: datetime = Field(default_factory=utcnow)


Record = Union[ParsedEvent, FailedParse]


class Classification(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_kind: str
    event_payload: Dict[str, Any] = Field(default_factory=dict)
