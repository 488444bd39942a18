from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from fraglog import config
from fraglog.access import SourceAccess
from fraglog.classifier import classify
from fraglog.envelope import extract_canonical
from fraglog.errors import ParseFailure
from fraglog.ingest import IngestionCoordinator
from fraglog.sessions import MapSessionDetector
from fraglog.store import build_store
from fraglog.timing import RequestTimingMiddleware

log = logging.getLogger(__name__)

# ----------------------------
# App
# ----------------------------
app = FastAPI(title="fraglog")
app.add_middleware(RequestTimingMiddleware)

STORE = build_store()
ACCESS = SourceAccess.from_config(config.SOURCES)
COORDINATOR = IngestionCoordinator(
    STORE,
    session_detector=MapSessionDetector(),
    workers=config.WORKERS,
    queue_size=config.QUEUE_SIZE,
)

_sweeper: Optional[asyncio.Task] = None


# ----------------------------
# Schemas
# ----------------------------
class ParseTestRequest(BaseModel):
    logs: str


class ParseTestResult(BaseModel):
    line_number: int
    content: str
    success: bool
    event_kind: Optional[str] = None
    event_payload: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class ParseTestResponse(BaseModel):
    total_lines: int
    parsed_count: int
    failed_count: int
    results: List[ParseTestResult] = Field(default_factory=list)


# ----------------------------
# Block sweeper
# ----------------------------
async def _block_sweeper():
    while True:
        await asyncio.sleep(config.SWEEP_INTERVAL_S)
        COORDINATOR.pool.request_sweep()


@app.on_event("startup")
async def _startup():
    global _sweeper
    COORDINATOR.start()
    _sweeper = asyncio.create_task(_block_sweeper())


@app.on_event("shutdown")
async def _shutdown():
    global _sweeper
    if _sweeper is not None:
        _sweeper.cancel()
        _sweeper = None
    await asyncio.to_thread(COORDINATOR.stop)


# ----------------------------
# Routes
# ----------------------------
@app.get("/health")
def health():
    return {
        "ok": True,
        "workers": len(COORDINATOR.pool.shards),
        "queued": COORDINATOR.pool.queued(),
    }


@app.post("/logs/{source_id}")
async def ingest(source_id: str, request: Request, key: Optional[str] = None):
    source_id = source_id.strip()
    if not source_id:
        raise HTTPException(400, "source id is required")

    if not ACCESS.is_source_authorized(source_id, key):
        raise HTTPException(401, "invalid or inactive source")

    body = await request.body()
    if not body.strip():
        raise HTTPException(400, "empty body")

    client = request.client.host if request.client else None
    count = await asyncio.to_thread(COORDINATOR.ingest, source_id, client, body)
    return {
        "received": True,
        "line_count": count,
        "source_id": source_id,
        "timestamp": int(time.time()),
    }


@app.post("/parse-test", response_model=ParseTestResponse)
def parse_test(req: ParseTestRequest):
    results: List[ParseTestResult] = []
    parsed = failed = 0

    for i, line in enumerate(req.logs.split("\n")):
        line = line.strip()
        if not line:
            continue
        result = ParseTestResult(line_number=i + 1, content=line, success=False)
        try:
            c = classify(extract_canonical(line))
        except ParseFailure as e:
            result.error = str(e)
            failed += 1
        else:
            result.success = True
            result.event_kind = c.event_kind
            result.event_payload = c.event_payload
            parsed += 1
        results.append(result)

    return ParseTestResponse(
        total_lines=len(results),
        parsed_count=parsed,
        failed_count=failed,
        results=results,
    )


# ----------------------------
# Entry hint (optional)
# ----------------------------
# Run with:
#   uvicorn fraglog.app:app --host 127.0.0.1 --port 8080
