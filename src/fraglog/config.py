from __future__ import annotations

import os

# ----------------------------
# Server
# ----------------------------
HOST = os.getenv("FRAGLOG_HOST", "127.0.0.1")
PORT = int(os.getenv("FRAGLOG_PORT", "8080"))
RELOAD = os.getenv("FRAGLOG_RELOAD", "0") == "1"
LOG_LEVEL = os.getenv("FRAGLOG_LOG_LEVEL", "info")

# ----------------------------
# Worker pool
# ----------------------------
WORKERS = int(os.getenv("FRAGLOG_WORKERS", "4"))
QUEUE_SIZE = int(os.getenv("FRAGLOG_QUEUE_SIZE", "10000"))

# JSON blocks older than this are evicted by the sweep (seconds)
BLOCK_STALE_S = float(os.getenv("FRAGLOG_BLOCK_STALE_S", "600"))
SWEEP_INTERVAL_S = float(os.getenv("FRAGLOG_SWEEP_INTERVAL_S", "300"))
BLOCK_MAX_LINES = int(os.getenv("FRAGLOG_BLOCK_MAX_LINES", "4096"))

# ----------------------------
# Storage
# ----------------------------
# Empty -> in-memory store (bounded by MAX_RECORDS per record type)
STORE_DIR = os.getenv("FRAGLOG_STORE_DIR", "").strip()
MAX_RECORDS = int(os.getenv("FRAGLOG_MAX_RECORDS", "100000"))

# ----------------------------
# Access
# ----------------------------
# FRAGLOG_SOURCES can be:
#   srv-a=secretA,srv-b=secretB
# or ids without keys:
#   srv-a,srv-b
# Empty allows every source.
SOURCES = os.getenv("FRAGLOG_SOURCES", "").strip()
