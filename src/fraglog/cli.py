import os
import time

import uvicorn

from fraglog import config
from fraglog.log_context import setup_logging


def main():
    setup_logging(config.LOG_LEVEL)
    uvicorn.run(
        "fraglog.app:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.RELOAD,
        log_level=config.LOG_LEVEL,
    )


def ship():
    from fraglog.shipper import LogShipper, tail_file

    setup_logging(config.LOG_LEVEL)
    url = os.getenv("FRAGLOG_SHIP_URL", f"http://{config.HOST}:{config.PORT}")
    source_id = os.environ["FRAGLOG_SHIP_SOURCE"]
    path = os.environ["FRAGLOG_SHIP_FILE"]

    shipper = LogShipper(
        url,
        source_id,
        key=os.getenv("FRAGLOG_SHIP_KEY") or None,
        envelope=os.getenv("FRAGLOG_SHIP_ENVELOPE", "0") == "1",
    )
    tail_file(path, shipper, from_start=os.getenv("FRAGLOG_SHIP_FROM_START", "0") == "1")
    while True:
        time.sleep(60)
