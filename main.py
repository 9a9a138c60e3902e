#!/usr/bin/env python
"""Run a research cycle, or print the latest research run.

Usage:
    python main.py          # run one research cycle (with job retries)
    python main.py status   # print the latest persisted research run
"""

from __future__ import annotations

import asyncio
import json
import sys

from tradebot.core.config import settings
from tradebot.core.logging import get_logger, setup_logging
from tradebot.database import close_engine
from tradebot.jobs import execute_job_with_retry
from tradebot.repositories import research_runs_orm


logger = get_logger("main")


async def run() -> str:
    logger.info(f"{settings.app_name} v{settings.app_version} starting research cycle")
    try:
        return await execute_job_with_retry(
            "research_cycle", max_retries=settings.external_api_retries
        )
    finally:
        await close_engine()


async def status() -> dict | None:
    try:
        return await research_runs_orm.get_latest_run()
    finally:
        await close_engine()


if __name__ == "__main__":
    setup_logging()
    command = sys.argv[1] if len(sys.argv) > 1 else "run"
    if command == "status":
        print(json.dumps(asyncio.run(status()), indent=2, default=str))
    elif command == "run":
        print(asyncio.run(run()))
    else:
        print(__doc__)
        sys.exit(2)
