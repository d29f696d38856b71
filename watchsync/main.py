# watchsync/main.py

import logging
import os
import subprocess
from contextlib import asynccontextmanager

from fastapi import FastAPI

from watchsync.core.logging_config import configure_logging
from watchsync.database import dispose_engine
from watchsync.integrations.setup import close_orchestrator, get_orchestrator, reset_orchestrator
from watchsync.routes import health, sync
from watchsync.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    if os.getenv('RUN_MIGRATIONS', 'false').lower() == 'true':
        logger.info("Running database migrations...")
        result = subprocess.run(['alembic', 'upgrade', 'head'], capture_output=True, text=True)
        if result.returncode == 0:
            logger.info("Migrations completed successfully")
        else:
            logger.error(f"Migration failed: {result.stderr}")

    orchestrator = get_orchestrator()
    if os.getenv('SYNC_SCHEDULE_ENABLED', 'false').lower() == 'true':
        await start_scheduler(orchestrator)
    else:
        logger.info("Scheduled sync is disabled. Set SYNC_SCHEDULE_ENABLED=true to enable")

    try:
        yield
    finally:
        await stop_scheduler()
        await close_orchestrator(orchestrator)
        reset_orchestrator()
        await dispose_engine()


app = FastAPI(
    title="Watch Listing Sync",
    lifespan=lifespan
)

app.include_router(health.router)
app.include_router(sync.router)
