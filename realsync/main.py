"""realsync — FastAPI Application Entry Point.

Keeps client-API entities and analytics events mirrored in MongoDB.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from realsync.api.login_routes import router as login_router
from realsync.api.sync_routes import router as sync_router
from realsync.core.event_registry import validate_registry
from realsync.core.logging import get_logger
from realsync.database import close_client, ensure_indexes, get_database, test_connection
from realsync.scheduler.jobs import start_scheduler, stop_scheduler
from realsync.sync.orchestrators import SyncRuntime

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 realsync starting up...")
    validate_registry()

    db_ok = test_connection()
    if db_ok:
        ensure_indexes(get_database())
    else:
        logger.error("❌ Database NOT connected — syncs will fail until it is")

    runtime = SyncRuntime(get_database())
    app.state.sync_runtime = runtime
    start_scheduler(runtime)
    yield
    stop_scheduler()
    await runtime.aclose()
    close_client()
    logger.info("realsync shut down")


app = FastAPI(
    title="realsync",
    description="Synchronizes client-API entities and analytics events into MongoDB.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(login_router)
app.include_router(sync_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "realsync",
        "version": "1.0.0",
    }
