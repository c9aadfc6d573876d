"""
FastAPI application: storage lifecycle and in-process schedulers.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI

from reviewreply.config import settings
from reviewreply.infrastructure.observability.logging import get_logger, setup_logging
from reviewreply.jobs.auto_reply_job import start_auto_reply_scheduler
from reviewreply.jobs.campaign_job import start_campaign_scheduler
from reviewreply.middleware.request_context import RequestContextMiddleware
from reviewreply.repositories.factory import get_store
from reviewreply.routes import auto_reply, google, health, pro, tenants

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the store, start the schedulers, and tear both down on shutdown."""
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    store = get_store()
    try:
        await store.initialize()
    except Exception as e:
        logger.error("Failed to initialize storage", backend=store.backend, error=str(e))
        raise

    tasks = [
        asyncio.create_task(start_auto_reply_scheduler(), name="auto_reply_scheduler"),
        asyncio.create_task(start_campaign_scheduler(), name="campaign_scheduler"),
    ]
    logger.info("Application started", store_backend=store.backend)

    yield

    logger.info("Application shutting down")
    for task in tasks:
        task.cancel()
    for task in tasks:
        with contextlib.suppress(asyncio.CancelledError):
            await task

    try:
        await store.close()
    except Exception as e:
        logger.error("Error closing storage", backend=store.backend, error=str(e))
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="ReviewReply",
    description="Automatic Google review replies and Pro email campaigns",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(tenants.router)
app.include_router(auto_reply.router)
app.include_router(pro.router)
app.include_router(google.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
