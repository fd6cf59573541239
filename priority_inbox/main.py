"""
Application entry point with database pool and triage service lifecycle.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from priority_inbox.config import settings
from priority_inbox.db.pool import db_pool
from priority_inbox.features.triage.api.router import router as triage_router
from priority_inbox.features.triage.classification import Classifier
from priority_inbox.features.triage.priority import PriorityEngine
from priority_inbox.features.triage.rules import load_priority_config
from priority_inbox.infrastructure.observability.logging import get_logger, setup_logging
from priority_inbox.routes import health

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the pool, load the rule set, and build the triage services."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    startup_tasks = []

    try:
        logger.info("Initializing database pool")
        await db_pool.initialize()
        startup_tasks.append("database_pool")

        config = load_priority_config(settings.rules_path())
        classifier = Classifier(config)
        app.state.priority_config = config
        app.state.classifier = classifier
        app.state.priority_engine = PriorityEngine(config, classifier)
        startup_tasks.append("triage")

        logger.info("All services initialized successfully", services=startup_tasks)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)

        if "database_pool" in startup_tasks:
            try:
                await db_pool.close()
            except Exception as cleanup_error:
                logger.error("Error cleaning up database pool", error=str(cleanup_error))

        raise

    yield

    logger.info("Application shutting down")

    try:
        logger.info("Closing database pool")
        await db_pool.close()
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Priority Inbox",
    description="Rule-based email classification and priority scoring",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(triage_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
