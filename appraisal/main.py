"""
Performance Review Platform - FastAPI application.

Business routes are mounted under settings.api_prefix through api_router;
health checks and /docs stay at the root.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import appraisal.models  # noqa: F401  registers every model with SQLAlchemy
from appraisal.core.config import settings
from appraisal.core.error_handlers import register_exception_handlers
from appraisal.core.init_system import init_system_data
from appraisal.core.limiter import limiter
from appraisal.core.logging import setup_logging
from appraisal.core.middleware import CorrelationIdMiddleware, LoggingMiddleware
from appraisal.database import init_db
from appraisal.jobs.scheduler import shutdown_scheduler, start_scheduler
from appraisal.routers import health
from appraisal.routers.api_router import api_router

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the schema, bootstrap the first tenant, then run the appraisal sweep until shutdown."""
    logger.info(f"Starting {settings.app_name} v{settings.version} ({settings.environment})")
    try:
        init_db()
        init_system_data()
    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        raise
    start_scheduler()

    yield

    logger.info("Shutting down")
    shutdown_scheduler()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Employee performance reviews: appraisal initiation, evaluations, calibration and reporting",
    docs_url="/docs",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.state.limiter = limiter
register_exception_handlers(app)

# Last added runs first: CORS, then correlation id, then request logging
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[settings.request_id_header, "X-Process-Time"],
)

app.include_router(health.router)
app.include_router(api_router, prefix=settings.api_prefix)
