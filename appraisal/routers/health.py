"""Health checks, mounted at the root next to /docs."""
import logging

from fastapi import APIRouter, HTTPException
from sqlalchemy import text

from appraisal.core.clock import utcnow
from appraisal.core.config import settings
from appraisal.database import session_scope
from appraisal.jobs.scheduler import scheduler_state

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/")
def root():
    return {
        "message": f"{settings.app_name} API",
        "version": settings.version,
        "docs": "/docs",
    }


@router.get("/health")
def health_check():
    """Liveness: the process is up and serving requests."""
    return {
        "status": "up",
        "timestamp": utcnow().isoformat(),
        "version": settings.version,
        "environment": settings.environment,
    }


@router.get("/liveness")
def liveness_check():
    return health_check()


@router.get("/readiness")
def readiness_check():
    """
    Readiness: the database answers. The scheduler state is reported but does
    not gate readiness, since API nodes may run with the sweep disabled.
    """
    try:
        with session_scope() as session:
            session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        raise HTTPException(status_code=503, detail="Database unavailable")
    return {
        "status": "ready",
        "components": {"database": "connected", "scheduler": scheduler_state()},
    }
