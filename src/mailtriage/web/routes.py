"""Web routes for the mailtriage job triggers.

Contains two routers:
- jobs_router: bearer-authenticated job triggers under /api/jobs
- health_router: unauthenticated health check

Job endpoints return the job's result object as JSON with status 200, even
when individual items failed; the `success` flag and `errors` list carry
partial failures. Only an unexpected exception produces a 500.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from mailtriage.classifier.analyzer import Analyzer
from mailtriage.config_schema import AppConfig
from mailtriage.core.logging import get_logger
from mailtriage.db.models import verify_schema
from mailtriage.db.store import DatabaseStore
from mailtriage.engine.reassessment import PriorityReassessor
from mailtriage.engine.retry import FailedAnalysisRetrier
from mailtriage.web.app import VERSION
from mailtriage.web.dependencies import (
    get_analyzer,
    get_config,
    get_store,
    require_cron_secret,
)

logger = get_logger(__name__)

jobs_router = APIRouter(prefix="/api/jobs", dependencies=[Depends(require_cron_secret)])
health_router = APIRouter()


@jobs_router.post("/retry-failed-analyses")
async def retry_failed_analyses(
    store: DatabaseStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
    analyzer: Analyzer | None = Depends(get_analyzer),
):
    """Resubmit failed analyses whose cooldown has elapsed."""
    if analyzer is None:
        raise HTTPException(status_code=503, detail="Analyzer not available")

    logger.info("retry_job_triggered")
    try:
        result = await FailedAnalysisRetrier(store, analyzer, config).retry_failed_analyses()
    except Exception as e:
        logger.error("retry_job_crashed", error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error") from None

    return result.to_dict()


@jobs_router.post("/reassess-priorities")
async def reassess_priorities(
    user_id: str | None = Query(default=None, min_length=1),
    store: DatabaseStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
):
    """Reassess one user's priorities, or every onboarded user's."""
    logger.info("reassessment_triggered", user_id=user_id)
    reassessor = PriorityReassessor(store, config)

    try:
        if user_id:
            return (await reassessor.reassess_for_user(user_id)).to_dict()
        return await reassessor.summarize_all_users()
    except Exception as e:
        logger.error("reassessment_crashed", user_id=user_id, error=str(e))
        raise HTTPException(status_code=500, detail="Internal server error") from None


@health_router.get("/health")
async def health_check(
    store: DatabaseStore = Depends(get_store),
    analyzer: Analyzer | None = Depends(get_analyzer),
):
    """Health check endpoint for Docker and monitoring."""
    schema_ok = await verify_schema(store.db_path)

    return {
        "status": "healthy" if schema_ok else "degraded",
        "database": schema_ok,
        "analyzer_available": analyzer is not None,
        "version": VERSION,
    }
