"""FastAPI dependency injection helpers.

Extracts shared dependencies from app.state for use in route handlers.
All dependencies are initialized during the FastAPI lifespan.

Usage:
    from mailtriage.web.dependencies import get_store

    @router.get("/health")
    async def health(store: DatabaseStore = Depends(get_store)):
        ...
"""

from __future__ import annotations

import hmac
import os
from typing import TYPE_CHECKING

from fastapi import HTTPException, Request

from mailtriage.core.logging import get_logger

if TYPE_CHECKING:
    from mailtriage.classifier.analyzer import Analyzer
    from mailtriage.config_schema import AppConfig
    from mailtriage.db.store import DatabaseStore

logger = get_logger(__name__)

CRON_SECRET_ENV_VAR = "MAILTRIAGE_CRON_SECRET"


def get_store(request: Request) -> DatabaseStore:
    """Get the shared DatabaseStore from app state."""
    return request.app.state.store


def get_config(request: Request) -> AppConfig:
    """Get the current AppConfig from app state."""
    return request.app.state.config


def get_analyzer(request: Request) -> Analyzer | None:
    """Get the analyzer from app state (None when the API client is unavailable)."""
    return request.app.state.analyzer


def require_cron_secret(request: Request) -> None:
    """Check the `Authorization: Bearer <secret>` header against the env secret.

    Raises:
        HTTPException: 500 when no secret is configured, 401 on mismatch
    """
    expected = os.environ.get(CRON_SECRET_ENV_VAR)
    if not expected:
        logger.error("cron_secret_not_configured", env_var=CRON_SECRET_ENV_VAR)
        raise HTTPException(status_code=500, detail="Server misconfigured")

    provided = request.headers.get("authorization", "")
    if not hmac.compare_digest(provided.encode(), f"Bearer {expected}".encode()):
        logger.warning("job_trigger_unauthorized", path=request.url.path)
        raise HTTPException(status_code=401, detail="Unauthorized")
