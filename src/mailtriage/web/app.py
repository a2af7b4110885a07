"""FastAPI application exposing the batch jobs as HTTP triggers.

Creates the FastAPI app with:
- Lifespan context manager for dependency initialization
- Job trigger and health routers

Scheduling is external: a cron service (or any scheduler) calls the job
endpoints with the shared bearer secret.

Usage:
    from mailtriage.web.app import create_app

    app = create_app()
    # Run with: uvicorn.run(app, host="127.0.0.1", port=8000)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from mailtriage.core.logging import get_logger

logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize dependencies on startup.

    On startup:
    1. Load config
    2. Initialize database
    3. Initialize the Claude analyzer (optional; the retry job needs it)
    """
    import anthropic

    from mailtriage.classifier.claude_analyzer import ClaudeAnalyzer
    from mailtriage.config import get_config
    from mailtriage.db.store import DatabaseStore

    # 1. Load config
    config = get_config()
    app.state.config = config

    # 2. Initialize database
    db_path = Path(config.database.path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    store = DatabaseStore(db_path)
    await store.initialize()
    app.state.store = store

    # 3. Initialize analyzer
    app.state.analyzer = None
    try:
        client = anthropic.AsyncAnthropic(max_retries=3)
        app.state.analyzer = ClaudeAnalyzer(client=client, store=store, config=config)
    except Exception as e:
        logger.error("analyzer_init_failed", error=str(e))

    logger.info("app_started", db_path=str(db_path), analyzer=app.state.analyzer is not None)

    yield

    logger.info("app_stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    from mailtriage.web.routes import health_router, jobs_router

    app = FastAPI(
        title="mailtriage",
        description="Email triage batch job triggers",
        version=VERSION,
        lifespan=lifespan,
    )

    app.include_router(health_router)
    app.include_router(jobs_router)

    return app
