"""Retry-with-cooldown job for failed analyses.

Finds messages whose analysis failed, that have cooled down long enough and
are not too old to matter, and resubmits them to the analyzer one at a time.

Candidate window (strict on both ends):
    now - max_error_age_hours < updated_at < now - cooldown_hours

Recording a failure bumps updated_at, so a message that fails again is not a
candidate until another full cooldown has passed. Overlapping runs are
harmless: the second one either finds nothing or re-analyzes the same rows.

Usage:
    from mailtriage.engine.retry import FailedAnalysisRetrier

    retrier = FailedAnalysisRetrier(store, analyzer, config)
    result = await retrier.retry_failed_analyses()
    print(result.to_dict())
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from mailtriage.classifier.analyzer import UserContext
from mailtriage.core.errors import DatabaseError
from mailtriage.core.logging import get_logger, set_correlation_id

if TYPE_CHECKING:
    from mailtriage.classifier.analyzer import Analyzer
    from mailtriage.config_schema import AppConfig
    from mailtriage.db.store import DatabaseStore, Email

logger = get_logger(__name__)


@dataclass
class RetryJobEmailResult:
    """Outcome of one resubmitted message."""

    email_id: str
    user_id: str
    success: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "email_id": self.email_id,
            "user_id": self.user_id,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class RetryJobResult:
    """Aggregate outcome of one retry run."""

    success: bool = True
    emails_found: int = 0
    emails_retried: int = 0
    emails_succeeded: int = 0
    emails_failed: int = 0
    total_duration_ms: int = 0
    errors: list[str] = field(default_factory=list)
    results: list[RetryJobEmailResult] = field(default_factory=list)

    def record(self, email_id: str, user_id: str, success: bool, error: str | None = None) -> None:
        """Add one per-message outcome and update the counters."""
        self.results.append(RetryJobEmailResult(email_id, user_id, success, error))
        if success:
            self.emails_succeeded += 1
        else:
            self.emails_failed += 1
            self.errors.append(f"Email {email_id}: {error}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "emails_found": self.emails_found,
            "emails_retried": self.emails_retried,
            "emails_succeeded": self.emails_succeeded,
            "emails_failed": self.emails_failed,
            "total_duration_ms": self.total_duration_ms,
            "errors": list(self.errors),
            "results": [r.to_dict() for r in self.results],
        }


class FailedAnalysisRetrier:
    """Resubmits failed analyses once their cooldown has elapsed.

    Messages are processed sequentially, oldest failure first, with a fixed
    pause between analyzer calls.

    Attributes:
        _store: Database store
        _analyzer: External analyzer
        _config: Application configuration
        _now: Clock, injectable for tests
        _sleep: Awaitable delay, injectable for tests
    """

    def __init__(
        self,
        store: DatabaseStore,
        analyzer: Analyzer,
        config: AppConfig,
        now: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._store = store
        self._analyzer = analyzer
        self._config = config
        self._now = now or (lambda: datetime.now(UTC))
        self._sleep = sleep
        self._calls_made = 0

    async def retry_failed_analyses(self) -> RetryJobResult:
        """Run one retry pass.

        Returns:
            RetryJobResult; success is True only when no message failed
        """
        set_correlation_id(str(uuid.uuid4()))
        start_time = time.monotonic()
        result = RetryJobResult()
        retry_config = self._config.retry
        self._calls_made = 0

        try:
            now = self._now()
            oldest_allowed = now - timedelta(hours=retry_config.max_error_age_hours)
            newest_allowed = now - timedelta(hours=retry_config.cooldown_hours)

            try:
                candidates = await self._store.get_retry_candidates(oldest_allowed, newest_allowed)
            except DatabaseError as e:
                logger.error("retry_candidates_query_failed", error=str(e))
                result.success = False
                result.errors.append(f"Query failed: {e}")
                return result

            result.emails_found = len(candidates)
            if not candidates:
                logger.info("retry_job_no_candidates")
                return result

            selected = candidates[: retry_config.max_emails_per_run]
            result.emails_retried = len(selected)

            logger.info(
                "retry_job_started",
                emails_found=result.emails_found,
                emails_selected=result.emails_retried,
            )

            by_user: dict[str, list[str]] = {}
            for candidate in selected:
                by_user.setdefault(candidate.user_id, []).append(candidate.id)

            for user_id, email_ids in by_user.items():
                await self._retry_user_group(user_id, email_ids, result)

            result.success = result.emails_failed == 0
            return result

        finally:
            result.total_duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.info(
                "retry_job_complete",
                emails_found=result.emails_found,
                emails_retried=result.emails_retried,
                succeeded=result.emails_succeeded,
                failed=result.emails_failed,
                duration_ms=result.total_duration_ms,
            )
            set_correlation_id(None)

    async def _retry_user_group(
        self,
        user_id: str,
        email_ids: list[str],
        result: RetryJobResult,
    ) -> None:
        """Load context once, reset the group, then analyze each message."""
        try:
            emails = await self._store.get_emails_batch(email_ids)
            relationships = await self._store.get_active_relationships(user_id)
        except DatabaseError as e:
            logger.error("retry_context_load_failed", user_id=user_id, error=str(e))
            for email_id in email_ids:
                result.record(email_id, user_id, False, f"Context load failed: {e}")
            return

        if not emails:
            logger.warning("retry_emails_missing", user_id=user_id, count=len(email_ids))
            for email_id in email_ids:
                result.record(email_id, user_id, False, "Email not found")
            return

        try:
            await self._store.reset_analysis_state(email_ids)
        except DatabaseError as e:
            logger.error("retry_reset_failed", user_id=user_id, error=str(e))
            for email_id in email_ids:
                result.record(email_id, user_id, False, f"Reset failed: {e}")
            return

        context = UserContext(user_id=user_id, relationships=tuple(relationships))

        for email_id in email_ids:
            email = emails.get(email_id)
            if email is None:
                result.record(email_id, user_id, False, "Email not found")
                continue

            error = await self._analyze_one(email, context)
            result.record(email_id, user_id, error is None, error)

    async def _analyze_one(self, email: Email, context: UserContext) -> str | None:
        """Analyze one message; returns the error string, or None on success."""
        if self._calls_made:
            await self._sleep(self._config.retry.delay_between_emails_ms / 1000)
        self._calls_made += 1

        try:
            outcome = await self._analyzer.analyze(email, context)
            error = None if outcome.success else (outcome.error or "Analysis failed")
        except Exception as e:
            logger.error("retry_analysis_exception", email_id=email.id, error=str(e))
            error = str(e)

        if error is None:
            logger.debug("email_retry_succeeded", email_id=email.id)
            return None

        try:
            await self._store.record_analysis_failure(email.id, error)
        except DatabaseError as e:
            # The reset already cleared the error, so the row is no longer a candidate
            logger.warning("retry_failure_record_failed", email_id=email.id, error=str(e))
            error = f"{error} (failure not recorded for email {email.id}: {e})"

        logger.info("email_retry_failed", email_id=email.id, error=error)
        return error
