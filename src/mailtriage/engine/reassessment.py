"""Batch priority reassessment.

Initial urgency is set when a message is analyzed, but what the user should
see first keeps changing: deadlines approach, items go stale, and
relationship tiers change. This job recomputes the priority of every
pending action and every recent work email from its stored base urgency,
and writes back only material changes (|new - old| >= min_delta).

Because the score is always recomputed from the untouched base urgency,
running the job twice in a row writes nothing the second time.

Usage:
    from mailtriage.engine.reassessment import PriorityReassessor

    reassessor = PriorityReassessor(store=db_store, config=app_config)
    result = await reassessor.reassess_for_user("user-123")
    summary = await reassessor.summarize_all_users()
"""

from __future__ import annotations

import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, TypeVar

from mailtriage.core.errors import DatabaseError
from mailtriage.core.logging import get_correlation_id, get_logger, set_correlation_id
from mailtriage.engine.scoring import calculate_priority, relationship_multiplier, score_changed

if TYPE_CHECKING:
    from mailtriage.config_schema import AppConfig
    from mailtriage.db.store import Action, DatabaseStore, Email

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class ReassessmentResult:
    """Outcome of reassessing one user's actions and emails."""

    user_id: str
    success: bool = True
    actions_processed: int = 0
    actions_updated: int = 0
    emails_processed: int = 0
    emails_updated: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "user_id": self.user_id,
            "actions_processed": self.actions_processed,
            "actions_updated": self.actions_updated,
            "emails_processed": self.emails_processed,
            "emails_updated": self.emails_updated,
            "duration_ms": self.duration_ms,
            "errors": list(self.errors),
        }


@dataclass
class _PassResult:
    processed: int = 0
    updated: int = 0
    errors: list[str] = field(default_factory=list)


def summarize_reassessment(
    results: Sequence[ReassessmentResult],
    duration_ms: int,
    job_errors: Sequence[str] = (),
) -> dict[str, Any]:
    """Aggregate per-user results into one JSON-serializable summary.

    Job-level errors (e.g. the user list could not be loaded) make the
    summary unsuccessful even when there are no per-user results.
    """
    return {
        "success": not job_errors and all(r.success for r in results),
        "users_processed": len(results),
        "users_failed": sum(1 for r in results if not r.success),
        "actions_processed": sum(r.actions_processed for r in results),
        "actions_updated": sum(r.actions_updated for r in results),
        "emails_processed": sum(r.emails_processed for r in results),
        "emails_updated": sum(r.emails_updated for r in results),
        "total_duration_ms": duration_ms,
        "errors": [
            *job_errors,
            *(f"User {r.user_id}: {error}" for r in results for error in r.errors),
        ],
    }


class PriorityReassessor:
    """Keeps stored priority scores fresh.

    Attributes:
        _store: Database store
        _config: Application configuration
        _now: Clock, injectable for tests
    """

    def __init__(
        self,
        store: DatabaseStore,
        config: AppConfig,
        now: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._config = config
        self._now = now or (lambda: datetime.now(UTC))

    async def reassess_for_user(self, user_id: str) -> ReassessmentResult:
        """Reassess one user's pending actions and recent work emails."""
        owns_run_id = get_correlation_id() is None
        if owns_run_id:
            set_correlation_id(str(uuid.uuid4()))

        start_time = time.monotonic()
        result = ReassessmentResult(user_id=user_id)

        try:
            now = self._now()
            since = now - timedelta(days=self._config.reassessment.lookback_days)
            multipliers = await self._load_relationship_multipliers(user_id)

            action_pass = await self._reassess_actions(user_id, since, now, multipliers)
            result.actions_processed = action_pass.processed
            result.actions_updated = action_pass.updated
            result.errors.extend(action_pass.errors)

            email_pass = await self._reassess_emails(user_id, since, now, multipliers)
            result.emails_processed = email_pass.processed
            result.emails_updated = email_pass.updated
            result.errors.extend(email_pass.errors)

            result.success = not result.errors
            return result

        finally:
            result.duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.info(
                "reassessment_complete",
                user_id=user_id,
                actions_processed=result.actions_processed,
                actions_updated=result.actions_updated,
                emails_processed=result.emails_processed,
                emails_updated=result.emails_updated,
                duration_ms=result.duration_ms,
                error_count=len(result.errors),
            )
            if owns_run_id:
                set_correlation_id(None)

    async def reassess_for_all_users(self) -> list[ReassessmentResult]:
        """Reassess every onboarded user sequentially.

        One user's failure is recorded as a failed result and never stops
        the run for the others.

        Raises:
            DatabaseError: If the list of onboarded users cannot be loaded
        """
        set_correlation_id(str(uuid.uuid4()))
        start_time = time.monotonic()
        results: list[ReassessmentResult] = []

        try:
            try:
                user_ids = await self._store.get_onboarded_user_ids()
            except DatabaseError as e:
                logger.error("reassessment_users_fetch_failed", error=str(e))
                raise DatabaseError(f"Failed to list users: {e}") from e

            if not user_ids:
                logger.info("reassessment_no_users")
                return results

            logger.info("reassessment_started", user_count=len(user_ids))

            for user_id in user_ids:
                try:
                    results.append(await self.reassess_for_user(user_id))
                except Exception as e:
                    logger.error("reassessment_user_failed", user_id=user_id, error=str(e))
                    results.append(
                        ReassessmentResult(user_id=user_id, success=False, errors=[str(e)])
                    )

            return results

        finally:
            logger.info(
                "reassessment_batch_complete",
                users_processed=len(results),
                actions_updated=sum(r.actions_updated for r in results),
                emails_updated=sum(r.emails_updated for r in results),
                failed_count=sum(1 for r in results if not r.success),
                duration_ms=int((time.monotonic() - start_time) * 1000),
            )
            set_correlation_id(None)

    async def summarize_all_users(self) -> dict[str, Any]:
        """Run the all-users variant and return the trigger summary."""
        start_time = time.monotonic()
        try:
            results = await self.reassess_for_all_users()
        except DatabaseError as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            return summarize_reassessment([], duration_ms, job_errors=[str(e)])

        return summarize_reassessment(results, int((time.monotonic() - start_time) * 1000))

    async def _load_relationship_multipliers(self, user_id: str) -> dict[str, float]:
        """Map active relationship ids to their multiplier ({} on failure)."""
        try:
            relationships = await self._store.get_active_relationships(user_id)
        except DatabaseError as e:
            logger.warning("relationship_priorities_fetch_failed", user_id=user_id, error=str(e))
            return {}

        scoring = self._config.scoring
        return {rel.id: relationship_multiplier(rel.priority, scoring) for rel in relationships}

    async def _paginate(
        self,
        fetch: Callable[[str | None], Awaitable[list[T]]],
        label: str,
        errors: list[str],
    ) -> AsyncIterator[list[T]]:
        """Yield one page at a time; a fetch error ends paging and is recorded."""
        batch_size = self._config.reassessment.batch_size
        after_id: str | None = None

        while True:
            try:
                page = await fetch(after_id)
            except DatabaseError as e:
                errors.append(f"Failed to fetch {label}: {e}")
                return
            if not page:
                return
            yield page
            if len(page) < batch_size:
                return
            after_id = page[-1].id  # type: ignore[attr-defined]

    async def _reassess_actions(
        self,
        user_id: str,
        since: datetime,
        now: datetime,
        multipliers: dict[str, float],
    ) -> _PassResult:
        result = _PassResult()
        batch_size = self._config.reassessment.batch_size

        async def fetch(after_id: str | None) -> list[Action]:
            return await self._store.get_pending_actions(user_id, since, after_id, batch_size)

        async for page in self._paginate(fetch, "actions", result.errors):
            for action in page:
                base = (
                    action.urgency_score
                    if action.urgency_score is not None
                    else action.priority_score
                )
                if base is None:
                    logger.debug("action_without_score_skipped", action_id=action.id)
                    continue

                result.processed += 1
                new_priority = self._score(
                    base,
                    action.deadline,
                    action.created_at or now,
                    action.relationship_id,
                    multipliers,
                    now,
                )
                old_priority = action.priority_score if action.priority_score is not None else base
                if not score_changed(old_priority, new_priority, self._config.scoring):
                    continue

                try:
                    await self._store.update_action_priority(action.id, new_priority)
                except DatabaseError as e:
                    result.errors.append(f"Failed to update action {action.id}: {e}")
                    continue

                result.updated += 1
                logger.debug(
                    "action_priority_updated",
                    action_id=action.id,
                    old_priority=old_priority,
                    new_priority=new_priority,
                )

        return result

    async def _reassess_emails(
        self,
        user_id: str,
        since: datetime,
        now: datetime,
        multipliers: dict[str, float],
    ) -> _PassResult:
        result = _PassResult()
        batch_size = self._config.reassessment.batch_size
        categories = self._config.reassessment.work_categories

        async def fetch(after_id: str | None) -> list[Email]:
            return await self._store.get_work_emails(
                user_id, categories, since, after_id, batch_size
            )

        async for page in self._paginate(fetch, "emails", result.errors):
            for email in page:
                base = email.urgency_score if email.urgency_score is not None else email.priority_score
                if base is None:
                    logger.debug("email_without_score_skipped", email_id=email.id)
                    continue

                result.processed += 1
                # Emails carry no deadline; staleness runs from analysis time
                new_priority = self._score(
                    base,
                    None,
                    email.analyzed_at or email.date or now,
                    email.relationship_id,
                    multipliers,
                    now,
                )
                old_priority = email.priority_score if email.priority_score is not None else base
                if not score_changed(old_priority, new_priority, self._config.scoring):
                    continue

                try:
                    await self._store.update_email_priority(email.id, new_priority)
                except DatabaseError as e:
                    result.errors.append(f"Failed to update email {email.id}: {e}")
                    continue

                result.updated += 1
                logger.debug(
                    "email_priority_updated",
                    email_id=email.id,
                    old_priority=old_priority,
                    new_priority=new_priority,
                )

        return result

    def _score(
        self,
        base: float,
        deadline: datetime | None,
        created_at: datetime,
        relationship_id: str | None,
        multipliers: dict[str, float],
        now: datetime,
    ) -> float:
        factor = multipliers.get(relationship_id) if relationship_id else None
        raw = calculate_priority(base, deadline, created_at, factor, now, self._config.scoring)
        return round(raw, 2)
