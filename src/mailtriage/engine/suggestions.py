"""Action suggestion engine.

Turns already-computed category summaries and relationship insights into a
short ranked list of one-click actions: review urgent items, review upcoming
events, add a frequent correspondent as a tracked relationship, and bulk
archive a noisy low-value category.

Pure and deterministic: the same input always yields the same list, with the
same action ids.

Usage:
    from mailtriage.engine.suggestions import ActionSuggester, CategorySummary

    suggester = ActionSuggester(config.suggestions)
    actions = suggester.generate_actions(
        [CategorySummary(category="shopping", count=12)],
        insights=[],
    )
    # actions[0].label == "Archive 12 shopping emails"
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal

from mailtriage.config_schema import SuggestionConfig
from mailtriage.core.logging import get_logger

logger = get_logger(__name__)

ActionType = Literal["view_urgent", "add_events", "add_relationship", "archive_category"]
ActionPriority = Literal["high", "medium", "low"]

PRIORITY_WEIGHTS = MappingProxyType({"high": 3, "medium": 2, "low": 1})

# Tiebreaker within one priority tier
TYPE_WEIGHTS = MappingProxyType(
    {
        "view_urgent": 4,
        "add_events": 3,
        "add_relationship": 2,
        "archive_category": 1,
    }
)

CATEGORY_LABELS = MappingProxyType(
    {
        "newsletters_general": "newsletter",
        "news_politics": "news",
        "product_updates": "product update",
        "local": "local",
        "shopping": "shopping",
        "travel": "travel",
        "finance": "finance",
        "family_kids_school": "school",
        "family_health_appointments": "appointment",
        "client_pipeline": "client",
        "business_work_general": "work",
        "personal_friends_family": "personal",
    }
)

ARCHIVE_DESCRIPTIONS = MappingProxyType(
    {
        "newsletters_general": "Newsletters and digests safe to archive",
        "news_politics": "News updates that can be archived",
        "product_updates": "Product and service updates",
        "shopping": "Promotional and shopping emails",
    }
)

EVENTS_HIGH_PRIORITY_COUNT = 3
MAX_SENDERS_IN_DESCRIPTION = 3


@dataclass(frozen=True, slots=True)
class SenderInfo:
    email: str
    name: str | None = None
    count: int = 0


@dataclass(frozen=True, slots=True)
class UpcomingEvent:
    """Soonest event detected in a category; date is an ISO date string."""

    title: str
    date: str | None = None


@dataclass(frozen=True, slots=True)
class CategorySummary:
    """Per-category rollup produced by the discovery pass."""

    category: str
    count: int
    unread_count: int = 0
    top_senders: tuple[SenderInfo, ...] = field(default=())
    sample_subjects: tuple[str, ...] = field(default=())
    insight: str | None = None
    urgent_count: int = 0
    upcoming_event: UpcomingEvent | None = None


@dataclass(frozen=True, slots=True)
class RelationshipInsight:
    """Correspondent detected in the inbox, possibly not yet tracked."""

    name: str
    relationship_id: str | None = None
    is_new_suggestion: bool = False
    email_count: int = 0
    action_required_count: int = 0
    sample_subject: str | None = None
    relationship_signal: str | None = None


@dataclass(frozen=True, slots=True)
class SuggestedAction:
    id: str
    type: ActionType
    label: str
    description: str
    priority: ActionPriority
    count: int | None = None
    category: str | None = None
    relationship_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "description": self.description,
            "priority": self.priority,
            "count": self.count,
            "category": self.category,
            "relationship_name": self.relationship_name,
        }


def _slug(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip()).lower()


def archive_label(category: str, count: int) -> str:
    """e.g. "Archive 12 shopping emails"."""
    category_label = CATEGORY_LABELS.get(category, category)
    email_word = "email" if count == 1 else "emails"
    return f"Archive {count} {category_label} {email_word}"


def archive_description(summary: CategorySummary) -> str:
    """Top senders when known, else a sentence describing the category."""
    if summary.top_senders:
        names = ", ".join(
            sender.name or sender.email.split("@")[0]
            for sender in summary.top_senders[:MAX_SENDERS_IN_DESCRIPTION]
        )
        return f"From: {names}"

    return ARCHIVE_DESCRIPTIONS.get(
        summary.category,
        f"{summary.category.replace('_', ' ')} emails that can be archived",
    )


class ActionSuggester:
    """Builds the ranked suggestion list.

    Attributes:
        _config: Suggestion thresholds and category lists
    """

    def __init__(self, config: SuggestionConfig | None = None):
        self._config = config or SuggestionConfig()

    def generate_actions(
        self,
        categories: Sequence[CategorySummary],
        insights: Sequence[RelationshipInsight] = (),
    ) -> list[SuggestedAction]:
        """Return at most max_actions suggestions, most important first."""
        candidates = [
            *self._urgent_actions(categories),
            *self._event_actions(categories),
            *self._archive_actions(categories),
            *self._relationship_actions(insights),
        ]

        ranked = sorted(
            candidates,
            key=lambda a: (PRIORITY_WEIGHTS[a.priority], TYPE_WEIGHTS[a.type]),
            reverse=True,
        )
        selected = ranked[: self._config.max_actions]

        logger.info(
            "actions_suggested",
            candidate_count=len(candidates),
            returned_count=len(selected),
            types=[a.type for a in selected],
        )
        return selected

    def _urgent_actions(self, categories: Sequence[CategorySummary]) -> list[SuggestedAction]:
        work_categories = set(self._config.urgent_categories)
        urgent_count = sum(c.urgent_count for c in categories if c.category in work_categories)
        if urgent_count <= 0:
            return []

        single = urgent_count == 1
        return [
            SuggestedAction(
                id="view_urgent",
                type="view_urgent",
                label="Review 1 urgent item" if single else f"Review {urgent_count} urgent items",
                description=(
                    "This email has a deadline soon"
                    if single
                    else "These emails have deadlines soon"
                ),
                priority="high",
                count=urgent_count,
            )
        ]

    def _event_actions(self, categories: Sequence[CategorySummary]) -> list[SuggestedAction]:
        events = [c.upcoming_event for c in categories if c.upcoming_event is not None]
        if not events:
            return []

        # Undated events sort after dated ones
        soonest = min(events, key=lambda e: (e.date is None, e.date or ""))
        event_count = len(events)

        return [
            SuggestedAction(
                id="add_events",
                type="add_events",
                label=(
                    "Review 1 upcoming event"
                    if event_count == 1
                    else f"Review {event_count} upcoming events"
                ),
                description=(
                    f"Next: {soonest.title}"
                    if soonest.title
                    else "Events and invitations were detected"
                ),
                priority="high" if event_count >= EVENTS_HIGH_PRIORITY_COUNT else "medium",
                count=event_count,
            )
        ]

    def _archive_actions(self, categories: Sequence[CategorySummary]) -> list[SuggestedAction]:
        by_category = {c.category: c for c in categories}
        actions = []

        for category in self._config.archivable_categories:
            summary = by_category.get(category)
            if summary is None or summary.count < self._config.archive_min_count:
                continue

            actions.append(
                SuggestedAction(
                    id=f"archive_{category}",
                    type="archive_category",
                    label=archive_label(category, summary.count),
                    description=archive_description(summary),
                    priority=(
                        "medium" if summary.count >= self._config.archive_medium_count else "low"
                    ),
                    count=summary.count,
                    category=category,
                )
            )

        return actions

    def _relationship_actions(
        self, insights: Sequence[RelationshipInsight]
    ) -> list[SuggestedAction]:
        actions = []
        for insight in insights:
            if not insight.is_new_suggestion:
                continue
            if insight.email_count < self._config.new_relationship_min_emails:
                continue

            actions.append(
                SuggestedAction(
                    id=f"add_relationship_{_slug(insight.name)}",
                    type="add_relationship",
                    label=f'Add "{insight.name}" as relationship',
                    description=(
                        f"{insight.email_count} emails found, "
                        f"{insight.action_required_count} need response"
                    ),
                    priority="medium" if insight.action_required_count > 0 else "low",
                    count=insight.email_count,
                    relationship_name=insight.name,
                )
            )

        return actions
