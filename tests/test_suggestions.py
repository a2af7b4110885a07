"""Tests for the action suggestion engine."""

import pytest

from mailtriage.config_schema import SuggestionConfig
from mailtriage.engine.suggestions import (
    ActionSuggester,
    CategorySummary,
    RelationshipInsight,
    SenderInfo,
    UpcomingEvent,
    archive_description,
    archive_label,
)


@pytest.fixture
def suggester() -> ActionSuggester:
    return ActionSuggester()


class TestArchiveSuggestions:
    """Tests for bulk-archive suggestions."""

    def test_shopping_category_with_twelve_emails(self, suggester: ActionSuggester) -> None:
        actions = suggester.generate_actions([CategorySummary(category="shopping", count=12)])

        assert len(actions) == 1
        action = actions[0]
        assert action.id == "archive_shopping"
        assert action.type == "archive_category"
        assert action.label == "Archive 12 shopping emails"
        assert action.priority == "medium"
        assert action.count == 12
        assert action.category == "shopping"

    def test_below_medium_threshold_is_low(self, suggester: ActionSuggester) -> None:
        actions = suggester.generate_actions(
            [CategorySummary(category="newsletters_general", count=6)]
        )
        assert actions[0].priority == "low"
        assert actions[0].label == "Archive 6 newsletter emails"

    def test_below_min_count_is_skipped(self, suggester: ActionSuggester) -> None:
        assert suggester.generate_actions([CategorySummary(category="shopping", count=4)]) == []

    def test_non_archivable_category_is_skipped(self, suggester: ActionSuggester) -> None:
        actions = suggester.generate_actions(
            [CategorySummary(category="client_pipeline", count=50)]
        )
        assert actions == []

    def test_label_singular(self) -> None:
        assert archive_label("product_updates", 1) == "Archive 1 product update email"
        assert archive_label("custom_bucket", 3) == "Archive 3 custom_bucket emails"

    def test_description_lists_top_three_senders(self) -> None:
        summary = CategorySummary(
            category="shopping",
            count=9,
            top_senders=(
                SenderInfo("deals@store.example", "Store Deals", 5),
                SenderInfo("promo@outlet.example", None, 3),
                SenderInfo("news@mall.example", "Mall", 1),
                SenderInfo("x@extra.example", "Extra", 1),
            ),
        )
        assert archive_description(summary) == "From: Store Deals, promo, Mall"

    def test_description_fallbacks(self) -> None:
        assert (
            archive_description(CategorySummary(category="shopping", count=5))
            == "Promotional and shopping emails"
        )
        assert (
            archive_description(CategorySummary(category="social_media", count=5))
            == "social media emails that can be archived"
        )


class TestUrgentSuggestions:
    """Tests for the review-urgent suggestion."""

    def test_sums_urgent_work_categories(self, suggester: ActionSuggester) -> None:
        actions = suggester.generate_actions(
            [
                CategorySummary(category="client_pipeline", count=8, urgent_count=2),
                CategorySummary(category="business_work_general", count=4, urgent_count=1),
                CategorySummary(category="shopping", count=1, urgent_count=7),
            ]
        )

        assert actions[0].id == "view_urgent"
        assert actions[0].label == "Review 3 urgent items"
        assert actions[0].description == "These emails have deadlines soon"
        assert actions[0].priority == "high"
        assert actions[0].count == 3

    def test_single_item_wording(self, suggester: ActionSuggester) -> None:
        actions = suggester.generate_actions(
            [CategorySummary(category="client_pipeline", count=1, urgent_count=1)]
        )
        assert actions[0].label == "Review 1 urgent item"
        assert actions[0].description == "This email has a deadline soon"


class TestEventSuggestions:
    """Tests for the upcoming-events suggestion."""

    def test_soonest_dated_event_first(self, suggester: ActionSuggester) -> None:
        actions = suggester.generate_actions(
            [
                CategorySummary(category="a", count=1, upcoming_event=UpcomingEvent("Later", "2026-04-02")),
                CategorySummary(category="b", count=1, upcoming_event=UpcomingEvent("Undated")),
                CategorySummary(category="c", count=1, upcoming_event=UpcomingEvent("Soon", "2026-03-12")),
            ]
        )

        assert actions[0].id == "add_events"
        assert actions[0].label == "Review 3 upcoming events"
        assert actions[0].description == "Next: Soon"
        assert actions[0].priority == "high"

    def test_few_events_are_medium(self, suggester: ActionSuggester) -> None:
        actions = suggester.generate_actions(
            [CategorySummary(category="a", count=1, upcoming_event=UpcomingEvent("", "2026-03-12"))]
        )
        assert actions[0].label == "Review 1 upcoming event"
        assert actions[0].description == "Events and invitations were detected"
        assert actions[0].priority == "medium"


class TestRelationshipSuggestions:
    """Tests for add-relationship suggestions."""

    def test_new_correspondent_with_pending_replies(self, suggester: ActionSuggester) -> None:
        actions = suggester.generate_actions(
            [],
            [
                RelationshipInsight(
                    name="Acme  Corp",
                    is_new_suggestion=True,
                    email_count=4,
                    action_required_count=2,
                )
            ],
        )

        assert actions[0].id == "add_relationship_acme_corp"
        assert actions[0].label == 'Add "Acme  Corp" as relationship'
        assert actions[0].description == "4 emails found, 2 need response"
        assert actions[0].priority == "medium"
        assert actions[0].relationship_name == "Acme  Corp"

    def test_no_pending_replies_is_low(self, suggester: ActionSuggester) -> None:
        actions = suggester.generate_actions(
            [], [RelationshipInsight(name="Bob", is_new_suggestion=True, email_count=2)]
        )
        assert actions[0].priority == "low"

    def test_existing_or_rare_correspondents_are_skipped(
        self, suggester: ActionSuggester
    ) -> None:
        insights = [
            RelationshipInsight(name="Tracked", relationship_id="rel-1", email_count=10),
            RelationshipInsight(name="Rare", is_new_suggestion=True, email_count=1),
        ]
        assert suggester.generate_actions([], insights) == []


class TestRanking:
    """Tests for ordering and the cap."""

    def test_priority_then_type_ordering(self, suggester: ActionSuggester) -> None:
        actions = suggester.generate_actions(
            [
                CategorySummary(category="shopping", count=12),
                CategorySummary(category="news_politics", count=5),
                CategorySummary(category="client_pipeline", count=3, urgent_count=1),
                CategorySummary(category="travel", count=2, upcoming_event=UpcomingEvent("Flight")),
            ],
            [
                RelationshipInsight(
                    name="Acme", is_new_suggestion=True, email_count=3, action_required_count=1
                )
            ],
        )

        assert [a.id for a in actions] == [
            "view_urgent",
            "add_events",
            "add_relationship_acme",
            "archive_shopping",
            "archive_news_politics",
        ]

    def test_capped_at_max_actions(self) -> None:
        suggester = ActionSuggester(SuggestionConfig(max_actions=2))
        actions = suggester.generate_actions(
            [
                CategorySummary(category="shopping", count=12),
                CategorySummary(category="news_politics", count=12),
                CategorySummary(category="product_updates", count=12),
            ]
        )
        assert len(actions) == 2

    def test_deterministic(self, suggester: ActionSuggester) -> None:
        categories = [
            CategorySummary(category="shopping", count=12),
            CategorySummary(category="client_pipeline", count=3, urgent_count=2),
        ]
        assert suggester.generate_actions(categories) == suggester.generate_actions(categories)

    def test_empty_input(self, suggester: ActionSuggester) -> None:
        assert suggester.generate_actions([], []) == []

    def test_to_dict(self, suggester: ActionSuggester) -> None:
        data = suggester.generate_actions([CategorySummary(category="shopping", count=12)])[
            0
        ].to_dict()

        assert data == {
            "id": "archive_shopping",
            "type": "archive_category",
            "label": "Archive 12 shopping emails",
            "description": "Promotional and shopping emails",
            "priority": "medium",
            "count": 12,
            "category": "shopping",
            "relationship_name": None,
        }
