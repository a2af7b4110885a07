"""Scoring and batch processing engines.

This package provides:
- Priority scoring (pure function)
- Batch priority reassessment job
- Retry-with-cooldown job for failed analyses
- Action suggestion engine
"""

from mailtriage.engine.reassessment import (
    PriorityReassessor,
    ReassessmentResult,
    summarize_reassessment,
)
from mailtriage.engine.retry import FailedAnalysisRetrier, RetryJobEmailResult, RetryJobResult
from mailtriage.engine.scoring import calculate_priority, score_changed
from mailtriage.engine.suggestions import (
    ActionSuggester,
    CategorySummary,
    RelationshipInsight,
    SuggestedAction,
)

__all__ = [
    # Scoring
    "calculate_priority",
    "score_changed",
    # Reassessment
    "PriorityReassessor",
    "ReassessmentResult",
    "summarize_reassessment",
    # Retry
    "FailedAnalysisRetrier",
    "RetryJobEmailResult",
    "RetryJobResult",
    # Suggestions
    "ActionSuggester",
    "CategorySummary",
    "RelationshipInsight",
    "SuggestedAction",
]
