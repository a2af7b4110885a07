"""Pydantic configuration schema for mailtriage.

This module defines the configuration schema that mirrors config.yaml structure.
Every tunable constant of the triage core (cooldowns, batch sizes, scoring
thresholds, suggestion thresholds) lives here with its default.

Usage:
    from mailtriage.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

from pydantic import BaseModel, Field, field_validator, model_validator

from mailtriage.classifier.patterns import EMAIL_CATEGORIES

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1


class DeadlineThresholds(BaseModel):
    """Hours-until-deadline windows, tightest first."""

    critical: float = Field(default=4, gt=0, description="< N hours (or overdue) -> critical")
    urgent: float = Field(default=24, gt=0, description="< N hours -> urgent")
    soon: float = Field(default=48, gt=0, description="< N hours -> soon")
    approaching: float = Field(default=72, gt=0, description="< N hours -> approaching")

    @model_validator(mode="after")
    def validate_ascending(self) -> "DeadlineThresholds":
        """Windows must widen from critical to approaching."""
        if not (self.critical < self.urgent < self.soon < self.approaching):
            raise ValueError(
                "Deadline thresholds must be strictly ascending "
                "(critical < urgent < soon < approaching)"
            )
        return self


class DeadlineMultipliers(BaseModel):
    """Score multiplier applied for each deadline window."""

    critical: float = Field(default=2.0, ge=1.0)
    urgent: float = Field(default=1.5, ge=1.0)
    soon: float = Field(default=1.25, ge=1.0)
    approaching: float = Field(default=1.1, ge=1.0)
    normal: float = Field(default=1.0, ge=1.0)


class StalenessThresholds(BaseModel):
    """Item-age windows in days, oldest first."""

    very_stale: float = Field(default=7, gt=0, description="> N days -> very stale")
    stale: float = Field(default=4, gt=0, description="> N days -> stale")
    aging: float = Field(default=2, gt=0, description="> N days -> aging")

    @model_validator(mode="after")
    def validate_descending(self) -> "StalenessThresholds":
        """Windows must shrink from very_stale to aging."""
        if not (self.very_stale > self.stale > self.aging):
            raise ValueError(
                "Staleness thresholds must be strictly descending (very_stale > stale > aging)"
            )
        return self


class StalenessMultipliers(BaseModel):
    """Score multiplier applied for each staleness window."""

    very_stale: float = Field(default=1.3, ge=1.0)
    stale: float = Field(default=1.2, ge=1.0)
    aging: float = Field(default=1.1, ge=1.0)
    fresh: float = Field(default=1.0, ge=1.0)


class ScoringConfig(BaseModel):
    """Priority scoring engine configuration."""

    min_priority: float = Field(default=1, ge=0, description="Lowest score ever produced")
    max_priority: float = Field(default=10, gt=0, description="Highest score ever produced")
    deadline_thresholds: DeadlineThresholds = Field(default_factory=DeadlineThresholds)
    deadline_multipliers: DeadlineMultipliers = Field(default_factory=DeadlineMultipliers)
    staleness_thresholds: StalenessThresholds = Field(default_factory=StalenessThresholds)
    staleness_multipliers: StalenessMultipliers = Field(default_factory=StalenessMultipliers)
    relationship_multipliers: dict[str, float] = Field(
        default={
            "low": 1.0,
            "normal": 1.0,
            "medium": 1.0,
            "high": 1.2,
            "vip": 1.5,
        },
        description="Multiplier per relationship priority tier",
    )
    min_delta: float = Field(
        default=0.5,
        gt=0,
        description="Only rewrite a stored score when |new - old| >= this value",
    )

    @model_validator(mode="after")
    def validate_bounds(self) -> "ScoringConfig":
        """Ensure the clamp interval is not empty."""
        if self.min_priority >= self.max_priority:
            raise ValueError("min_priority must be lower than max_priority")
        return self

    @field_validator("relationship_multipliers")
    @classmethod
    def validate_multipliers(cls, v: dict[str, float]) -> dict[str, float]:
        """Relationship multipliers can only boost, never demote."""
        for tier, multiplier in v.items():
            if multiplier < 1.0:
                raise ValueError(f"Relationship multiplier for '{tier}' must be >= 1.0")
        return {tier.lower(): multiplier for tier, multiplier in v.items()}


class ReassessmentConfig(BaseModel):
    """Batch priority reassessment configuration."""

    lookback_days: int = Field(
        default=14,
        ge=1,
        le=365,
        description="Only reassess items created within this window (days)",
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Rows fetched per page from the store",
    )
    work_categories: list[str] = Field(
        default=["client_pipeline"],
        description="Message categories whose priority is kept fresh",
    )


class RetryConfig(BaseModel):
    """Retry-with-cooldown job configuration."""

    max_emails_per_run: int = Field(
        default=25,
        ge=1,
        le=500,
        description="Maximum messages resubmitted per run",
    )
    max_error_age_hours: float = Field(
        default=168,
        gt=0,
        description="Ignore failures older than this (hours)",
    )
    cooldown_hours: float = Field(
        default=24,
        ge=0,
        description="Minimum time between two retries of the same message (hours)",
    )
    delay_between_emails_ms: int = Field(
        default=500,
        ge=0,
        le=60000,
        description="Pause between analyzer calls (milliseconds)",
    )

    @model_validator(mode="after")
    def validate_window(self) -> "RetryConfig":
        """The cooldown must end before the retry window closes."""
        if self.cooldown_hours >= self.max_error_age_hours:
            raise ValueError("cooldown_hours must be shorter than max_error_age_hours")
        return self


class PreFilterConfig(BaseModel):
    """Pre-filter classifier configuration."""

    skip_ai_threshold: float = Field(
        default=0.95,
        ge=0.0,
        le=1.0,
        description="Learned patterns at or above this confidence skip AI analysis",
    )
    excluded_labels: list[str] = Field(
        default=["SPAM", "TRASH", "DRAFT"],
        description="Platform labels that exclude a message entirely",
    )
    automated_sender_category: str = Field(
        default="product_updates",
        description="Category assigned to fully automated senders",
    )
    automated_sender_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    domain_confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    prefix_confidence: float = Field(default=0.85, ge=0.0, le=1.0)

    @field_validator("excluded_labels")
    @classmethod
    def normalize_labels(cls, v: list[str]) -> list[str]:
        """Labels are compared upper-case."""
        return [label.upper() for label in v]

    @field_validator("automated_sender_category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        """The fallback category must belong to the taxonomy."""
        if v not in EMAIL_CATEGORIES:
            raise ValueError(
                f"Unknown category '{v}'. Must be one of: {', '.join(EMAIL_CATEGORIES)}"
            )
        return v


class PatternLearningConfig(BaseModel):
    """Learned sender pattern configuration."""

    min_sample_size: int = Field(default=3, ge=1, description="Emails needed per sender")
    min_consistency: float = Field(
        default=0.8,
        ge=0.5,
        le=1.0,
        description="Share of emails that must agree on one category",
    )
    confidence_boost_per_sample: float = Field(default=0.02, ge=0.0, le=0.2)
    max_confidence: float = Field(default=0.98, ge=0.5, le=1.0)
    max_patterns_per_user: int = Field(default=500, ge=1)
    prefer_domain_patterns: bool = Field(
        default=True,
        description="Learn per-domain patterns instead of per-address patterns",
    )


class SuggestionConfig(BaseModel):
    """Action suggestion engine configuration."""

    max_actions: int = Field(default=5, ge=1, le=20)
    archive_min_count: int = Field(
        default=5,
        ge=1,
        description="Minimum emails in a category before suggesting bulk archive",
    )
    archive_medium_count: int = Field(
        default=10,
        ge=1,
        description="Archive suggestions at or above this count get medium priority",
    )
    new_relationship_min_emails: int = Field(
        default=2,
        ge=1,
        description="Minimum emails before suggesting a sender as a tracked relationship",
    )
    archivable_categories: list[str] = Field(
        default=["newsletters_general", "news_politics", "product_updates", "shopping"],
        description="Low-value categories eligible for bulk archive",
    )
    urgent_categories: list[str] = Field(
        default=["client_pipeline", "business_work_general"],
        description="Work categories whose urgent counts are summed",
    )


class AnalyzerConfig(BaseModel):
    """External analyzer (Claude) configuration."""

    model: str = Field(
        default="claude-haiku-4-5-20251001",
        description="Model used to categorize messages",
    )
    max_tokens: int = Field(default=1024, ge=128, le=8192)
    max_body_chars: int = Field(
        default=4000,
        ge=200,
        le=50000,
        description="Body characters included in the analysis prompt",
    )


class DatabaseConfig(BaseModel):
    """SQLite store configuration."""

    path: str = Field(default="data/mailtriage.db", description="Path to the SQLite file")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Ensure database path doesn't contain path traversal."""
        if not v or not v.strip():
            raise ValueError("Database path cannot be empty")
        if ".." in v:
            raise ValueError("Database path cannot contain '..' (path traversal)")
        return v


class LoggingConfig(BaseModel):
    """Logging output configuration."""

    level: str = Field(default="INFO", description="DEBUG, INFO, WARNING or ERROR")
    json_output: bool = Field(default=True, description="JSON logs (False: console)")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Only standard logging levels are accepted."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
            raise ValueError("Log level must be one of DEBUG, INFO, WARNING, ERROR")
        return level


class AppConfig(BaseModel):
    """Root configuration schema for mailtriage.

    This model validates the entire config.yaml structure. Every section has
    defaults, so an empty file is a valid configuration.
    """

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version for migration tracking",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    prefilter: PreFilterConfig = Field(default_factory=PreFilterConfig)
    pattern_learning: PatternLearningConfig = Field(default_factory=PatternLearningConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    reassessment: ReassessmentConfig = Field(default_factory=ReassessmentConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    suggestions: SuggestionConfig = Field(default_factory=SuggestionConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
