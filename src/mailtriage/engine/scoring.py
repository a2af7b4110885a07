"""Priority scoring engine.

Final priority = base urgency x deadline factor x relationship factor x
staleness factor, clamped to [min_priority, max_priority] (1-10 by default).

- deadline factor: 2.0 if overdue or < 4h away, 1.5 if < 24h, 1.25 if
  < 48h, 1.1 if < 72h, else 1.0 (also 1.0 without a deadline)
- relationship factor: the supplied tier multiplier, 1.0 without one
- staleness factor: 1.3 if older than 7 days, 1.2 if > 4 days,
  1.1 if > 2 days, else 1.0

Pure and synchronous: callers pass `now` for deterministic results.
"""

from datetime import UTC, datetime

from mailtriage.config_schema import ScoringConfig

_DEFAULT_CONFIG = ScoringConfig()

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def deadline_factor(
    deadline: datetime | None,
    now: datetime,
    config: ScoringConfig = _DEFAULT_CONFIG,
) -> float:
    """Multiplier for time remaining until the deadline."""
    if deadline is None:
        return config.deadline_multipliers.normal

    hours_left = (_as_utc(deadline) - _as_utc(now)).total_seconds() / SECONDS_PER_HOUR
    thresholds = config.deadline_thresholds
    multipliers = config.deadline_multipliers

    # Overdue counts as critical
    if hours_left < thresholds.critical:
        return multipliers.critical
    if hours_left < thresholds.urgent:
        return multipliers.urgent
    if hours_left < thresholds.soon:
        return multipliers.soon
    if hours_left < thresholds.approaching:
        return multipliers.approaching
    return multipliers.normal


def staleness_factor(
    created_at: datetime,
    now: datetime,
    config: ScoringConfig = _DEFAULT_CONFIG,
) -> float:
    """Multiplier for how long the item has been sitting."""
    age_days = (_as_utc(now) - _as_utc(created_at)).total_seconds() / SECONDS_PER_DAY
    thresholds = config.staleness_thresholds
    multipliers = config.staleness_multipliers

    if age_days > thresholds.very_stale:
        return multipliers.very_stale
    if age_days > thresholds.stale:
        return multipliers.stale
    if age_days > thresholds.aging:
        return multipliers.aging
    return multipliers.fresh


def relationship_multiplier(
    priority: str | None,
    config: ScoringConfig = _DEFAULT_CONFIG,
) -> float:
    """Map a relationship priority tier to its multiplier (1.0 if unknown)."""
    if not priority:
        return 1.0
    return config.relationship_multipliers.get(priority.lower(), 1.0)


def clamp(value: float, config: ScoringConfig = _DEFAULT_CONFIG) -> float:
    return max(config.min_priority, min(config.max_priority, value))


def calculate_priority(
    base_urgency: float,
    deadline: datetime | None,
    created_at: datetime,
    relationship_factor: float | None = None,
    now: datetime | None = None,
    config: ScoringConfig | None = None,
) -> float:
    """Compute the bounded priority score of one work item.

    Args:
        base_urgency: Urgency assigned at classification time (1-10)
        deadline: Optional deadline
        created_at: Staleness clock start
        relationship_factor: Tier multiplier, None when no relationship applies
        now: Reference time (defaults to the current UTC time)
        config: Scoring thresholds and multipliers

    Returns:
        Score clamped to [min_priority, max_priority]

    Example:
        base 5, deadline in 3h, VIP (1.5), created 1h ago:
        5 x 2.0 x 1.5 x 1.0 = 15, clamped to 10
    """
    config = config or _DEFAULT_CONFIG
    now = now or datetime.now(UTC)

    raw = (
        base_urgency
        * deadline_factor(deadline, now, config)
        * (relationship_factor if relationship_factor is not None else 1.0)
        * staleness_factor(created_at, now, config)
    )
    return clamp(raw, config)


def score_changed(old: float | None, new: float, config: ScoringConfig | None = None) -> bool:
    """Whether a stored score should be rewritten.

    A missing stored score always counts as changed.
    """
    if old is None:
        return True
    min_delta = (config or _DEFAULT_CONFIG).min_delta
    return abs(new - old) >= min_delta
