"""Date arithmetic and urgency classification for decisions and opportunities.

Two scales live here and must not be mixed up:

- ``UrgencyBucket`` is the coarse grouping used to lay decisions out in
  sections (30 days / 90 days / 6 months / beyond).
- ``CountdownTier`` is the finer visual urgency of a single countdown
  (14 / 30 / 90 days).

Both take a day count; neither accepts the other's output.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum

from culturemap.constants import (
    ACTIVE_DECISION_STATUSES,
    CLOSED_DECISION_STATUSES,
    DEFAULT_STALENESS_DAYS,
    STALENESS_THRESHOLDS,
)
from culturemap.records import Decision, Opportunity


def today_utc() -> date:
    return datetime.now(UTC).date()


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date()
    return value


def days_until(target: date | datetime | None, reference: date | datetime | None = None) -> int | None:
    """Whole calendar days from *reference* (default today, UTC) to *target*.

    Negative when the target has passed, ``None`` when there is no target.
    """
    if target is None:
        return None
    ref = _as_date(reference) if reference is not None else today_utc()
    return (_as_date(target) - ref).days


def days_since(value: date | datetime | None, reference: date | datetime | None = None) -> int | None:
    days = days_until(value, reference)
    return None if days is None else -days


# ---------------------------------------------------------------------------
# Coarse buckets
# ---------------------------------------------------------------------------


class UrgencyBucket(Enum):
    WITHIN_30_DAYS = "Within 30 Days"
    WITHIN_90_DAYS = "Within 90 Days"
    WITHIN_6_MONTHS = "Within 6 Months"
    BEYOND_6_MONTHS = "Beyond 6 Months"

    @property
    def label(self) -> str:
        return self.value


URGENCY_BUCKET_ORDER = tuple(UrgencyBucket)


def _check_days(days: object) -> None:
    if isinstance(days, Enum):
        raise TypeError(f"expected a day count, got {days!r}")


def classify_urgency(days: int | None) -> UrgencyBucket:
    """Bucket a day count. Upper bounds are inclusive: 30 days is still Within 30 Days."""
    _check_days(days)
    if days is None:
        return UrgencyBucket.BEYOND_6_MONTHS
    if days <= 30:
        return UrgencyBucket.WITHIN_30_DAYS
    if days <= 90:
        return UrgencyBucket.WITHIN_90_DAYS
    if days <= 180:
        return UrgencyBucket.WITHIN_6_MONTHS
    return UrgencyBucket.BEYOND_6_MONTHS


# ---------------------------------------------------------------------------
# Countdown tiers
# ---------------------------------------------------------------------------


class CountdownTier(Enum):
    CRITICAL = "critical"
    ELEVATED = "elevated"
    MODERATE = "moderate"
    NORMAL = "normal"


def countdown_tier(days: int | None) -> CountdownTier:
    _check_days(days)
    if days is None:
        return CountdownTier.NORMAL
    if days <= 14:
        return CountdownTier.CRITICAL
    if days <= 30:
        return CountdownTier.ELEVATED
    if days <= 90:
        return CountdownTier.MODERATE
    return CountdownTier.NORMAL


# ---------------------------------------------------------------------------
# Decision and opportunity layouts
# ---------------------------------------------------------------------------


@dataclass
class DecisionTimeline:
    groups: dict[UrgencyBucket, list[Decision]] = field(
        default_factory=lambda: {bucket: [] for bucket in URGENCY_BUCKET_ORDER}
    )
    closed: list[Decision] = field(default_factory=list)


def group_decisions_by_urgency(
    decisions: Iterable[Decision], reference: date | datetime | None = None,
) -> DecisionTimeline:
    """Active decisions grouped by how soon they lock; locked/completed ones set aside."""
    timeline = DecisionTimeline()
    for d in decisions:
        if d.status in ACTIVE_DECISION_STATUSES:
            bucket = classify_urgency(days_until(d.locks_date, reference))
            timeline.groups[bucket].append(d)
        elif d.status in CLOSED_DECISION_STATUSES:
            timeline.closed.append(d)
    return timeline


def forming_decisions(
    decisions: Iterable[Decision],
    reference: date | datetime | None = None,
    horizon_days: int = 120,
    limit: int | None = 4,
) -> list[Decision]:
    """Active decisions that lock within *horizon_days*, soonest first."""
    forming = []
    for d in decisions:
        if d.status not in ACTIVE_DECISION_STATUSES:
            continue
        days = days_until(d.locks_date, reference)
        if days is not None and days <= horizon_days:
            forming.append(d)
    forming.sort(key=lambda d: d.locks_date)
    return forming if limit is None else forming[:limit]


def partition_opportunities(opportunities: Sequence[Opportunity]) -> dict[str, list[Opportunity]]:
    return {
        "closing_soon": [o for o in opportunities if o.status == "closing_soon"],
        "open": [o for o in opportunities if o.status == "open"],
        "closed": [o for o in opportunities if o.status in ("closed", "awarded")],
    }


# ---------------------------------------------------------------------------
# Staleness
# ---------------------------------------------------------------------------


def staleness_threshold(entity_type: str) -> int:
    return STALENESS_THRESHOLDS.get(entity_type, DEFAULT_STALENESS_DAYS)


def is_stale(
    last_reviewed_at: date | datetime | None,
    entity_type: str,
    reference: date | datetime | None = None,
) -> bool:
    """Never reviewed, or reviewed longer ago than the entity type allows."""
    age = days_since(last_reviewed_at, reference)
    if age is None:
        return True
    return age > staleness_threshold(entity_type)
