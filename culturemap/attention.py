"""Attention queue: one ranked list of everything that needs action soon.

Three kinds of item are merged under a single urgency scale where a lower
number is shown first:

- decisions flagged with ``intervention_needed``: days until the decision
  locks (negative when overdue), or ``NO_DATE_URGENCY`` without a lock date;
- pending submissions: ``SUBMISSION_URGENCY``;
- stale entries: ``STALE_URGENCY``, capped to the stalest few before merging.

The merge is a stable sort, so items with equal urgency keep their input order.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime, time
from typing import Any

from culturemap.constants import (
    CLOSED_DECISION_STATUSES,
    DEFAULT_ENTITY_PATH,
    ENTITY_PATHS,
    ENTITY_TYPE_LABELS,
    SUBMISSION_TYPE_LABELS,
)
from culturemap.formatting import countdown_label, format_relative_date
from culturemap.index import ReferenceIndex
from culturemap.records import (
    ActivityEntry,
    ActivityItem,
    AttentionItem,
    Decision,
    EcosystemSnapshot,
    StaleEntry,
    Submission,
)
from culturemap.temporal import days_until, is_stale

log = logging.getLogger(__name__)

NO_DATE_URGENCY = 999
SUBMISSION_URGENCY = 50
STALE_URGENCY = 100
DEFAULT_STALE_LIMIT = 3

_TITLE_LIMIT = 80


def entity_path(entity_type: str, entity_id: str) -> str:
    return f"{ENTITY_PATHS.get(entity_type, DEFAULT_ENTITY_PATH)}?open={entity_id}"


def _truncate(text: str, limit: int = _TITLE_LIMIT, ellipsis: bool = True) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + ("…" if ellipsis else "")


def submission_title(submission: Submission) -> str:
    """Best display title for a submission, whatever shape its payload has."""
    data: dict[str, Any] = submission.payload if isinstance(submission.payload, dict) else {}

    def text(key: str) -> str | None:
        value = data.get(key)
        return value if isinstance(value, str) and value else None

    if text("title"):
        return text("title")
    if text("name"):
        return text("name")
    if text("decision"):
        return _truncate(text("decision"))
    if text("what_being_decided"):
        return _truncate(text("what_being_decided"), ellipsis=False)
    if text("organization"):
        return f"{text('organization')} — Verification"
    if submission.submission_type == "interest_signal" and text("opportunity_title"):
        return f"Interest in {text('opportunity_title')}"
    return SUBMISSION_TYPE_LABELS.get(submission.submission_type, "Submission")


# ---------------------------------------------------------------------------
# Stale entries
# ---------------------------------------------------------------------------


def _stale_candidates(snapshot: EcosystemSnapshot) -> Iterable[tuple[str, str, str, Any]]:
    for o in snapshot.organizations:
        yield "organization", o.id, o.name, o.last_reviewed_at
    for i in snapshot.investments:
        yield "investment", i.id, i.initiative_name, i.last_reviewed_at
    for d in snapshot.decisions:
        yield "decision", d.id, d.decision_title, d.last_reviewed_at
    for o in snapshot.opportunities:
        yield "opportunity", o.id, o.title, o.last_reviewed_at
    for p in snapshot.practitioners:
        yield "practitioner", p.id, p.name, p.last_reviewed_at
    for p in snapshot.precedents:
        yield "precedent", p.id, p.name, p.last_reviewed_at
    for n in snapshot.narratives:
        yield "narrative", n.id, n.source_name or _truncate(n.narrative_text, 60), n.last_reviewed_at


def _review_sort_key(entry: StaleEntry) -> tuple[int, datetime]:
    reviewed = entry.last_reviewed_at
    if reviewed is None:
        return (0, datetime.min.replace(tzinfo=UTC))
    if not isinstance(reviewed, datetime):
        reviewed = datetime.combine(reviewed, time())
    if reviewed.tzinfo is None:
        reviewed = reviewed.replace(tzinfo=UTC)
    return (1, reviewed)


def find_stale_entries(
    snapshot: EcosystemSnapshot, reference: date | datetime | None = None,
) -> list[StaleEntry]:
    """Entities due for re-verification, stalest first (never-reviewed before all others)."""
    entries = [
        StaleEntry(entity_type=kind, entity_id=entity_id, name=name, last_reviewed_at=reviewed)
        for kind, entity_id, name, reviewed in _stale_candidates(snapshot)
        if is_stale(reviewed, kind, reference)
    ]
    entries.sort(key=_review_sort_key)
    return entries


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------


def needs_intervention(decision: Decision) -> bool:
    return bool((decision.intervention_needed or "").strip()) and decision.status not in CLOSED_DECISION_STATUSES


def _reference_datetime(reference: date | datetime | None) -> datetime | None:
    if reference is None or isinstance(reference, datetime):
        return reference
    return datetime.combine(reference, time(), tzinfo=UTC)


def decision_item(decision: Decision, reference: date | datetime | None = None,
                  index: ReferenceIndex | None = None) -> AttentionItem:
    days = days_until(decision.locks_date, reference)
    stakeholder = index.display_source_name(decision) if index else decision.stakeholder_name
    return AttentionItem(
        kind="decision",
        urgency_rank=days if days is not None else NO_DATE_URGENCY,
        id=decision.id,
        title=decision.decision_title,
        subtitle=stakeholder or "",
        badge=countdown_label(days),
        action_text=(decision.intervention_needed or "").strip(),
        target_path=entity_path("decision", decision.id),
    )


def submission_item(submission: Submission) -> AttentionItem:
    return AttentionItem(
        kind="submission",
        urgency_rank=SUBMISSION_URGENCY,
        id=submission.id,
        title=submission_title(submission),
        subtitle=SUBMISSION_TYPE_LABELS.get(submission.submission_type, submission.submission_type),
        badge="Pending",
        action_text="Review submission",
        target_path=f"/submissions?open={submission.id}",
    )


def stale_item(entry: StaleEntry, reference: date | datetime | None = None) -> AttentionItem:
    return AttentionItem(
        kind="stale",
        urgency_rank=STALE_URGENCY,
        id=entry.entity_id,
        title=entry.name,
        subtitle=ENTITY_TYPE_LABELS.get(entry.entity_type, entry.entity_type),
        badge=f"Reviewed: {format_relative_date(entry.last_reviewed_at, _reference_datetime(reference))}",
        action_text="Re-verify",
        target_path=entity_path(entry.entity_type, entry.entity_id),
    )


def build_attention_queue(
    decisions: Iterable[Decision],
    submissions: Iterable[Submission],
    stale_entries: Sequence[StaleEntry],
    reference: date | datetime | None = None,
    stale_limit: int = DEFAULT_STALE_LIMIT,
    index: ReferenceIndex | None = None,
) -> list[AttentionItem]:
    items: list[AttentionItem] = [
        decision_item(d, reference, index) for d in decisions if needs_intervention(d)
    ]
    items.extend(
        submission_item(s) for s in submissions
        if s.status == "pending" and s.submission_type != "interest_signal"
    )
    items.extend(stale_item(e, reference) for e in list(stale_entries)[:max(stale_limit, 0)])

    items.sort(key=lambda item: item.urgency_rank)
    log.debug("Attention queue: %d items", len(items))
    return items


# ---------------------------------------------------------------------------
# Recent activity
# ---------------------------------------------------------------------------

DEFAULT_ACTIVITY_LIMIT = 5

# Keys in a change record that can carry the entity's display name, in priority order
_CHANGE_NAME_KEYS = ("title", "initiative_name", "name", "decision_title", "source_name")


def activity_entity_name(entry: ActivityEntry, index: ReferenceIndex) -> str:
    """Name from the logged changes, else the live record, else the bare entity type."""
    for key in _CHANGE_NAME_KEYS:
        value = entry.changes.get(key)
        if isinstance(value, str) and value:
            return value
    return index.entity_name(entry.entity_type, entry.entity_id) or entry.entity_type


def _activity_sort_key(entry: ActivityEntry) -> datetime:
    created = entry.created_at
    if created is None:
        return datetime.min.replace(tzinfo=UTC)
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    return created


def recent_activity(
    entries: Iterable[ActivityEntry], index: ReferenceIndex, limit: int = DEFAULT_ACTIVITY_LIMIT,
) -> list[ActivityItem]:
    """Newest change-log entries first, with entity names resolved."""
    latest = sorted(entries, key=_activity_sort_key, reverse=True)[:max(limit, 0)]
    return [
        ActivityItem(
            id=entry.id,
            action=entry.action,
            entity_type=entry.entity_type,
            entity_type_label=ENTITY_TYPE_LABELS.get(entry.entity_type, entry.entity_type),
            entity_id=entry.entity_id,
            name=activity_entity_name(entry, index),
            created_at=entry.created_at,
            target_path=entity_path(entry.entity_type, entry.entity_id),
        )
        for entry in latest
    ]
