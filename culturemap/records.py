"""Immutable in-memory records the relationship engine computes over.

Rows are read from storage once per request and converted into these frozen
dataclasses (see ``services.fetch_snapshot``). Nothing in the engine mutates
them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Union


def _require(record: Any, *names: str) -> None:
    for name in names:
        if not getattr(record, name):
            raise ValueError(f"{type(record).__name__} requires a non-empty {name!r}")


# ---------------------------------------------------------------------------
# Persisted entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Organization:
    id: str
    name: str
    org_type: str = "nonprofit"
    mandate: str | None = None
    controls: str | None = None
    constraints: str | None = None
    decision_cycle: str | None = None
    website: str | None = None
    notes: str | None = None
    last_reviewed_at: datetime | None = None

    def __post_init__(self):
        _require(self, "id", "name")


@dataclass(frozen=True)
class Practitioner:
    id: str
    name: str
    discipline: str | None = None
    tenure: str | None = None
    income_sources: str | None = None
    retention_factors: str | None = None
    risk_factors: str | None = None
    institutional_affiliations: str | None = None
    notes: str | None = None
    last_reviewed_at: datetime | None = None

    def __post_init__(self):
        _require(self, "id", "name")


@dataclass(frozen=True)
class Investment:
    id: str
    initiative_name: str
    source_org_id: str | None = None
    source_name: str | None = None
    amount: float | None = None
    period: str | None = None
    category: str | None = None
    status: str = "active"
    description: str | None = None
    outcome: str | None = None
    compounding: str = "unknown"
    compounding_notes: str | None = None
    builds_on_id: str | None = None
    led_to_id: str | None = None
    precedent_id: str | None = None
    last_reviewed_at: datetime | None = None

    def __post_init__(self):
        _require(self, "id", "initiative_name")


@dataclass(frozen=True)
class Decision:
    id: str
    decision_title: str
    stakeholder_org_id: str | None = None
    stakeholder_name: str | None = None
    description: str | None = None
    deliberation_start: date | None = None
    deliberation_end: date | None = None
    locks_date: date | None = None
    status: str = "upcoming"
    dependencies: str | None = None
    dependency_ids: tuple[str, ...] = ()
    intervention_needed: str | None = None
    outcome: str | None = None
    is_recurring: bool = False
    recurrence_pattern: str | None = None
    last_reviewed_at: datetime | None = None

    def __post_init__(self):
        _require(self, "id", "decision_title")


@dataclass(frozen=True)
class Precedent:
    id: str
    name: str
    period: str | None = None
    involved: str | None = None
    description: str | None = None
    what_produced: str | None = None
    what_worked: str | None = None
    what_didnt: str | None = None
    connects_to: str | None = None
    takeaway: str | None = None
    investment_id: str | None = None
    last_reviewed_at: datetime | None = None

    def __post_init__(self):
        _require(self, "id", "name")


@dataclass(frozen=True)
class Narrative:
    id: str
    narrative_text: str
    source_org_id: str | None = None
    source_name: str | None = None
    source_type: str = "institutional"
    date: date | None = None
    reality_text: str | None = None
    gap: str = "aligned"
    evidence_notes: str | None = None
    source_url: str | None = None
    significance: str | None = None
    last_reviewed_at: datetime | None = None

    def __post_init__(self):
        _require(self, "id")


@dataclass(frozen=True)
class Opportunity:
    id: str
    title: str
    source_org_id: str | None = None
    source_name: str | None = None
    opportunity_type: str = "grant"
    amount_min: float | None = None
    amount_max: float | None = None
    deadline: date | None = None
    status: str = "open"
    awarded_to: str | None = None
    awarded_investment_id: str | None = None
    last_reviewed_at: datetime | None = None

    def __post_init__(self):
        _require(self, "id", "title")


@dataclass(frozen=True)
class Submission:
    id: str
    submission_type: str
    payload: dict[str, Any] = field(default_factory=dict)
    submitter_name: str | None = None
    submitter_email: str | None = None
    submitter_org: str | None = None
    status: str = "pending"
    created_at: datetime | None = None

    def __post_init__(self):
        _require(self, "id", "submission_type")


@dataclass(frozen=True)
class OutputReference:
    reference_type: str
    reference_id: str
    context_note: str | None = None


@dataclass(frozen=True)
class Output:
    id: str
    title: str
    output_type: str = "field_note"
    summary: str | None = None
    content: str | None = None
    target_stakeholder_id: str | None = None
    triggered_by_decision_id: str | None = None
    is_published: bool = False
    published_at: datetime | None = None
    delivery_status: str = "draft"
    delivered_at: datetime | None = None
    delivered_to_contact: str | None = None
    delivery_notes: str | None = None
    references: tuple[OutputReference, ...] = ()
    created_at: datetime | None = None

    def __post_init__(self):
        _require(self, "id", "title")


@dataclass(frozen=True)
class ActivityEntry:
    """One row of the ecosystem's change log."""
    id: str
    action: str
    entity_type: str
    entity_id: str
    changes: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Derived records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StaleEntry:
    entity_type: str
    entity_id: str
    name: str
    last_reviewed_at: datetime | None = None


@dataclass(frozen=True)
class AttentionItem:
    kind: str  # "decision" | "submission" | "stale"
    urgency_rank: int
    id: str
    title: str
    subtitle: str = ""
    badge: str = ""
    action_text: str = ""
    target_path: str = ""


@dataclass(frozen=True)
class ActivityItem:
    id: str
    action: str
    entity_type: str
    entity_type_label: str
    entity_id: str
    name: str
    created_at: datetime | None = None
    target_path: str = ""


@dataclass(frozen=True)
class Resolved:
    """A soft reference that matched an entity id."""
    id: str


@dataclass(frozen=True)
class Unresolved:
    """A soft reference present in the data that matched nothing."""
    raw_text: str


Reference = Union[Resolved, Unresolved]


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EcosystemSnapshot:
    """Every record set for one ecosystem, read once per request."""
    ecosystem_id: str
    organizations: tuple[Organization, ...] = ()
    practitioners: tuple[Practitioner, ...] = ()
    investments: tuple[Investment, ...] = ()
    decisions: tuple[Decision, ...] = ()
    precedents: tuple[Precedent, ...] = ()
    narratives: tuple[Narrative, ...] = ()
    opportunities: tuple[Opportunity, ...] = ()
    submissions: tuple[Submission, ...] = ()
    outputs: tuple[Output, ...] = ()
    activity: tuple[ActivityEntry, ...] = ()
