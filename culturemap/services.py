"""Shared business logic for the culturemap API: snapshot loading and view assembly."""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import asdict, fields
from datetime import date, datetime
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from culturemap import models, records
from culturemap.attention import (
    DEFAULT_STALE_LIMIT,
    build_attention_queue,
    entity_path,
    find_stale_entries,
    recent_activity,
)
from culturemap.chain import chain_links, has_connections
from culturemap.constants import DECISION_STATUS_LABELS, ORG_TYPE_LABELS, OUTPUT_TYPE_LABELS
from culturemap.db import get_session
from culturemap.errors import SnapshotUnavailable
from culturemap.formatting import countdown_label, format_currency, format_date
from culturemap.index import ReferenceIndex, build_reference_index
from culturemap.resolver import extract_candidate_names, resolve_involved
from culturemap.rollup import (
    aggregate_by_category,
    aggregate_by_source,
    aggregate_compounding_by_source,
    build_discipline_rows,
    ecosystem_stats,
    investment_summary,
    narrative_gaps,
)
from culturemap.temporal import (
    URGENCY_BUCKET_ORDER,
    countdown_tier,
    days_until,
    forming_decisions,
    group_decisions_by_urgency,
    partition_opportunities,
)
from culturemap.utils import json_object

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def default_ecosystem_id() -> str | None:
    return os.environ.get("CULTUREMAP_ECOSYSTEM_ID") or None


def stale_limit() -> int:
    raw = os.environ.get("CULTUREMAP_STALE_LIMIT")
    if not raw:
        return DEFAULT_STALE_LIMIT
    try:
        return max(int(raw), 0)
    except ValueError:
        log.warning("Ignoring non-integer CULTUREMAP_STALE_LIMIT=%r", raw)
        return DEFAULT_STALE_LIMIT


def resolve_ecosystem_id(session: Session, requested: str | None = None) -> str | None:
    """The requested id, else the configured default, else the oldest ecosystem."""
    if requested:
        return requested
    configured = default_ecosystem_id()
    if configured:
        return configured
    return session.execute(
        select(models.Ecosystem.id).order_by(models.Ecosystem.created_at, models.Ecosystem.id)
    ).scalars().first()


# ---------------------------------------------------------------------------
# Row -> record conversion
# ---------------------------------------------------------------------------


def _to_record(row: Any, record_cls: type, **overrides: Any) -> Any:
    values = {f.name: getattr(row, f.name) for f in fields(record_cls) if hasattr(row, f.name)}
    values.update(overrides)
    return record_cls(**values)


def _decision_record(row: models.Decision) -> records.Decision:
    deps = tuple(link.depends_on_id for link in row.dependency_links)
    return _to_record(row, records.Decision, dependency_ids=deps)


def _narrative_record(row: models.Narrative) -> records.Narrative:
    return _to_record(row, records.Narrative, date=row.narrative_date)


def _submission_record(row: models.Submission) -> records.Submission:
    return _to_record(row, records.Submission, payload=json_object(row.data_json))


def _output_record(row: models.Output) -> records.Output:
    refs = tuple(
        records.OutputReference(r.reference_type, r.reference_id, r.context_note) for r in row.references
    )
    return _to_record(row, records.Output, references=refs)


def _activity_record(row: models.ActivityLog) -> records.ActivityEntry:
    return _to_record(row, records.ActivityEntry, changes=json_object(row.changes_json))


# record set name -> (ORM model, row converter, loader options)
RECORD_SETS: dict[str, tuple[type, Callable[[Any], Any], tuple]] = {
    "organizations": (models.Organization, lambda r: _to_record(r, records.Organization), ()),
    "practitioners": (models.Practitioner, lambda r: _to_record(r, records.Practitioner), ()),
    "investments": (models.Investment, lambda r: _to_record(r, records.Investment), ()),
    "decisions": (models.Decision, _decision_record, (selectinload(models.Decision.dependency_links),)),
    "precedents": (models.Precedent, lambda r: _to_record(r, records.Precedent), ()),
    "narratives": (models.Narrative, _narrative_record, ()),
    "opportunities": (models.Opportunity, lambda r: _to_record(r, records.Opportunity), ()),
    "submissions": (models.Submission, _submission_record, ()),
    "outputs": (models.Output, _output_record, (selectinload(models.Output.references),)),
    "activity": (models.ActivityLog, _activity_record, ()),
}


def fetch_record_set(session: Session, name: str, ecosystem_id: str) -> tuple:
    """Read one record set for an ecosystem, in insertion order."""
    model, convert, options = RECORD_SETS[name]
    query = (
        select(model)
        .where(model.ecosystem_id == ecosystem_id)
        .order_by(model.created_at, model.id)
    )
    if options:
        query = query.options(*options)
    try:
        rows = session.execute(query).scalars().all()
    except SQLAlchemyError as exc:
        log.warning("Fetching %s for ecosystem %s failed: %s", name, ecosystem_id, exc)
        raise SnapshotUnavailable(name, str(exc)) from exc
    return tuple(convert(row) for row in rows)


def fetch_snapshot(session: Session, ecosystem_id: str) -> records.EcosystemSnapshot:
    """Read every record set through one session."""
    return records.EcosystemSnapshot(
        ecosystem_id=ecosystem_id,
        **{name: fetch_record_set(session, name, ecosystem_id) for name in RECORD_SETS},
    )


async def load_snapshot(
    ecosystem_id: str, session_factory: Callable[[], Session] = get_session,
) -> records.EcosystemSnapshot:
    """Fetch every record set concurrently, each in its own session, then assemble.

    The reads are independent; the first failure propagates as
    ``SnapshotUnavailable``.
    """
    def fetch(name: str) -> tuple:
        session = session_factory()
        try:
            return fetch_record_set(session, name, ecosystem_id)
        finally:
            session.close()

    names = list(RECORD_SETS)
    results = await asyncio.gather(*(asyncio.to_thread(fetch, name) for name in names))
    return records.EcosystemSnapshot(ecosystem_id=ecosystem_id, **dict(zip(names, results)))


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def record_dict(record: Any) -> dict[str, Any]:
    return asdict(record)


def organization_summary(org: records.Organization, index: ReferenceIndex) -> dict[str, Any]:
    return {
        "id": org.id, "name": org.name, "org_type": org.org_type,
        "org_type_label": ORG_TYPE_LABELS.get(org.org_type, org.org_type),
        "mandate": org.mandate, "controls": org.controls,
        "connection_count": index.connection_count(org.id),
        "connections": index.connection_counts(org.id),
    }


def investment_summary_row(inv: records.Investment, index: ReferenceIndex) -> dict[str, Any]:
    return {
        "id": inv.id, "initiative_name": inv.initiative_name,
        "source_name": index.display_source_name(inv),
        "amount": inv.amount, "amount_display": format_currency(inv.amount),
        "status": inv.status, "compounding": inv.compounding, "category": inv.category,
    }


def decision_summary(
    decision: records.Decision, index: ReferenceIndex, reference: date | datetime | None = None,
) -> dict[str, Any]:
    days = days_until(decision.locks_date, reference)
    output = index.published_output(decision.id)
    return {
        "id": decision.id, "decision_title": decision.decision_title,
        "stakeholder_name": index.display_source_name(decision),
        "status": decision.status,
        "status_label": DECISION_STATUS_LABELS.get(decision.status, decision.status),
        "locks_date": decision.locks_date,
        "locks_date_display": format_date(decision.locks_date),
        "days_remaining": days,
        "countdown": countdown_label(days),
        "countdown_tier": countdown_tier(days).value,
        "intervention_needed": decision.intervention_needed,
        "depends_on": [
            {"id": d.id, "decision_title": d.decision_title}
            for d in index.dependency_decisions(decision)
        ],
        "output_title": output.title if output else None,
    }


def opportunity_summary(
    opp: records.Opportunity, index: ReferenceIndex, reference: date | datetime | None = None,
) -> dict[str, Any]:
    days = days_until(opp.deadline, reference)
    awarded = index.awarded_investment(opp)
    return {
        "id": opp.id, "title": opp.title,
        "source_name": index.display_source_name(opp),
        "opportunity_type": opp.opportunity_type, "status": opp.status,
        "amount_min": opp.amount_min, "amount_max": opp.amount_max,
        "deadline": opp.deadline,
        "days_remaining": days,
        "countdown_tier": countdown_tier(days).value,
        "awarded_investment": (
            {"id": awarded.id, "initiative_name": awarded.initiative_name} if awarded else None
        ),
    }


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def attention_view(
    snapshot: records.EcosystemSnapshot, reference: date | datetime | None = None,
    limit: int | None = None, index: ReferenceIndex | None = None,
) -> list[dict[str, Any]]:
    index = index or build_reference_index(snapshot)
    queue = build_attention_queue(
        snapshot.decisions, snapshot.submissions, find_stale_entries(snapshot, reference),
        reference=reference,
        stale_limit=stale_limit() if limit is None else limit,
        index=index,
    )
    return [record_dict(item) for item in queue]


def dashboard_view(
    snapshot: records.EcosystemSnapshot, reference: date | datetime | None = None,
) -> dict[str, Any]:
    index = build_reference_index(snapshot)
    return {
        "stats": ecosystem_stats(snapshot),
        "forming_decisions": [
            decision_summary(d, index, reference) for d in forming_decisions(snapshot.decisions, reference)
        ],
        "narrative_gaps": narrative_gaps(snapshot.narratives, index),
        "attention": attention_view(snapshot, reference, index=index),
        "recent_activity": [record_dict(item) for item in recent_activity(snapshot.activity, index)],
    }


def organizations_view(snapshot: records.EcosystemSnapshot) -> list[dict[str, Any]]:
    index = build_reference_index(snapshot)
    return [organization_summary(o, index) for o in index.most_connected()]


def organization_view(
    snapshot: records.EcosystemSnapshot, org_id: str, reference: date | datetime | None = None,
) -> dict[str, Any] | None:
    index = build_reference_index(snapshot)
    org = index.org_by_id.get(org_id)
    if org is None:
        return None
    precedents = [
        {"id": p.id, "name": p.name}
        for p in snapshot.precedents
        if org_id in index.involved_orgs_by_precedent.get(p.id, ())
    ]
    return {
        **organization_summary(org, index),
        "organization": record_dict(org),
        "investments": [investment_summary_row(i, index) for i in index.investments_by_org.get(org_id, [])],
        "decisions": [decision_summary(d, index, reference) for d in index.decisions_by_org.get(org_id, [])],
        "opportunities": [opportunity_summary(o, index, reference) for o in index.opportunities_by_org.get(org_id, [])],
        "narratives": [
            {"id": n.id, "gap": n.gap, "narrative_text": n.narrative_text}
            for n in index.narratives_by_org.get(org_id, [])
        ],
        "precedents": precedents,
    }


def investment_view(snapshot: records.EcosystemSnapshot, investment_id: str) -> dict[str, Any] | None:
    index = build_reference_index(snapshot)
    focal = index.investment_by_id.get(investment_id)
    if focal is None:
        return None
    links = chain_links(focal, index.investment_by_id, index.investments_building_on)
    return {
        "investment": investment_summary_row(focal, index),
        "has_connections": has_connections(links),
        "chain": [{"role": link.role, **investment_summary_row(link.investment, index)} for link in links],
    }


def precedent_view(snapshot: records.EcosystemSnapshot, precedent_id: str) -> dict[str, Any] | None:
    index = build_reference_index(snapshot)
    precedent = next((p for p in snapshot.precedents if p.id == precedent_id), None)
    if precedent is None:
        return None
    involved = []
    for ref in resolve_involved(precedent.involved, index.org_id_by_name):
        if isinstance(ref, records.Resolved):
            involved.append({"name": index.org_name_by_id[ref.id], "organization_id": ref.id, "resolved": True})
        else:
            involved.append({"name": ref.raw_text, "organization_id": None, "resolved": False})
    return {
        "precedent": record_dict(precedent),
        "involved": involved,
        "connects_to_names": extract_candidate_names(precedent.connects_to),
        "investments": [
            investment_summary_row(i, index) for i in index.investments_by_precedent.get(precedent.id, [])
        ],
    }


def decision_timeline_view(
    snapshot: records.EcosystemSnapshot, reference: date | datetime | None = None,
) -> dict[str, Any]:
    index = build_reference_index(snapshot)
    timeline = group_decisions_by_urgency(snapshot.decisions, reference)
    return {
        "groups": [
            {
                "bucket": bucket.label,
                "decisions": [decision_summary(d, index, reference) for d in timeline.groups[bucket]],
            }
            for bucket in URGENCY_BUCKET_ORDER
        ],
        "closed": [decision_summary(d, index, reference) for d in timeline.closed],
    }


def opportunity_view(
    snapshot: records.EcosystemSnapshot, reference: date | datetime | None = None,
) -> dict[str, list[dict[str, Any]]]:
    index = build_reference_index(snapshot)
    return {
        section: [opportunity_summary(o, index, reference) for o in opps]
        for section, opps in partition_opportunities(snapshot.opportunities).items()
    }


def landscape_view(snapshot: records.EcosystemSnapshot) -> dict[str, Any]:
    """Investment rollups, with source names filled in from organizations where missing."""
    index = build_reference_index(snapshot)
    investments = [
        inv if inv.source_name else _with_source_name(inv, index.display_source_name(inv))
        for inv in snapshot.investments
    ]
    return {
        "summary": investment_summary(investments),
        "by_source": aggregate_by_source(investments),
        "by_category": aggregate_by_category(investments),
        "compounding_by_source": aggregate_compounding_by_source(investments),
        "disciplines": build_discipline_rows(investments, snapshot.practitioners),
    }


def _with_source_name(inv: records.Investment, name: str | None) -> records.Investment:
    if not name:
        return inv
    return records.Investment(**{**asdict(inv), "source_name": name})


def stale_view(
    snapshot: records.EcosystemSnapshot, reference: date | datetime | None = None,
) -> list[dict[str, Any]]:
    return [record_dict(e) for e in find_stale_entries(snapshot, reference)]


def output_summary(output: records.Output, index: ReferenceIndex) -> dict[str, Any]:
    decision = index.decision_by_id.get(output.triggered_by_decision_id or "")
    return {
        "id": output.id, "title": output.title,
        "output_type": output.output_type,
        "output_type_label": OUTPUT_TYPE_LABELS.get(output.output_type, output.output_type),
        "summary": output.summary,
        "is_published": output.is_published,
        "published_at": output.published_at,
        "delivery_status": output.delivery_status,
        "triggered_by": (
            {"id": decision.id, "decision_title": decision.decision_title} if decision else None
        ),
        "stakeholder_name": (
            index.org_name_by_id.get(output.target_stakeholder_id) if output.target_stakeholder_id else None
        ),
        "references": [
            {
                "reference_type": ref.reference_type,
                "reference_id": ref.reference_id,
                "name": index.entity_name(ref.reference_type, ref.reference_id),
                "context_note": ref.context_note,
                "target_path": entity_path(ref.reference_type, ref.reference_id),
            }
            for ref in output.references
        ],
    }


def outputs_view(snapshot: records.EcosystemSnapshot) -> dict[str, list[dict[str, Any]]]:
    """Outputs newest first, split into published and drafts."""
    index = build_reference_index(snapshot)
    newest = list(reversed(snapshot.outputs))
    return {
        "published": [output_summary(o, index) for o in newest if o.is_published],
        "drafts": [output_summary(o, index) for o in newest if not o.is_published],
    }
