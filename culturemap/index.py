"""Reference index: bidirectional link maps over one ecosystem snapshot.

Relationships between records are soft: an investment, decision, opportunity
or narrative may carry an organization id, a denormalized name string, both,
or neither. The index groups records under the organizations their ids point
at, inverts the investment builds-on / led-to pointers, and resolves
precedent party lists against organization names. References that match
nothing are left out of the maps rather than raising.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from culturemap.records import (
    Decision,
    EcosystemSnapshot,
    Investment,
    Narrative,
    Opportunity,
    Organization,
    Output,
    Precedent,
    Reference,
    Resolved,
    Unresolved,
)
from culturemap.resolver import build_name_index, normalize_name, parse_involved

log = logging.getLogger(__name__)

T = TypeVar("T")


def group_by_key(records: Iterable[T], key: Callable[[T], str | None],
                 allowed: set[str] | None = None) -> dict[str, list[T]]:
    """Group records by *key*, skipping empty keys and keys outside *allowed*."""
    groups: dict[str, list[T]] = {}
    for record in records:
        k = key(record)
        if not k or (allowed is not None and k not in allowed):
            continue
        groups.setdefault(k, []).append(record)
    return groups


@dataclass(frozen=True)
class ReferenceIndex:
    organizations: tuple[Organization, ...]
    org_by_id: dict[str, Organization]
    org_name_by_id: dict[str, str]
    org_id_by_name: dict[str, str]
    investments_by_org: dict[str, list[Investment]]
    decisions_by_org: dict[str, list[Decision]]
    opportunities_by_org: dict[str, list[Opportunity]]
    narratives_by_org: dict[str, list[Narrative]]
    investment_by_id: dict[str, Investment]
    investments_building_on: dict[str, list[Investment]]
    investments_led_from: dict[str, list[Investment]]
    investments_by_precedent: dict[str, list[Investment]]
    involved_orgs_by_precedent: dict[str, list[str]]
    decision_by_id: dict[str, Decision] = field(default_factory=dict)
    outputs_by_decision: dict[str, list[Output]] = field(default_factory=dict)
    # entity type -> id -> display name
    entity_names: dict[str, dict[str, str]] = field(default_factory=dict)

    # -- counts -------------------------------------------------------------

    def connection_count(self, org_id: str) -> int:
        return (
            len(self.investments_by_org.get(org_id, ()))
            + len(self.decisions_by_org.get(org_id, ()))
            + len(self.opportunities_by_org.get(org_id, ()))
            + len(self.narratives_by_org.get(org_id, ()))
        )

    def connection_counts(self, org_id: str) -> dict[str, int]:
        return {
            "investments": len(self.investments_by_org.get(org_id, ())),
            "decisions": len(self.decisions_by_org.get(org_id, ())),
            "opportunities": len(self.opportunities_by_org.get(org_id, ())),
            "narratives": len(self.narratives_by_org.get(org_id, ())),
        }

    def most_connected(self, limit: int | None = None) -> list[Organization]:
        ranked = sorted(
            self.organizations,
            key=lambda o: (-self.connection_count(o.id), o.name.lower()),
        )
        return ranked if limit is None else ranked[:limit]

    # -- lookups ------------------------------------------------------------

    def display_source_name(self, record: Any) -> str | None:
        """The record's own name string, falling back to its organization's name."""
        for name_attr, id_attr in (("source_name", "source_org_id"),
                                   ("stakeholder_name", "stakeholder_org_id")):
            if hasattr(record, id_attr):
                name = getattr(record, name_attr, None)
                if name:
                    return name
                org_id = getattr(record, id_attr)
                return self.org_name_by_id.get(org_id) if org_id else None
        return None

    def resolve_org_reference(self, org_id: str | None, name: str | None) -> Reference | None:
        """Resolve an (id, name) pair. ``None`` means no reference was given at all."""
        if org_id and org_id in self.org_by_id:
            return Resolved(org_id)
        if name:
            matched = self.org_id_by_name.get(normalize_name(name))
            if matched:
                return Resolved(matched)
        if not org_id and not name:
            return None
        return Unresolved(name or org_id)

    def awarded_investment(self, opportunity: Opportunity) -> Investment | None:
        if not opportunity.awarded_investment_id:
            return None
        return self.investment_by_id.get(opportunity.awarded_investment_id)

    def dependency_decisions(self, decision: Decision) -> list[Decision]:
        return [self.decision_by_id[d] for d in decision.dependency_ids if d in self.decision_by_id]

    def involved_organizations(self, precedent: Precedent) -> list[Organization]:
        return [self.org_by_id[o] for o in self.involved_orgs_by_precedent.get(precedent.id, ())]

    def published_output(self, decision_id: str) -> Output | None:
        """First published output triggered by the decision, if any."""
        return next((o for o in self.outputs_by_decision.get(decision_id, ()) if o.is_published), None)

    def entity_name(self, entity_type: str, entity_id: str) -> str | None:
        return self.entity_names.get(entity_type, {}).get(entity_id)


def _entity_names(snapshot: EcosystemSnapshot, org_name_by_id: dict[str, str]) -> dict[str, dict[str, str]]:
    narratives = {}
    for n in snapshot.narratives:
        name = n.source_name or (org_name_by_id.get(n.source_org_id) if n.source_org_id else None)
        if name:
            narratives[n.id] = name
    return {
        "organization": dict(org_name_by_id),
        "practitioner": {p.id: p.name for p in snapshot.practitioners},
        "investment": {i.id: i.initiative_name for i in snapshot.investments},
        "decision": {d.id: d.decision_title for d in snapshot.decisions},
        "precedent": {p.id: p.name for p in snapshot.precedents},
        "opportunity": {o.id: o.title for o in snapshot.opportunities},
        "narrative": narratives,
        "output": {o.id: o.title for o in snapshot.outputs},
    }


def build_reference_index(snapshot: EcosystemSnapshot) -> ReferenceIndex:
    orgs = tuple(snapshot.organizations)
    org_by_id = {o.id: o for o in orgs}
    known = set(org_by_id)
    name_index = build_name_index(orgs)

    investments_by_org = group_by_key(snapshot.investments, lambda r: r.source_org_id, known)
    decisions_by_org = group_by_key(snapshot.decisions, lambda r: r.stakeholder_org_id, known)
    opportunities_by_org = group_by_key(snapshot.opportunities, lambda r: r.source_org_id, known)
    narratives_by_org = group_by_key(snapshot.narratives, lambda r: r.source_org_id, known)

    org_name_by_id = {o.id: o.name for o in orgs}

    involved: dict[str, list[str]] = {}
    for precedent in snapshot.precedents:
        ids = parse_involved(precedent.involved, name_index)
        if ids:
            involved[precedent.id] = ids

    index = ReferenceIndex(
        organizations=orgs,
        org_by_id=org_by_id,
        org_name_by_id=org_name_by_id,
        org_id_by_name=name_index,
        investments_by_org=investments_by_org,
        decisions_by_org=decisions_by_org,
        opportunities_by_org=opportunities_by_org,
        narratives_by_org=narratives_by_org,
        investment_by_id={i.id: i for i in snapshot.investments},
        investments_building_on=group_by_key(snapshot.investments, lambda r: r.builds_on_id),
        investments_led_from=group_by_key(snapshot.investments, lambda r: r.led_to_id),
        investments_by_precedent=group_by_key(snapshot.investments, lambda r: r.precedent_id),
        involved_orgs_by_precedent=involved,
        decision_by_id={d.id: d for d in snapshot.decisions},
        outputs_by_decision=group_by_key(snapshot.outputs, lambda r: r.triggered_by_decision_id),
        entity_names=_entity_names(snapshot, org_name_by_id),
    )
    log.debug(
        "Indexed ecosystem %s: %d orgs, %d investments, %d decisions",
        snapshot.ecosystem_id, len(orgs), len(snapshot.investments), len(snapshot.decisions),
    )
    return index
