"""Pydantic response schemas for the culturemap API."""
from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel


class AttentionItemOut(BaseModel):
    kind: str
    urgency_rank: int
    id: str
    title: str
    subtitle: str | None = None
    badge: str
    action_text: str
    target_path: str


class StaleEntryOut(BaseModel):
    entity_type: str
    entity_id: str
    name: str
    last_reviewed_at: dt.datetime | None = None


class StatsOut(BaseModel):
    ecosystem_id: str
    org_count: int
    practitioner_count: int
    total_investment: float
    compounding_count: int
    not_compounding_count: int
    open_opportunities: int
    active_decisions: int
    high_gap_narratives: int


class DecisionRef(BaseModel):
    id: str
    decision_title: str


class DecisionOut(BaseModel):
    id: str
    decision_title: str
    stakeholder_name: str | None = None
    status: str
    status_label: str
    locks_date: dt.date | None = None
    locks_date_display: str
    days_remaining: int | None = None
    countdown: str
    countdown_tier: str
    intervention_needed: str | None = None
    depends_on: list[DecisionRef] = []
    output_title: str | None = None


class NarrativeGapOut(BaseModel):
    id: str
    gap: str
    gap_label: str
    source_name: str | None = None
    reality_text: str | None = None
    date: dt.date | None = None


class ActivityItemOut(BaseModel):
    id: str
    action: str
    entity_type: str
    entity_type_label: str
    entity_id: str
    name: str
    created_at: dt.datetime | None = None
    target_path: str


class DashboardOut(BaseModel):
    stats: StatsOut
    forming_decisions: list[DecisionOut]
    narrative_gaps: list[NarrativeGapOut]
    attention: list[AttentionItemOut]
    recent_activity: list[ActivityItemOut] = []


class OrganizationSummary(BaseModel):
    id: str
    name: str
    org_type: str
    org_type_label: str
    mandate: str | None = None
    controls: str | None = None
    connection_count: int
    connections: dict[str, int]


class InvestmentRow(BaseModel):
    id: str
    initiative_name: str
    source_name: str | None = None
    amount: float | None = None
    amount_display: str
    status: str
    compounding: str
    category: str | None = None


class ChainLinkOut(InvestmentRow):
    role: str


class ChainOut(BaseModel):
    investment: InvestmentRow
    has_connections: bool
    chain: list[ChainLinkOut]


class AwardedInvestment(BaseModel):
    id: str
    initiative_name: str


class OpportunityOut(BaseModel):
    id: str
    title: str
    source_name: str | None = None
    opportunity_type: str
    status: str
    amount_min: float | None = None
    amount_max: float | None = None
    deadline: dt.date | None = None
    days_remaining: int | None = None
    countdown_tier: str
    awarded_investment: AwardedInvestment | None = None


class OpportunitiesOut(BaseModel):
    closing_soon: list[OpportunityOut]
    open: list[OpportunityOut]
    closed: list[OpportunityOut]


class NarrativeRef(BaseModel):
    id: str
    gap: str
    narrative_text: str


class PrecedentRef(BaseModel):
    id: str
    name: str


class OrganizationDetail(OrganizationSummary):
    organization: dict[str, Any]
    investments: list[InvestmentRow] = []
    decisions: list[DecisionOut] = []
    opportunities: list[OpportunityOut] = []
    narratives: list[NarrativeRef] = []
    precedents: list[PrecedentRef] = []


class InvolvedOrg(BaseModel):
    name: str
    organization_id: str | None = None
    resolved: bool


class PrecedentDetail(BaseModel):
    precedent: dict[str, Any]
    involved: list[InvolvedOrg]
    connects_to_names: list[str]
    investments: list[InvestmentRow]


class TimelineGroup(BaseModel):
    bucket: str
    decisions: list[DecisionOut]


class TimelineOut(BaseModel):
    groups: list[TimelineGroup]
    closed: list[DecisionOut]


class LandscapeOut(BaseModel):
    summary: dict[str, Any]
    by_source: list[dict[str, Any]]
    by_category: list[dict[str, Any]]
    compounding_by_source: list[dict[str, Any]]
    disciplines: list[dict[str, Any]]


class OutputReferenceOut(BaseModel):
    reference_type: str
    reference_id: str
    name: str | None = None
    context_note: str | None = None
    target_path: str


class OutputOut(BaseModel):
    id: str
    title: str
    output_type: str
    output_type_label: str
    summary: str | None = None
    is_published: bool
    published_at: dt.datetime | None = None
    delivery_status: str
    triggered_by: DecisionRef | None = None
    stakeholder_name: str | None = None
    references: list[OutputReferenceOut] = []


class OutputsOut(BaseModel):
    published: list[OutputOut]
    drafts: list[OutputOut]

class ImportResult(BaseModel):
    ecosystem_id: str
    total_imported: int
    duplicates_updated: int
    skipped: int
    by_sheet: dict[str, int]
