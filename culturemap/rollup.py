"""Grouped sums and ratios over investments and practitioners.

All amounts are nullable; a missing amount counts as zero. Percentages of an
empty or zero total are 0.0.
"""
from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from typing import Any

from culturemap.constants import (
    ACTIVE_DECISION_STATUSES,
    AT_RISK_MARKERS,
    CATEGORY_TO_DISCIPLINE,
    GAP_LABELS,
    INVESTMENT_CATEGORY_LABELS,
    OTHER_DISCIPLINE,
    UNATTRIBUTED_SOURCE,
    UNCATEGORIZED,
)
from culturemap.index import ReferenceIndex
from culturemap.records import EcosystemSnapshot, Investment, Narrative, Practitioner

_GAP_RANK = {"high": 0, "medium": 1}


def percentage(part: float, whole: float) -> float:
    return (part / whole) * 100 if whole else 0.0


def _amount(inv: Investment) -> float:
    return inv.amount or 0


def _sum_by(investments: Iterable[Investment], key) -> dict[str, float]:
    totals: dict[str, float] = {}
    for inv in investments:
        k = key(inv)
        totals[k] = totals.get(k, 0) + _amount(inv)
    return totals


def total_amount(investments: Iterable[Investment]) -> float:
    return sum(_amount(i) for i in investments)


def aggregate_by_source(investments: Iterable[Investment]) -> list[dict[str, Any]]:
    totals = _sum_by(investments, lambda i: i.source_name or UNATTRIBUTED_SOURCE)
    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    return [{"name": name, "amount": amount} for name, amount in ranked]


def aggregate_by_category(investments: Iterable[Investment]) -> list[dict[str, Any]]:
    totals = _sum_by(investments, lambda i: i.category or UNCATEGORIZED)
    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    return [
        {"name": name, "label": INVESTMENT_CATEGORY_LABELS.get(name, name), "amount": amount}
        for name, amount in ranked
    ]


def aggregate_compounding_by_source(investments: Iterable[Investment]) -> list[dict[str, Any]]:
    """Per-source totals split into compounding / not_compounding / too_early.

    ``unknown`` has no column of its own and is counted with too_early.
    """
    groups: dict[str, dict[str, float]] = {}
    for inv in investments:
        source = inv.source_name or UNATTRIBUTED_SOURCE
        row = groups.setdefault(source, {"compounding": 0, "not_compounding": 0, "too_early": 0, "total": 0})
        amount = _amount(inv)
        row["total"] += amount
        if inv.compounding == "compounding":
            row["compounding"] += amount
        elif inv.compounding == "not_compounding":
            row["not_compounding"] += amount
        else:
            row["too_early"] += amount
    ranked = sorted(groups.items(), key=lambda kv: kv[1]["total"], reverse=True)
    return [{"name": name, **row} for name, row in ranked]


def is_at_risk(practitioner: Practitioner) -> bool:
    risk = (practitioner.risk_factors or "").lower()
    return any(marker in risk for marker in AT_RISK_MARKERS)


def build_discipline_rows(
    investments: Iterable[Investment], practitioners: Iterable[Practitioner],
) -> list[dict[str, Any]]:
    """Practitioner headcount and at-risk count against funding, per discipline.

    Investments carry no discipline, so their category is mapped onto one
    through ``CATEGORY_TO_DISCIPLINE``.
    """
    counts: Counter[str] = Counter()
    at_risk: Counter[str] = Counter()
    for p in practitioners:
        disc = p.discipline or OTHER_DISCIPLINE
        counts[disc] += 1
        if is_at_risk(p):
            at_risk[disc] += 1

    invested: dict[str, float] = {}
    for category, amount in _sum_by(investments, lambda i: i.category or UNCATEGORIZED).items():
        disc = CATEGORY_TO_DISCIPLINE.get(category, OTHER_DISCIPLINE)
        invested[disc] = invested.get(disc, 0) + amount

    disciplines = list(dict.fromkeys([*counts, *CATEGORY_TO_DISCIPLINE.values(), *invested]))
    rows = [
        {
            "name": name,
            "investment": invested.get(name, 0),
            "practitioner_count": counts.get(name, 0),
            "at_risk": at_risk.get(name, 0),
        }
        for name in disciplines
    ]
    rows = [r for r in rows if r["investment"] > 0 or r["practitioner_count"] > 0]
    rows.sort(key=lambda r: r["investment"], reverse=True)
    return rows


def compounding_breakdown(investments: Sequence[Investment]) -> dict[str, Any]:
    statuses = Counter(i.compounding for i in investments)
    total = len(investments)
    out: dict[str, Any] = {"total": total}
    for status in ("compounding", "not_compounding", "too_early"):
        out[f"{status}_count"] = statuses.get(status, 0)
        out[f"{status}_pct"] = percentage(statuses.get(status, 0), total)
    return out


def investment_summary(investments: Sequence[Investment]) -> dict[str, Any]:
    """Headline numbers for the investments page."""
    total = total_amount(investments)
    by_source = aggregate_by_source(investments)
    by_category = aggregate_by_category(investments)
    category_counts = Counter(i.category for i in investments if i.category)
    top_category = category_counts.most_common(1)[0] if category_counts else None
    lowest = by_category[-1] if by_category else None
    return {
        "total_amount": total,
        "count": len(investments),
        "compounding": compounding_breakdown(investments),
        "largest_source": by_source[0] if by_source else None,
        "top_category": {"name": top_category[0], "count": top_category[1]} if top_category else None,
        "lowest_category": lowest,
        "lowest_category_pct": percentage(lowest["amount"], total) if lowest else 0.0,
    }


def ecosystem_stats(snapshot: EcosystemSnapshot) -> dict[str, Any]:
    return {
        "ecosystem_id": snapshot.ecosystem_id,
        "org_count": len(snapshot.organizations),
        "practitioner_count": len(snapshot.practitioners),
        "total_investment": total_amount(snapshot.investments),
        "compounding_count": sum(1 for i in snapshot.investments if i.compounding == "compounding"),
        "not_compounding_count": sum(1 for i in snapshot.investments if i.compounding == "not_compounding"),
        "open_opportunities": sum(1 for o in snapshot.opportunities if o.status in ("open", "closing_soon")),
        "active_decisions": sum(1 for d in snapshot.decisions if d.status in ACTIVE_DECISION_STATUSES),
        "high_gap_narratives": sum(1 for n in snapshot.narratives if n.gap == "high"),
    }


def narrative_gaps(
    narratives: Iterable[Narrative], index: ReferenceIndex | None = None, limit: int | None = 5,
) -> list[dict[str, Any]]:
    """High then medium gap narratives, newest first within a level."""
    gaps = [n for n in narratives if n.gap in _GAP_RANK]
    # Two passes: newest first, then stable by gap level
    gaps.sort(key=lambda n: (n.date is not None, n.date or ""), reverse=True)
    gaps.sort(key=lambda n: _GAP_RANK[n.gap])
    if limit is not None:
        gaps = gaps[:limit]
    return [
        {
            "id": n.id,
            "gap": n.gap,
            "gap_label": GAP_LABELS[n.gap],
            "source_name": index.display_source_name(n) if index else n.source_name,
            "reality_text": n.reality_text,
            "date": n.date,
        }
        for n in gaps
    ]
