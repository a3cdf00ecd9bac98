from __future__ import annotations

import logging
import re
from datetime import date, datetime
from pathlib import Path

import openpyxl
from sqlalchemy import Boolean, Date, DateTime, Float, inspect, select
from sqlalchemy.orm import Session

from culturemap import models
from culturemap.constants import (
    COMPOUNDING_STATUSES,
    DECISION_STATUSES,
    DELIVERY_STATUSES,
    GAP_LEVELS,
    INVESTMENT_CATEGORIES,
    INVESTMENT_STATUSES,
    NARRATIVE_SOURCE_TYPES,
    OPPORTUNITY_STATUSES,
    OPPORTUNITY_TYPES,
    ORG_TYPES,
    OUTPUT_TYPES,
)
from culturemap.resolver import build_name_index, normalize_name
from culturemap.schemas import ImportResult

log = logging.getLogger(__name__)


def _s(value: object) -> str | None:
    """Safely coerce cell value to stripped string, None if blank."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _col(row: tuple, idx: int) -> object:
    """Safely get a column value from a row tuple."""
    return row[idx] if idx < len(row) else None


def _f(value: object) -> float | None:
    """Safely coerce cell value to float, None if missing."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace("$", "").replace(",", "").strip()
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _b(value: object) -> bool:
    """Safely coerce cell value to bool."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "y")


def _d(value: object) -> date | None:
    """Safely coerce cell value to a date; ISO strings are accepted."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = _s(value)
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _dt(value: object) -> datetime | None:
    """Safely coerce cell value to a datetime; bare dates become midnight."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = _s(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        parsed = _d(text)
        return datetime(parsed.year, parsed.month, parsed.day) if parsed else None


# ---------------------------------------------------------------------------
# Sheet layout
# ---------------------------------------------------------------------------

# sheet key -> (model, field holding the display name)
# Organizations first so later sheets can link source names to them.
SHEETS: dict[str, tuple[type, str]] = {
    "organizations": (models.Organization, "name"),
    "practitioners": (models.Practitioner, "name"),
    "investments": (models.Investment, "initiative_name"),
    "decisions": (models.Decision, "decision_title"),
    "precedents": (models.Precedent, "name"),
    "narratives": (models.Narrative, "narrative_text"),
    "opportunities": (models.Opportunity, "title"),
    "outputs": (models.Output, "title"),
}

# Friendlier header spellings -> model attribute
_HEADER_ALIASES = {
    "investments": {"initiative": "initiative_name", "source": "source_name", "funder": "source_name"},
    "decisions": {"title": "decision_title", "stakeholder": "stakeholder_name", "locks": "locks_date"},
    "narratives": {"narrative": "narrative_text", "reality": "reality_text", "date": "narrative_date",
                   "source": "source_name"},
    "opportunities": {"source": "source_name", "type": "opportunity_type"},
    "organizations": {"type": "org_type"},
    "outputs": {"type": "output_type", "published": "is_published"},
}

# Enumerated columns; unrecognised cells fall back to the column default
_ENUM_COLUMNS: dict[str, dict[str, tuple[str, ...]]] = {
    "organizations": {"org_type": ORG_TYPES},
    "investments": {
        "status": INVESTMENT_STATUSES,
        "category": INVESTMENT_CATEGORIES,
        "compounding": COMPOUNDING_STATUSES,
    },
    "decisions": {"status": DECISION_STATUSES},
    "narratives": {"source_type": NARRATIVE_SOURCE_TYPES, "gap": GAP_LEVELS},
    "opportunities": {"opportunity_type": OPPORTUNITY_TYPES, "status": OPPORTUNITY_STATUSES},
    "outputs": {"output_type": OUTPUT_TYPES, "delivery_status": DELIVERY_STATUSES},
}

# Never written from a sheet
_PROTECTED = {"ecosystem_id", "created_at"}

# Columns that carry a display name whose org id can be filled in by name
_SOURCE_LINKS = {
    "investments": ("source_name", "source_org_id"),
    "decisions": ("stakeholder_name", "stakeholder_org_id"),
    "narratives": ("source_name", "source_org_id"),
    "opportunities": ("source_name", "source_org_id"),
}


def _header_key(value: object) -> str:
    return re.sub(r"[^a-z0-9]+", "_", (_s(value) or "").lower()).strip("_")


def _sheet_key(sheet_name: str) -> str | None:
    key = _header_key(sheet_name)
    if key in SHEETS:
        return key
    if f"{key}s" in SHEETS:
        return f"{key}s"
    if key.endswith("y") and f"{key[:-1]}ies" in SHEETS:
        return f"{key[:-1]}ies"
    return None


def _enum(field: str, allowed: tuple[str, ...]):
    """Coercer for an enumerated column: "Not Compounding" -> "not_compounding"."""
    def coerce(value: object) -> str | None:
        key = _header_key(value)
        if not key:
            return None
        if key in allowed:
            return key
        log.debug("Unrecognised %s %r; using the default", field, value)
        return None
    return coerce


def _coercers(model: type, sheet_key: str | None = None) -> dict[str, object]:
    """Attribute name -> cell coercion function, from the mapped column types."""
    enums = _ENUM_COLUMNS.get(sheet_key, {})
    out = {}
    for attr in inspect(model).column_attrs:
        col_type = attr.columns[0].type
        if attr.key in enums:
            out[attr.key] = _enum(attr.key, enums[attr.key])
        elif isinstance(col_type, DateTime):
            out[attr.key] = _dt
        elif isinstance(col_type, Date):
            out[attr.key] = _d
        elif isinstance(col_type, Boolean):
            out[attr.key] = _b
        elif isinstance(col_type, Float):
            out[attr.key] = _f
        else:
            out[attr.key] = _s
    return out


def _parse_sheet(ws, sheet_key: str) -> tuple[list[dict], int, list[str | None]]:
    """Rows as attribute dicts keyed by matched headers.

    Returns (rows, skipped count, depends_on cells aligned with rows).
    """
    model, name_field = SHEETS[sheet_key]
    coercers = _coercers(model, sheet_key)
    aliases = _HEADER_ALIASES.get(sheet_key, {})

    rows = ws.iter_rows(values_only=True)
    header = next(rows, None)
    if not header:
        return [], 0, []
    columns: dict[str, int] = {}
    depends_idx = None
    for idx, cell in enumerate(header):
        key = _header_key(cell)
        if key in ("depends_on", "dependency_ids") and sheet_key == "decisions":
            depends_idx = idx
            continue
        key = aliases.get(key, key)
        if key in coercers and key not in _PROTECTED and key not in columns:
            columns[key] = idx
    if name_field not in columns:
        log.warning("Sheet %r has no %r column; skipping it", ws.title, name_field)
        return [], 0, []

    out: list[dict] = []
    depends: list[str | None] = []
    skipped = 0
    for line, row in enumerate(rows, start=2):
        if not row or not _s(_col(row, columns[name_field])):
            if row and any(v is not None for v in row):
                log.debug("Skipping %s row %d: no %s", sheet_key, line, name_field)
                skipped += 1
            continue
        data = {}
        for field, idx in columns.items():
            value = coercers[field](_col(row, idx))
            if value is not None:
                data[field] = value
        out.append(data)
        depends.append(_s(_col(row, depends_idx)) if depends_idx is not None else None)
    return out, skipped, depends


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def ensure_ecosystem(session: Session, ecosystem_id: str | None = None, name: str | None = None) -> models.Ecosystem:
    """Return the ecosystem with *ecosystem_id*, creating it when missing."""
    if ecosystem_id:
        existing = session.get(models.Ecosystem, ecosystem_id)
        if existing is not None:
            return existing
    eco_id = ecosystem_id or models.new_id()
    name = name or eco_id
    slug = _slug(name) or eco_id
    if session.execute(select(models.Ecosystem.id).where(models.Ecosystem.slug == slug)).first():
        slug = f"{slug}-{eco_id[:8]}"
    eco = models.Ecosystem(id=eco_id, name=name, slug=slug)
    session.add(eco)
    session.flush()
    log.info("Created ecosystem %s (%s)", eco.name, eco.id)
    return eco


class _Existing:
    """Lookup of a sheet's existing rows by id and by case-folded name."""

    def __init__(self, session: Session, model: type, name_field: str, ecosystem_id: str):
        self.name_field = name_field
        self.by_id: dict[str, object] = {}
        self.by_name: dict[str, object] = {}
        rows = session.execute(select(model).where(model.ecosystem_id == ecosystem_id)).scalars().all()
        for row in rows:
            self.add(row)

    def add(self, row) -> None:
        self.by_id[row.id] = row
        key = normalize_name(getattr(row, self.name_field))
        if key:
            self.by_name.setdefault(key, row)

    def find(self, data: dict):
        if data.get("id"):
            return self.by_id.get(data["id"])
        return self.by_name.get(normalize_name(data[self.name_field]))


def _upsert(session: Session, model: type, data: dict, existing: _Existing, ecosystem_id: str) -> tuple[bool, object]:
    """Insert new or update existing row. Returns (is_new, row)."""
    if data.get("id") and data["id"] not in existing.by_id:
        other = session.get(model, data["id"])
        if other is not None:
            log.warning(
                "%s id %s belongs to ecosystem %s; matching by name instead",
                model.__tablename__, data["id"], other.ecosystem_id,
            )
            data = {k: v for k, v in data.items() if k != "id"}
    row = existing.find(data)
    if row is not None:
        for field, value in data.items():
            if field != "id":
                setattr(row, field, value)
        return False, row
    row = model(ecosystem_id=ecosystem_id, **data)
    if not row.id:
        row.id = models.new_id()
    session.add(row)
    existing.add(row)
    return True, row


def _link_sources(rows: list, name_attr: str, id_attr: str, org_ids: dict[str, str]) -> None:
    for row in rows:
        if getattr(row, id_attr):
            continue
        org_id = org_ids.get(normalize_name(getattr(row, name_attr)))
        if org_id:
            setattr(row, id_attr, org_id)


def _link_dependencies(session: Session, decisions: list, depends: list[str | None], existing: _Existing) -> int:
    """Resolve comma-separated decision ids or titles into dependency links."""
    linked = 0
    for decision, cell in zip(decisions, depends):
        if not cell:
            continue
        current = {link.depends_on_id for link in decision.dependency_links}
        for token in cell.split(","):
            token = token.strip()
            target = existing.by_id.get(token) or existing.by_name.get(normalize_name(token))
            if target is None or target.id == decision.id:
                log.debug("Decision %r: dependency %r not found", decision.decision_title, token)
                continue
            if target.id in current:
                continue
            decision.dependency_links.append(
                models.DecisionDependency(decision_id=decision.id, depends_on_id=target.id)
            )
            current.add(target.id)
            linked += 1
    return linked


def import_workbook(
    file_path: str | Path, session: Session,
    ecosystem_id: str | None = None, ecosystem_name: str | None = None,
) -> ImportResult:
    """Import every recognised sheet of an ecosystem workbook. Upserts by id, else by name."""
    file_path = Path(file_path)
    wb = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
    parsed: dict[str, tuple[list[dict], int, list[str | None]]] = {}
    try:
        for sheet_name in wb.sheetnames:
            key = _sheet_key(sheet_name)
            if key is None:
                log.debug("Ignoring sheet %r", sheet_name)
                continue
            parsed[key] = _parse_sheet(wb[sheet_name], key)
    finally:
        wb.close()

    eco = ensure_ecosystem(session, ecosystem_id, ecosystem_name or file_path.stem)

    new_count = updated_count = skipped = 0
    by_sheet: dict[str, int] = {}
    touched: dict[str, list] = {}
    lookups: dict[str, _Existing] = {}
    for key, (model, name_field) in SHEETS.items():
        if key not in parsed:
            continue
        rows, sheet_skipped, _ = parsed[key]
        skipped += sheet_skipped
        lookups[key] = _Existing(session, model, name_field, eco.id)
        touched[key] = []
        for data in rows:
            is_new, row = _upsert(session, model, data, lookups[key], eco.id)
            touched[key].append(row)
            if is_new:
                new_count += 1
            else:
                updated_count += 1
        by_sheet[key] = len(rows)
    session.flush()

    org_ids = build_name_index(
        session.execute(
            select(models.Organization)
            .where(models.Organization.ecosystem_id == eco.id)
            .order_by(models.Organization.created_at, models.Organization.id)
        ).scalars()
    )
    for key, (name_attr, id_attr) in _SOURCE_LINKS.items():
        _link_sources(touched.get(key, []), name_attr, id_attr, org_ids)
    if "decisions" in parsed:
        _link_dependencies(session, touched["decisions"], parsed["decisions"][2], lookups["decisions"])

    session.commit()
    log.info(
        "Imported %d rows into ecosystem %s (%d new, %d updated, %d skipped)",
        new_count + updated_count, eco.id, new_count, updated_count, skipped,
    )
    return ImportResult(
        ecosystem_id=eco.id,
        total_imported=new_count + updated_count,
        duplicates_updated=updated_count,
        skipped=skipped,
        by_sheet=by_sheet,
    )
