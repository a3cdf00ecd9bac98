from __future__ import annotations

from datetime import date, datetime

import openpyxl
import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from culturemap.importer import _b, _d, _dt, _f, _s, ensure_ecosystem, import_workbook
from culturemap.models import Base, Decision, Ecosystem, Investment, Narrative, Organization, Output


@pytest.fixture()
def engine():
    eng = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session(engine):
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    sess = SessionLocal()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def workbook_path(tmp_path):
    wb = openpyxl.Workbook()
    orgs = wb.active
    orgs.title = "Organizations"
    orgs.append(["Name", "Org Type", "Last Reviewed At", "Favourite Colour"])
    orgs.append(["Cache", "intermediary", datetime(2026, 1, 15, 9, 30), "teal"])
    orgs.append(["Walton Family Foundation", "foundation", None, None])
    orgs.append([None, "government", None, None])

    inv = wb.create_sheet("Investments")
    inv.append(["Initiative", "Source", "Amount", "Category"])
    inv.append(["Studio grants", "cache", "$12,500", "direct_artist_support"])
    inv.append(["Mural fund", "Unknown Funder", 3000, None])

    dec = wb.create_sheet("Decisions")
    dec.append(["Title", "Stakeholder", "Locks Date", "Depends On"])
    dec.append(["Budget", "City of Rogers", datetime(2026, 4, 1), None])
    dec.append(["Capital plan", "Walton Family Foundation", "2026-06-01", "budget, Unknown thing"])

    nar = wb.create_sheet("Narrative")
    nar.append(["Narrative", "Gap", "Date", "Source"])
    nar.append(["A thriving arts region", "high", date(2026, 1, 5), "Walton Family Foundation"])

    notes = wb.create_sheet("Notes")
    notes.append(["anything", "goes"])

    path = tmp_path / "nwa_seed.xlsx"
    wb.save(path)
    return path


class TestCoercion:
    def test_strings(self):
        assert _s("  x ") == "x"
        assert _s("   ") is None
        assert _s(None) is None
        assert _s(12) == "12"

    def test_floats(self):
        assert _f("$12,500") == 12500.0
        assert _f(0) == 0.0
        assert _f("n/a") is None
        assert _f(True) is None

    def test_bools(self):
        assert _b("Yes") is True
        assert _b("no") is False
        assert _b(None) is False

    def test_dates(self):
        assert _d(datetime(2026, 1, 2, 3, 4)) == date(2026, 1, 2)
        assert _d("2026-01-02") == date(2026, 1, 2)
        assert _d("soon") is None
        assert _dt(date(2026, 1, 2)) == datetime(2026, 1, 2)
        assert _dt("2026-01-02 10:00") == datetime(2026, 1, 2, 10, 0)
        assert _dt("garbage") is None


class TestImportWorkbook:
    def test_counts(self, workbook_path, session: Session):
        result = import_workbook(workbook_path, session)
        assert result.total_imported == 7
        assert result.duplicates_updated == 0
        assert result.skipped == 1
        assert result.by_sheet == {"organizations": 2, "investments": 2, "decisions": 2, "narratives": 1}

    def test_creates_ecosystem_from_file_name(self, workbook_path, session: Session):
        result = import_workbook(workbook_path, session)
        eco = session.get(Ecosystem, result.ecosystem_id)
        assert eco.name == "nwa_seed"
        assert eco.slug == "nwa-seed"

    def test_cells_coerced_by_column_type(self, workbook_path, session: Session):
        result = import_workbook(workbook_path, session)
        cache = session.execute(select(Organization).where(Organization.name == "Cache")).scalar_one()
        assert cache.ecosystem_id == result.ecosystem_id
        assert cache.org_type == "intermediary"
        assert cache.last_reviewed_at == datetime(2026, 1, 15, 9, 30)
        grants = session.execute(select(Investment).where(Investment.initiative_name == "Studio grants")).scalar_one()
        assert grants.amount == 12500.0
        plan = session.execute(select(Decision).where(Decision.decision_title == "Capital plan")).scalar_one()
        assert plan.locks_date == date(2026, 6, 1)
        narrative = session.execute(select(Narrative)).scalar_one()
        assert narrative.narrative_date == date(2026, 1, 5)

    def test_source_names_linked_to_organizations(self, workbook_path, session: Session):
        import_workbook(workbook_path, session)
        orgs = {o.name: o.id for o in session.execute(select(Organization)).scalars()}
        grants = session.execute(select(Investment).where(Investment.initiative_name == "Studio grants")).scalar_one()
        mural = session.execute(select(Investment).where(Investment.initiative_name == "Mural fund")).scalar_one()
        assert grants.source_org_id == orgs["Cache"]
        assert mural.source_org_id is None
        budget = session.execute(select(Decision).where(Decision.decision_title == "Budget")).scalar_one()
        plan = session.execute(select(Decision).where(Decision.decision_title == "Capital plan")).scalar_one()
        assert budget.stakeholder_org_id is None
        assert plan.stakeholder_org_id == orgs["Walton Family Foundation"]
        narrative = session.execute(select(Narrative)).scalar_one()
        assert narrative.source_org_id == orgs["Walton Family Foundation"]

    def test_dependencies_resolved_by_title(self, workbook_path, session: Session):
        import_workbook(workbook_path, session)
        budget = session.execute(select(Decision).where(Decision.decision_title == "Budget")).scalar_one()
        plan = session.execute(select(Decision).where(Decision.decision_title == "Capital plan")).scalar_one()
        assert [link.depends_on_id for link in plan.dependency_links] == [budget.id]
        assert budget.dependency_links == []

    def test_reimport_updates_in_place(self, workbook_path, session: Session):
        first = import_workbook(workbook_path, session)
        second = import_workbook(workbook_path, session, ecosystem_id=first.ecosystem_id)
        assert second.ecosystem_id == first.ecosystem_id
        assert second.duplicates_updated == 7
        assert session.execute(select(func.count(Organization.id))).scalar() == 2
        assert session.execute(select(func.count(Decision.id))).scalar() == 2
        plan = session.execute(select(Decision).where(Decision.decision_title == "Capital plan")).scalar_one()
        assert len(plan.dependency_links) == 1

    def test_upsert_by_id(self, tmp_path, session: Session):
        eco = ensure_ecosystem(session, "eco-1", "NWA")
        session.add(Organization(id="org-1", ecosystem_id=eco.id, name="Old Name"))
        session.commit()
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Organizations"
        ws.append(["ID", "Name"])
        ws.append(["org-1", "New Name"])
        path = tmp_path / "rename.xlsx"
        wb.save(path)

        result = import_workbook(path, session, ecosystem_id="eco-1")
        assert result.duplicates_updated == 1
        assert session.get(Organization, "org-1").name == "New Name"

    def test_sheet_without_name_column_skipped(self, tmp_path, session: Session):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Investments"
        ws.append(["Amount"])
        ws.append([100])
        path = tmp_path / "bad.xlsx"
        wb.save(path)
        result = import_workbook(path, session)
        assert result.total_imported == 0
        assert result.by_sheet == {"investments": 0}


def _save(tmp_path, name: str, sheets: dict[str, list[list]]):
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    path = tmp_path / name
    wb.save(path)
    return path


class TestEnumColumns:
    def test_spellings_normalised(self, tmp_path, session: Session):
        path = _save(tmp_path, "enums.xlsx", {
            "Decisions": [["Title", "Status", "Locks Date"], ["Capital plan", "Deliberating", "2026-11-01"]],
            "Investments": [["Initiative", "Category", "Compounding"],
                            ["Studio grants", "Education & Training", "Not Compounding"]],
        })
        import_workbook(path, session)
        plan = session.execute(select(Decision)).scalar_one()
        assert plan.status == "deliberating"
        grants = session.execute(select(Investment)).scalar_one()
        assert grants.category == "education_training"
        assert grants.compounding == "not_compounding"

    def test_unknown_value_falls_back_to_default(self, tmp_path, session: Session):
        path = _save(tmp_path, "unknown.xlsx", {
            "Organizations": [["Name", "Org Type"], ["Cache", "collective"]],
            "Investments": [["Initiative", "Status", "Category"], ["Mural fund", "paused", "murals"]],
        })
        import_workbook(path, session)
        assert session.execute(select(Organization)).scalar_one().org_type == "nonprofit"
        mural = session.execute(select(Investment)).scalar_one()
        assert mural.status == "active"
        assert mural.category is None


class TestCrossEcosystemIds:
    def test_id_owned_by_another_ecosystem_not_reused(self, tmp_path, session: Session):
        path = _save(tmp_path, "orgs.xlsx", {"Organizations": [["ID", "Name"], ["org-cache", "Cache"]]})
        import_workbook(path, session, ecosystem_id="eco-a")
        result = import_workbook(path, session, ecosystem_id="eco-b")
        assert result.total_imported == 1
        assert result.duplicates_updated == 0
        rows = session.execute(select(Organization).order_by(Organization.ecosystem_id)).scalars().all()
        assert [(o.ecosystem_id, o.name) for o in rows] == [("eco-a", "Cache"), ("eco-b", "Cache")]
        assert rows[0].id == "org-cache"
        assert rows[1].id != "org-cache"

    def test_reimport_matches_by_name(self, tmp_path, session: Session):
        path = _save(tmp_path, "orgs.xlsx", {"Organizations": [["ID", "Name"], ["org-cache", "Cache"]]})
        import_workbook(path, session, ecosystem_id="eco-a")
        import_workbook(path, session, ecosystem_id="eco-b")
        again = import_workbook(path, session, ecosystem_id="eco-b")
        assert again.duplicates_updated == 1
        assert session.execute(select(func.count(Organization.id))).scalar() == 2


class TestSourceLinking:
    def test_first_organization_wins_on_duplicate_names(self, tmp_path, session: Session):
        eco = ensure_ecosystem(session, "eco-1", "NWA")
        session.add_all([
            Organization(id="org-early", ecosystem_id=eco.id, name="cache", created_at=datetime(2026, 1, 1)),
            Organization(id="org-late", ecosystem_id=eco.id, name="Cache", created_at=datetime(2026, 2, 1)),
        ])
        session.commit()
        path = _save(tmp_path, "inv.xlsx", {"Investments": [["Initiative", "Source"], ["Studio grants", "CACHE"]]})
        import_workbook(path, session, ecosystem_id="eco-1")
        assert session.execute(select(Investment)).scalar_one().source_org_id == "org-early"


class TestOutputsSheet:
    def test_outputs_imported(self, tmp_path, session: Session):
        path = _save(tmp_path, "outputs.xlsx", {
            "Outputs": [["Title", "Type", "Published", "Delivery Status"],
                        ["Budget brief", "Directional Brief", "yes", "Delivered"]],
        })
        result = import_workbook(path, session)
        assert result.by_sheet == {"outputs": 1}
        brief = session.execute(select(Output)).scalar_one()
        assert brief.output_type == "directional_brief"
        assert brief.is_published is True
        assert brief.delivery_status == "delivered"

class TestEnsureEcosystem:
    def test_existing_returned(self, session: Session):
        first = ensure_ecosystem(session, "eco-1", "NWA")
        assert ensure_ecosystem(session, "eco-1", "Ignored") is first

    def test_slug_collision(self, session: Session):
        ensure_ecosystem(session, "eco-1", "NWA")
        second = ensure_ecosystem(session, "eco-2", "NWA")
        assert second.slug == "nwa-eco-2"
