"""Integration tests for the FastAPI endpoints.

Uses TestClient against a file-backed SQLite database in a temp directory so
the snapshot loader's worker threads each get their own connection.
"""
from __future__ import annotations

import io
from datetime import timedelta

import openpyxl
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from culturemap.db import session_scope
from culturemap.models import (
    Decision,
    Ecosystem,
    Investment,
    Opportunity,
    Organization,
    Output,
    Precedent,
    Submission,
)
from culturemap.temporal import today_utc


@pytest.fixture()
def client(tmp_path, monkeypatch):
    """FastAPI TestClient with the database pointed at a temp file."""
    monkeypatch.setenv("CULTUREMAP_DB", str(tmp_path / "api.db"))
    monkeypatch.delenv("CULTUREMAP_ECOSYSTEM_ID", raising=False)
    monkeypatch.delenv("CULTUREMAP_STALE_LIMIT", raising=False)
    from culturemap.app import app

    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def seeded_client(client):
    """Client with one small ecosystem pre-seeded."""
    today = today_utc()
    with session_scope() as session:
        session.add_all([
            Ecosystem(id="eco-1", name="Northwest Arkansas", slug="nwa"),
            Organization(id="o1", ecosystem_id="eco-1", name="Cache"),
            Organization(id="o2", ecosystem_id="eco-1", name="Walton Family Foundation"),
            Investment(id="i1", ecosystem_id="eco-1", initiative_name="Studio grants", source_org_id="o2",
                       amount=15000, led_to_id="i2"),
            Investment(id="i2", ecosystem_id="eco-1", initiative_name="Residencies", source_org_id="o2",
                       amount=5000, builds_on_id="i1"),
            Investment(id="i3", ecosystem_id="eco-1", initiative_name="Pop-up shows", amount=2000),
            Decision(id="d1", ecosystem_id="eco-1", decision_title="Annual budget", stakeholder_org_id="o1",
                     locks_date=today + timedelta(days=5), intervention_needed="Attend the hearing"),
            Decision(id="d2", ecosystem_id="eco-1", decision_title="Capital plan",
                     locks_date=today + timedelta(days=45)),
            Precedent(id="p1", ecosystem_id="eco-1", name="2019 plan", involved="CACHE (convener), Somebody"),
            Opportunity(id="op1", ecosystem_id="eco-1", title="Open call", status="open",
                        deadline=today + timedelta(days=20)),
            Submission(id="s1", ecosystem_id="eco-1", submission_type="opportunity",
                       data_json='{"title": "New residency"}'),
        ])
        session.commit()
    return client


class TestEcosystemSelection:
    def test_no_ecosystem_is_404(self, client):
        resp = client.get("/api/stats")
        assert resp.status_code == 404

    def test_unknown_ecosystem_is_404(self, seeded_client):
        resp = seeded_client.get("/api/stats", params={"ecosystem_id": "nope"})
        assert resp.status_code == 404

    def test_default_from_environment(self, seeded_client, monkeypatch):
        monkeypatch.setenv("CULTUREMAP_ECOSYSTEM_ID", "eco-1")
        resp = seeded_client.get("/api/stats")
        assert resp.status_code == 200
        assert resp.json()["ecosystem_id"] == "eco-1"


class TestDashboardEndpoints:
    def test_stats(self, seeded_client):
        resp = seeded_client.get("/api/stats", params={"ecosystem_id": "eco-1"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["org_count"] == 2
        assert data["total_investment"] == 22000
        assert data["active_decisions"] == 2
        assert data["open_opportunities"] == 1

    def test_dashboard(self, seeded_client):
        data = seeded_client.get("/api/dashboard").json()
        assert [d["id"] for d in data["forming_decisions"]] == ["d1", "d2"]
        assert data["forming_decisions"][0]["countdown"] == "5d remaining"
        assert data["attention"][0]["kind"] == "decision"

    def test_attention_order(self, seeded_client):
        resp = seeded_client.get("/api/attention", params={"limit": 3})
        assert resp.status_code == 200
        items = resp.json()
        assert [i["kind"] for i in items] == ["decision", "submission", "stale", "stale", "stale"]
        assert items[0]["badge"] == "5d remaining"
        assert items[1]["title"] == "New residency"

    def test_attention_limit_validated(self, seeded_client):
        assert seeded_client.get("/api/attention", params={"limit": -1}).status_code == 422

    def test_stale(self, seeded_client):
        entries = seeded_client.get("/api/stale").json()
        assert {"entity_type": "organization", "entity_id": "o1", "name": "Cache",
                "last_reviewed_at": None} in entries


class TestEntityEndpoints:
    def test_organizations_most_connected_first(self, seeded_client):
        rows = seeded_client.get("/api/organizations").json()
        assert [r["id"] for r in rows] == ["o2", "o1"]
        assert rows[0]["connection_count"] == 2

    def test_organization_detail(self, seeded_client):
        resp = seeded_client.get("/api/organizations/o1")
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "Cache"
        assert [d["id"] for d in data["decisions"]] == ["d1"]
        assert data["precedents"] == [{"id": "p1", "name": "2019 plan"}]

    def test_organization_not_found(self, seeded_client):
        resp = seeded_client.get("/api/organizations/missing")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Organization not found"

    def test_landscape_not_shadowed(self, seeded_client):
        resp = seeded_client.get("/api/investments/landscape")
        assert resp.status_code == 200
        assert resp.json()["by_source"] == [
            {"name": "Walton Family Foundation", "amount": 20000.0},
            {"name": "Unattributed", "amount": 2000.0},
        ]

    def test_chain(self, seeded_client):
        data = seeded_client.get("/api/investments/i2/chain").json()
        assert [(c["role"], c["id"]) for c in data["chain"]] == [("builds_on", "i1"), ("focal", "i2")]
        assert data["has_connections"] is True

    def test_chain_not_found(self, seeded_client):
        assert seeded_client.get("/api/investments/nope/chain").status_code == 404

    def test_precedent(self, seeded_client):
        data = seeded_client.get("/api/precedents/p1").json()
        assert data["involved"] == [
            {"name": "Cache", "organization_id": "o1", "resolved": True},
            {"name": "Somebody", "organization_id": None, "resolved": False},
        ]
        assert seeded_client.get("/api/precedents/p404").status_code == 404

    def test_timeline(self, seeded_client):
        data = seeded_client.get("/api/decisions/timeline").json()
        groups = {g["bucket"]: [d["id"] for d in g["decisions"]] for g in data["groups"]}
        assert groups == {
            "Within 30 Days": ["d1"], "Within 90 Days": ["d2"],
            "Within 6 Months": [], "Beyond 6 Months": [],
        }
        assert data["closed"] == []

    def test_opportunities(self, seeded_client):
        data = seeded_client.get("/api/opportunities").json()
        assert [o["id"] for o in data["open"]] == ["op1"]
        assert data["open"][0]["days_remaining"] == 20
        assert data["open"][0]["countdown_tier"] == "elevated"

    def test_outputs(self, seeded_client):
        with session_scope() as session:
            session.add(Output(id="out1", ecosystem_id="eco-1", title="Budget brief", is_published=True,
                               triggered_by_decision_id="d1"))
            session.commit()
        data = seeded_client.get("/api/outputs").json()
        assert [o["id"] for o in data["published"]] == ["out1"]
        assert data["published"][0]["triggered_by"] == {"id": "d1", "decision_title": "Annual budget"}
        assert data["drafts"] == []
        dashboard = seeded_client.get("/api/dashboard").json()
        assert dashboard["forming_decisions"][0]["output_title"] == "Budget brief"


class TestStorageFailure:
    def test_snapshot_unavailable_is_503(self, seeded_client, tmp_path):
        from culturemap.app import app, session_factory

        broken = create_engine(f"sqlite:///{tmp_path / 'broken.db'}")
        app.dependency_overrides[session_factory] = lambda: sessionmaker(bind=broken)
        resp = seeded_client.get("/api/stats")
        assert resp.status_code == 503
        assert resp.json()["detail"].startswith("Could not load")
        broken.dispose()


class TestImportEndpoint:
    def _xlsx(self) -> bytes:
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Organizations"
        ws.append(["Name", "Org Type"])
        ws.append(["Crystal Bridges", "cultural_institution"])
        buf = io.BytesIO()
        wb.save(buf)
        return buf.getvalue()

    def test_import_creates_ecosystem(self, client):
        resp = client.post(
            "/api/import",
            files={"file": ("bentonville.xlsx", self._xlsx(),
                            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")},
        )
        assert resp.status_code == 200
        result = resp.json()
        assert result["total_imported"] == 1
        assert result["by_sheet"] == {"organizations": 1}

        stats = client.get("/api/stats", params={"ecosystem_id": result["ecosystem_id"]}).json()
        assert stats["org_count"] == 1

    def test_import_into_existing(self, seeded_client):
        resp = seeded_client.post(
            "/api/import", params={"ecosystem_id": "eco-1"},
            files={"file": ("more.xlsx", self._xlsx(), "application/octet-stream")},
        )
        assert resp.json()["ecosystem_id"] == "eco-1"
        assert seeded_client.get("/api/stats").json()["org_count"] == 3

    def test_rejects_other_files(self, client):
        resp = client.post("/api/import", files={"file": ("data.csv", b"a,b", "text/csv")})
        assert resp.status_code == 400


class TestSessionDependency:
    def test_yields_session_and_rolls_back_on_error(self, client):
        from culturemap.app import db_session

        gen = db_session()
        session = next(gen)
        assert isinstance(session, Session)
        with pytest.raises(ValueError):
            gen.throw(ValueError("boom"))
