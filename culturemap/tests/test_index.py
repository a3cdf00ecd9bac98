from __future__ import annotations

import pytest

from culturemap.index import build_reference_index, group_by_key
from culturemap.records import (
    Decision,
    EcosystemSnapshot,
    Investment,
    Narrative,
    Opportunity,
    Organization,
    Output,
    Precedent,
    Resolved,
    Unresolved,
)


@pytest.fixture()
def snapshot() -> EcosystemSnapshot:
    return EcosystemSnapshot(
        ecosystem_id="eco-1",
        organizations=(
            Organization(id="o1", name="Cache"),
            Organization(id="o2", name="Walton Family Foundation", org_type="foundation"),
            Organization(id="o3", name="Arts Council"),
        ),
        investments=(
            Investment(id="i1", initiative_name="Studio grants", source_org_id="o2", amount=10000),
            Investment(id="i2", initiative_name="Residencies", source_org_id="o2", builds_on_id="i1",
                       precedent_id="p1"),
            Investment(id="i3", initiative_name="Mural fund", source_org_id="ghost", source_name="Ghost Fund"),
            Investment(id="i4", initiative_name="Cohort", source_org_id="o1", builds_on_id="i1", led_to_id="i2"),
        ),
        decisions=(
            Decision(id="d1", decision_title="Budget", stakeholder_org_id="o1"),
            Decision(id="d2", decision_title="Plan", stakeholder_org_id="o2", dependency_ids=("d1", "missing")),
        ),
        opportunities=(
            Opportunity(id="op1", title="Open call", source_org_id="o1", awarded_investment_id="i1"),
            Opportunity(id="op2", title="RFP", awarded_investment_id="nope"),
        ),
        narratives=(
            Narrative(id="n1", narrative_text="Thriving scene", source_org_id="o2"),
        ),
        precedents=(
            Precedent(id="p1", name="2019 plan", involved="Cache (local funder), Nobody, CACHE"),
            Precedent(id="p2", name="Unknowns", involved="Nobody, Somebody"),
        ),
        outputs=(
            Output(id="out1", title="Draft brief", triggered_by_decision_id="d1"),
            Output(id="out2", title="Budget brief", triggered_by_decision_id="d1", is_published=True),
            Output(id="out3", title="Loose note"),
        ),
    )


class TestGroupByKey:
    def test_skips_empty_and_disallowed_keys(self):
        rows = [("a", 1), ("", 2), (None, 3), ("b", 4), ("a", 5)]
        assert group_by_key(rows, lambda r: r[0]) == {"a": [("a", 1), ("a", 5)], "b": [("b", 4)]}
        assert group_by_key(rows, lambda r: r[0], allowed={"b"}) == {"b": [("b", 4)]}


class TestBuildReferenceIndex:
    def test_org_keyed_maps_only_hold_known_orgs(self, snapshot):
        idx = build_reference_index(snapshot)
        assert [i.id for i in idx.investments_by_org["o2"]] == ["i1", "i2"]
        assert "ghost" not in idx.investments_by_org
        assert [d.id for d in idx.decisions_by_org["o1"]] == ["d1"]
        assert [o.id for o in idx.opportunities_by_org["o1"]] == ["op1"]
        assert [n.id for n in idx.narratives_by_org["o2"]] == ["n1"]

    def test_inverse_investment_links(self, snapshot):
        idx = build_reference_index(snapshot)
        assert [i.id for i in idx.investments_building_on["i1"]] == ["i2", "i4"]
        assert [i.id for i in idx.investments_led_from["i2"]] == ["i4"]
        assert [i.id for i in idx.investments_by_precedent["p1"]] == ["i2"]

    def test_precedent_parties_resolved_by_name(self, snapshot):
        idx = build_reference_index(snapshot)
        assert idx.involved_orgs_by_precedent == {"p1": ["o1"]}
        assert [o.name for o in idx.involved_organizations(snapshot.precedents[0])] == ["Cache"]
        assert idx.involved_organizations(snapshot.precedents[1]) == []

    def test_idempotent(self, snapshot):
        assert build_reference_index(snapshot) == build_reference_index(snapshot)

    def test_empty_snapshot(self):
        idx = build_reference_index(EcosystemSnapshot(ecosystem_id="empty"))
        assert idx.organizations == ()
        assert idx.investments_by_org == {}
        assert idx.most_connected() == []


class TestConnections:
    def test_counts(self, snapshot):
        idx = build_reference_index(snapshot)
        assert idx.connection_count("o2") == 4
        assert idx.connection_counts("o1") == {
            "investments": 1, "decisions": 1, "opportunities": 1, "narratives": 0,
        }
        assert idx.connection_count("unknown") == 0

    def test_most_connected_ties_broken_by_name(self, snapshot):
        idx = build_reference_index(snapshot)
        assert [o.id for o in idx.most_connected()] == ["o2", "o1", "o3"]
        assert [o.id for o in idx.most_connected(limit=1)] == ["o2"]


class TestLookups:
    def test_display_source_name_prefers_own_name(self, snapshot):
        idx = build_reference_index(snapshot)
        inv = {i.id: i for i in snapshot.investments}
        assert idx.display_source_name(inv["i3"]) == "Ghost Fund"
        assert idx.display_source_name(inv["i1"]) == "Walton Family Foundation"
        assert idx.display_source_name(snapshot.decisions[0]) == "Cache"
        assert idx.display_source_name(snapshot.opportunities[1]) is None

    def test_resolve_org_reference(self, snapshot):
        idx = build_reference_index(snapshot)
        assert idx.resolve_org_reference("o1", None) == Resolved("o1")
        assert idx.resolve_org_reference("ghost", "walton family foundation") == Resolved("o2")
        assert idx.resolve_org_reference("ghost", "Ghost Fund") == Unresolved("Ghost Fund")
        assert idx.resolve_org_reference("ghost", None) == Unresolved("ghost")
        assert idx.resolve_org_reference(None, None) is None

    def test_awarded_investment(self, snapshot):
        idx = build_reference_index(snapshot)
        assert idx.awarded_investment(snapshot.opportunities[0]).id == "i1"
        assert idx.awarded_investment(snapshot.opportunities[1]) is None

    def test_dependency_decisions_skip_missing(self, snapshot):
        idx = build_reference_index(snapshot)
        assert [d.id for d in idx.dependency_decisions(snapshot.decisions[1])] == ["d1"]

    def test_outputs_grouped_by_triggering_decision(self, snapshot):
        idx = build_reference_index(snapshot)
        assert [o.id for o in idx.outputs_by_decision["d1"]] == ["out1", "out2"]
        assert "d2" not in idx.outputs_by_decision

    def test_published_output(self, snapshot):
        idx = build_reference_index(snapshot)
        assert idx.published_output("d1").title == "Budget brief"
        assert idx.published_output("d2") is None

    def test_entity_name(self, snapshot):
        idx = build_reference_index(snapshot)
        assert idx.entity_name("investment", "i3") == "Mural fund"
        assert idx.entity_name("decision", "d2") == "Plan"
        assert idx.entity_name("output", "out3") == "Loose note"
        assert idx.entity_name("narrative", "n1") == "Walton Family Foundation"
        assert idx.entity_name("investment", "missing") is None
        assert idx.entity_name("tag", "i1") is None


class TestRecordContracts:
    def test_missing_id_rejected(self):
        with pytest.raises(ValueError):
            Organization(id="", name="Nameless")

    def test_missing_title_rejected(self):
        with pytest.raises(ValueError):
            Decision(id="d", decision_title="")
