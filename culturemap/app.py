from __future__ import annotations

import logging
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, Generator

from fastapi import Depends, FastAPI, File, HTTPException, Query, UploadFile
from sqlalchemy.orm import Session

from culturemap import services
from culturemap.db import get_session, init_db, session_generator
from culturemap.errors import SnapshotUnavailable
from culturemap.importer import import_workbook
from culturemap.models import Ecosystem
from culturemap.records import EcosystemSnapshot
from culturemap.schemas import (
    AttentionItemOut,
    ChainOut,
    DashboardOut,
    ImportResult,
    LandscapeOut,
    OpportunitiesOut,
    OrganizationDetail,
    OrganizationSummary,
    OutputsOut,
    PrecedentDetail,
    StaleEntryOut,
    StatsOut,
    TimelineOut,
)
from culturemap.rollup import ecosystem_stats

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="CultureMap",
    version="0.1.0",
    description=(
        "Relationship and aggregation API for a regional cultural-investment ecosystem. "
        "Connects funders, investments, decisions, precedents, narratives and opportunities. "
        "All endpoints return JSON. No authentication required."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Dashboard", "description": "Headline stats and the attention queue."},
        {"name": "Organizations", "description": "Organizations and their related records."},
        {"name": "Investments", "description": "Investment chains and funding rollups."},
        {"name": "Decisions", "description": "Upcoming decisions grouped by urgency."},
        {"name": "Opportunities", "description": "Funding opportunities by deadline status."},
        {"name": "Precedents", "description": "Past initiatives and who was involved."},
        {"name": "Outputs", "description": "Briefs and other outputs, published and draft."},
        {"name": "Import", "description": "Seed an ecosystem from an XLSX workbook."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


def session_factory() -> Callable[[], Session]:
    """Factory handed to the snapshot loader, one session per record set."""
    return get_session


def _ecosystem_id(session: Session, requested: str | None) -> str:
    eco_id = services.resolve_ecosystem_id(session, requested)
    if not eco_id or session.get(Ecosystem, eco_id) is None:
        raise HTTPException(404, "Ecosystem not found")
    return eco_id


async def current_snapshot(
    ecosystem_id: str | None = Query(None, description="Ecosystem to read; defaults to CULTUREMAP_ECOSYSTEM_ID"),
    session: Session = Depends(db_session),
    factory: Callable[[], Session] = Depends(session_factory),
) -> EcosystemSnapshot:
    eco_id = _ecosystem_id(session, ecosystem_id)
    try:
        return await services.load_snapshot(eco_id, factory)
    except SnapshotUnavailable as exc:
        raise HTTPException(503, str(exc)) from exc


def _or_404(view: dict | None, label: str) -> dict:
    if view is None:
        raise HTTPException(404, f"{label} not found")
    return view


# ---------------------------------------------------------------------------
# Routes: Dashboard
# ---------------------------------------------------------------------------


@app.get("/api/dashboard", response_model=DashboardOut,
         tags=["Dashboard"], summary="Stats, forming decisions, narrative gaps and attention queue")
async def dashboard(snapshot: EcosystemSnapshot = Depends(current_snapshot)):
    return services.dashboard_view(snapshot)


@app.get("/api/attention", response_model=list[AttentionItemOut],
         tags=["Dashboard"], summary="Ranked queue of decisions, submissions and stale records")
async def attention(
    limit: int | None = Query(None, ge=0, description="Stale entries to include; defaults to CULTUREMAP_STALE_LIMIT"),
    snapshot: EcosystemSnapshot = Depends(current_snapshot),
):
    return services.attention_view(snapshot, limit=limit)


@app.get("/api/stale", response_model=list[StaleEntryOut],
         tags=["Dashboard"], summary="Records past their review threshold, never-reviewed first")
async def stale(snapshot: EcosystemSnapshot = Depends(current_snapshot)):
    return services.stale_view(snapshot)


@app.get("/api/stats", response_model=StatsOut,
         tags=["Dashboard"], summary="Ecosystem-wide counts and totals")
async def stats(snapshot: EcosystemSnapshot = Depends(current_snapshot)):
    return ecosystem_stats(snapshot)


# ---------------------------------------------------------------------------
# Routes: Organizations
# ---------------------------------------------------------------------------


@app.get("/api/organizations", response_model=list[OrganizationSummary],
         tags=["Organizations"], summary="Organizations, most connected first")
async def list_organizations(snapshot: EcosystemSnapshot = Depends(current_snapshot)):
    return services.organizations_view(snapshot)


@app.get("/api/organizations/{org_id}", response_model=OrganizationDetail,
         tags=["Organizations"], summary="Organization with its investments, decisions, opportunities and narratives")
async def get_organization(org_id: str, snapshot: EcosystemSnapshot = Depends(current_snapshot)):
    return _or_404(services.organization_view(snapshot, org_id), "Organization")


# ---------------------------------------------------------------------------
# Routes: Investments (landscape before parameterized to avoid route shadowing)
# ---------------------------------------------------------------------------


@app.get("/api/investments/landscape", response_model=LandscapeOut,
         tags=["Investments"], summary="Funding by source, category, compounding and discipline")
async def investment_landscape(snapshot: EcosystemSnapshot = Depends(current_snapshot)):
    return services.landscape_view(snapshot)


@app.get("/api/investments/{investment_id}/chain", response_model=ChainOut,
         tags=["Investments"], summary="Ancestors, focal investment and descendants")
async def investment_chain(investment_id: str, snapshot: EcosystemSnapshot = Depends(current_snapshot)):
    return _or_404(services.investment_view(snapshot, investment_id), "Investment")


# ---------------------------------------------------------------------------
# Routes: Decisions, Opportunities, Precedents, Outputs
# ---------------------------------------------------------------------------


@app.get("/api/decisions/timeline", response_model=TimelineOut,
         tags=["Decisions"], summary="Active decisions bucketed by time to lock")
async def decision_timeline(snapshot: EcosystemSnapshot = Depends(current_snapshot)):
    return services.decision_timeline_view(snapshot)


@app.get("/api/opportunities", response_model=OpportunitiesOut,
         tags=["Opportunities"], summary="Opportunities split into closing soon, open and closed")
async def list_opportunities(snapshot: EcosystemSnapshot = Depends(current_snapshot)):
    return services.opportunity_view(snapshot)


@app.get("/api/precedents/{precedent_id}", response_model=PrecedentDetail,
         tags=["Precedents"], summary="Precedent with resolved participants and linked investments")
async def get_precedent(precedent_id: str, snapshot: EcosystemSnapshot = Depends(current_snapshot)):
    return _or_404(services.precedent_view(snapshot, precedent_id), "Precedent")


@app.get("/api/outputs", response_model=OutputsOut,
         tags=["Outputs"], summary="Outputs newest first, with triggering decision and resolved references")
async def list_outputs(snapshot: EcosystemSnapshot = Depends(current_snapshot)):
    return services.outputs_view(snapshot)


# ---------------------------------------------------------------------------
# Routes: Import
# ---------------------------------------------------------------------------


@app.post("/api/import", response_model=ImportResult,
          tags=["Import"], summary="Import an ecosystem workbook (XLSX)")
async def import_file(
    file: UploadFile = File(...),
    ecosystem_id: str | None = Query(None, description="Target ecosystem; created when unknown"),
    session: Session = Depends(db_session),
):
    if not file.filename or not file.filename.endswith(".xlsx"):
        raise HTTPException(400, "Only .xlsx files are supported")
    content = await file.read()
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(suffix=".xlsx", delete=False) as f:
            tmp_path = Path(f.name)
            f.write(content)
        return import_workbook(
            tmp_path, session,
            ecosystem_id=services.resolve_ecosystem_id(session, ecosystem_id),
            ecosystem_name=Path(file.filename).stem,
        )
    finally:
        if tmp_path:
            tmp_path.unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("culturemap.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()
