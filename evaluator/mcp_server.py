from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from evaluator import services, store
from evaluator.db import init_db, session_scope
from evaluator.sync import sync_projects as run_sync

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def evaluator_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "Grant Evaluator",
    instructions=(
        "Grant Evaluator mirrors grant projects from an external funding catalog and "
        "collects reviewer scores. Use list_projects() to browse, get_project(id) for "
        "details and get_aggregate_scores(id) for the community score."
    ),
    lifespan=evaluator_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("evaluator://overview")
def evaluator_overview() -> str:
    """Overview of the data model and score dimensions."""
    return json.dumps({
        "system": "Grant Evaluator",
        "data_model": {
            "project": "A project mirrored from the funding catalog, keyed by its external id.",
            "evaluation": "One reviewer's team and idea scores (0-10) for one project, with optional notes.",
        },
        "score_dimensions": {
            "team_score": "Team experience, track record and capability.",
            "idea_score": "Innovation, feasibility and potential impact.",
        },
        "workflow": [
            "1. sync_projects() if list_projects() is empty.",
            "2. list_projects() to browse.",
            "3. get_project(id) for details.",
            "4. get_aggregate_scores(id) for the community score.",
        ],
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool()
def list_projects(limit: int = 100) -> list[dict]:
    """List mirrored projects, most recently added first.

    Args:
        limit: Max results (default 100, max 1000).
    """
    with session_scope() as session:
        return [services.project_summary(p) for p in store.list_projects(session, max(0, min(limit, 1000)))]


@mcp.tool()
def get_project(project_id: int) -> dict:
    """Get one project by its internal id."""
    with session_scope() as session:
        proj = store.get_project(session, project_id)
        if proj is None:
            return {"error": f"Project {project_id} not found"}
        return {**services.project_summary(proj), "scores": services.get_aggregate_scores(session, project_id)}


@mcp.tool()
def get_aggregate_scores(project_id: int) -> dict:
    """Average team and idea score across all reviewers of a project."""
    with session_scope() as session:
        return services.get_aggregate_scores(session, project_id)


@mcp.tool()
async def sync_projects() -> dict:
    """Fetch the external catalog and upsert every project."""
    with session_scope() as session:
        return await run_sync(session)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the Grant Evaluator MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
