"""Shared business logic for the evaluator API and MCP server."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from evaluator import store
from evaluator.models import Evaluation, Project

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared field tuples
# ---------------------------------------------------------------------------

PROJECT_RESPONSE_FIELDS = (
    "id", "external_id", "title", "description", "creator", "slug", "blurb",
    "amount_raised", "funding_goal", "min_funding", "stage", "type",
    "created_at", "causes", "last_synced",
)

EVALUATION_RESPONSE_FIELDS = (
    "id", "reviewer_id", "project_id", "team_score", "idea_score", "notes",
)

SCORE_DIMENSIONS = ("team_score", "idea_score")

# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def project_summary(proj: Project) -> dict:
    return {f: getattr(proj, f) for f in PROJECT_RESPONSE_FIELDS}


def evaluation_summary(evaluation: Evaluation) -> dict:
    return {f: getattr(evaluation, f) for f in EVALUATION_RESPONSE_FIELDS}


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def get_aggregate_scores(session: Session, project_id: int) -> dict[str, dict[str, Any]]:
    """Community score for a project: mean and count per dimension.

    Recomputed from the evaluations table on every call.
    """
    evaluations = store.list_evaluations(session, project_id)
    count = len(evaluations)
    if count == 0:
        return {dim: {"average": 0, "count": 0} for dim in SCORE_DIMENSIONS}
    return {
        dim: {"average": sum(getattr(e, dim) for e in evaluations) / count, "count": count}
        for dim in SCORE_DIMENSIONS
    }


# ---------------------------------------------------------------------------
# Evaluations
# ---------------------------------------------------------------------------


def normalize_notes(notes: str | None) -> str | None:
    """Blank notes mean no notes."""
    if notes is None:
        return None
    stripped = notes.strip()
    return stripped or None


def get_current_evaluation(
    session: Session, reviewer_id: str | None, project_id: int,
) -> Evaluation | None:
    """The reviewer's own evaluation, or None (also when unauthenticated)."""
    if not reviewer_id:
        return None
    return store.get_evaluation(session, reviewer_id, project_id)


def submit_evaluation(
    session: Session,
    reviewer_id: str | None,
    project_id: int,
    team_score: float,
    idea_score: float,
    notes: str | None = None,
) -> int:
    """Validate and save a reviewer's scores (caller must commit)."""
    return store.upsert_evaluation(
        session, reviewer_id, project_id, team_score, idea_score, normalize_notes(notes),
    )
