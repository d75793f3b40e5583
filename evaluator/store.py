"""Project and evaluation stores.

Both upserts are single ``INSERT ... ON CONFLICT DO UPDATE`` statements keyed
by the table's natural key, so the read-then-write happens atomically inside
the database. Functions here never commit; the caller owns the transaction.
"""
from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from evaluator.errors import AuthenticationError, ValidationError
from evaluator.models import Evaluation, Project
from evaluator.utils import now_ms

log = logging.getLogger(__name__)

PROJECT_FIELDS = (
    "title", "description", "creator", "slug", "blurb",
    "amount_raised", "funding_goal", "min_funding",
    "stage", "type", "created_at", "causes",
)

SCORE_MIN = 0.0
SCORE_MAX = 10.0

DEFAULT_LIST_LIMIT = 100


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


def upsert_project(session: Session, external_id: str, **fields) -> int:
    """Insert or overwrite the project with *external_id*; return its internal id.

    A ``created_at`` of None keeps the stored value, or stamps the current
    time when the project is new.
    """
    unknown = set(fields) - set(PROJECT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown project fields: {', '.join(sorted(unknown))}")
    now = now_ms()
    updates = {k: v for k, v in fields.items() if not (k == "created_at" and v is None)}
    updates["last_synced"] = now
    stmt = (
        sqlite_insert(Project)
        .values(external_id=external_id, **{"created_at": now, **updates})
        .on_conflict_do_update(index_elements=[Project.external_id], set_=updates)
        .returning(Project.id)
    )
    return session.execute(stmt).scalar_one()


def list_projects(session: Session, limit: int = DEFAULT_LIST_LIMIT) -> list[Project]:
    """Most recently inserted projects first."""
    stmt = (
        select(Project)
        .order_by(Project.id.desc())
        .limit(max(0, limit))
        .execution_options(populate_existing=True)
    )
    return list(session.execute(stmt).scalars().all())


def get_project(session: Session, project_id: int) -> Project | None:
    return session.get(Project, project_id, populate_existing=True)


def count_projects(session: Session) -> int:
    return session.execute(select(func.count(Project.id))).scalar_one()


# ---------------------------------------------------------------------------
# Evaluations
# ---------------------------------------------------------------------------


def get_evaluation(session: Session, reviewer_id: str, project_id: int) -> Evaluation | None:
    stmt = (
        select(Evaluation)
        .where(Evaluation.reviewer_id == reviewer_id, Evaluation.project_id == project_id)
        .execution_options(populate_existing=True)
    )
    return session.execute(stmt).scalars().first()


def list_evaluations(session: Session, project_id: int) -> list[Evaluation]:
    stmt = (
        select(Evaluation)
        .where(Evaluation.project_id == project_id)
        .execution_options(populate_existing=True)
    )
    return list(session.execute(stmt).scalars().all())


def _check_score(name: str, value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    # NaN fails both comparisons
    if not (SCORE_MIN <= value <= SCORE_MAX):
        raise ValidationError(f"Scores must be between {SCORE_MIN:g} and {SCORE_MAX:g}")
    return float(value)


def upsert_evaluation(
    session: Session,
    reviewer_id: str | None,
    project_id: int,
    team_score: float,
    idea_score: float,
    notes: str | None = None,
) -> int:
    """Insert or overwrite the reviewer's evaluation of a project; return its id.

    Raises AuthenticationError without a reviewer and ValidationError for a
    score outside [0, 10]. Both are raised before anything is written.
    """
    if not reviewer_id:
        raise AuthenticationError("Must be authenticated to evaluate projects")
    values = {
        "team_score": _check_score("team_score", team_score),
        "idea_score": _check_score("idea_score", idea_score),
        "notes": notes,
    }
    stmt = (
        sqlite_insert(Evaluation)
        .values(reviewer_id=reviewer_id, project_id=project_id, **values)
        .on_conflict_do_update(
            index_elements=[Evaluation.reviewer_id, Evaluation.project_id], set_=values,
        )
        .returning(Evaluation.id)
    )
    evaluation_id = session.execute(stmt).scalar_one()
    log.debug("Evaluation %s saved for project %s by %s", evaluation_id, project_id, reviewer_id)
    return evaluation_id
