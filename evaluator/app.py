from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Generator

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from evaluator import services, store
from evaluator.auth import current_reviewer, require_reviewer
from evaluator.db import init_db, session_generator, session_scope
from evaluator.errors import AuthenticationError, ValidationError
from evaluator.events import feed
from evaluator.models import Project
from evaluator.schemas import (
    AggregateScoresOut,
    EvaluationIn,
    EvaluationOut,
    EvaluationSaved,
    HealthOut,
    ProjectOut,
    SyncResult,
)
from evaluator.sync import sync_if_empty, sync_projects

log = logging.getLogger(__name__)


def _sync_on_startup() -> bool:
    return os.environ.get("EVALUATOR_SYNC_ON_STARTUP", "").strip().lower() in ("1", "true", "yes")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if _sync_on_startup():
        with session_scope() as session:
            result = await sync_if_empty(session)
        if result is not None:
            log.info("Startup sync: %s", result)
            if result["success"]:
                feed.publish("projects")
    yield


app = FastAPI(
    title="Grant Evaluator",
    version="0.1.0",
    description=(
        "Mirror grant projects from the funding catalog and collect reviewer scores "
        "for team quality and idea strength. Writes require a reviewer identity header."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Projects", "description": "Browse mirrored catalog projects."},
        {"name": "Sync", "description": "Refresh projects from the external catalog."},
        {"name": "Evaluations", "description": "Submit and read reviewer scores."},
        {"name": "Events", "description": "Change notifications for live clients."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    yield from session_generator()


def _get_or_404(session: Session, project_id: int) -> Project:
    proj = store.get_project(session, project_id)
    if not proj:
        raise HTTPException(404, "Project not found")
    return proj


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse({"detail": str(exc)}, status_code=401)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse({"detail": str(exc)}, status_code=422)


# ---------------------------------------------------------------------------
# Routes: Projects
# ---------------------------------------------------------------------------


@app.get("/api/projects", response_model=list[ProjectOut],
         tags=["Projects"], summary="List projects, most recently added first")
async def list_projects(
    limit: int = Query(store.DEFAULT_LIST_LIMIT, ge=0, le=1000),
    session: Session = Depends(db_session),
):
    return [services.project_summary(p) for p in store.list_projects(session, limit)]


@app.get("/api/projects/{project_id}", response_model=ProjectOut | None,
         tags=["Projects"], summary="Get one project (null when it does not exist)")
async def get_project(project_id: int, session: Session = Depends(db_session)):
    proj = store.get_project(session, project_id)
    return services.project_summary(proj) if proj else None


# ---------------------------------------------------------------------------
# Routes: Sync
# ---------------------------------------------------------------------------


@app.post("/api/projects/sync", response_model=SyncResult, response_model_exclude_none=True,
          tags=["Sync"], summary="Fetch the external catalog and upsert every project")
async def sync_projects_route(session: Session = Depends(db_session)):
    result = await sync_projects(session)
    if result["success"]:
        feed.publish("projects")
    return result


# ---------------------------------------------------------------------------
# Routes: Evaluations
# ---------------------------------------------------------------------------


@app.get("/api/projects/{project_id}/evaluation", response_model=EvaluationOut | None,
         tags=["Evaluations"], summary="The calling reviewer's evaluation (null if none or unauthenticated)")
async def get_my_evaluation(
    project_id: int,
    reviewer_id: str | None = Depends(current_reviewer),
    session: Session = Depends(db_session),
):
    evaluation = services.get_current_evaluation(session, reviewer_id, project_id)
    return services.evaluation_summary(evaluation) if evaluation else None


@app.put("/api/projects/{project_id}/evaluation", response_model=EvaluationSaved,
         tags=["Evaluations"], summary="Create or replace the calling reviewer's evaluation")
async def upsert_evaluation(
    project_id: int,
    body: EvaluationIn,
    reviewer_id: str = Depends(require_reviewer),
    session: Session = Depends(db_session),
):
    _get_or_404(session, project_id)
    evaluation_id = services.submit_evaluation(
        session, reviewer_id, project_id, body.team_score, body.idea_score, body.notes,
    )
    session.commit()
    feed.publish("evaluations", project_id)
    return {"id": evaluation_id}


@app.get("/api/projects/{project_id}/scores", response_model=AggregateScoresOut,
         tags=["Evaluations"], summary="Community average per score dimension")
async def get_aggregate_scores(project_id: int, session: Session = Depends(db_session)):
    return services.get_aggregate_scores(session, project_id)


# ---------------------------------------------------------------------------
# Routes: Events
# ---------------------------------------------------------------------------


@app.get("/api/events", tags=["Events"], summary="Server-sent change notifications")
async def events(
    table: str | None = Query(None, description="projects or evaluations"),
    key: int | None = Query(None, description="Project id filter for evaluation events"),
):
    sub = feed.subscribe(table, key)
    return StreamingResponse(feed.stream(sub), media_type="text/event-stream")


@app.get("/api/health", response_model=HealthOut, tags=["Projects"], summary="Liveness and project count")
async def health(session: Session = Depends(db_session)):
    return {"ok": True, "projects": store.count_projects(session)}


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("evaluator.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()
