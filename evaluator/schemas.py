"""Pydantic request/response schemas for the evaluator API."""
from __future__ import annotations

from pydantic import BaseModel


class ProjectOut(BaseModel):
    id: int
    external_id: str
    title: str
    description: str
    creator: str
    slug: str
    blurb: str
    amount_raised: float
    funding_goal: float = 0
    min_funding: float = 0
    stage: str
    type: str
    created_at: int
    causes: str = ""
    last_synced: int


class EvaluationOut(BaseModel):
    id: int
    reviewer_id: str
    project_id: int
    team_score: float
    idea_score: float
    notes: str | None = None


class EvaluationIn(BaseModel):
    # Range checks live in the store so every caller gets them
    team_score: float
    idea_score: float
    notes: str | None = None


class EvaluationSaved(BaseModel):
    id: int


class DimensionScore(BaseModel):
    average: float
    count: int


class AggregateScoresOut(BaseModel):
    team_score: DimensionScore
    idea_score: DimensionScore


class SyncResult(BaseModel):
    success: bool
    count: int | None = None
    error: str | None = None


class HealthOut(BaseModel):
    ok: bool
    projects: int
