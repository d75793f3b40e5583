"""Tests for the project/evaluation stores and the evaluation services."""
from __future__ import annotations

import math
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from evaluator import services, store
from evaluator.errors import AuthenticationError, ValidationError
from evaluator.models import Base, Evaluation, Project

# ---------------------------------------------------------------------------
# Fixtures: in-memory SQLite database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
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


def _fields(**overrides) -> dict:
    fields = {
        "title": "Open Forecasting", "description": "Long description",
        "creator": "Ada", "slug": "open-forecasting", "blurb": "Short blurb",
        "amount_raised": 350.0, "funding_goal": 1000.0, "min_funding": 0.0,
        "stage": "active", "type": "grant", "created_at": 1_700_000_000_000,
        "causes": "AI safety, Forecasting",
    }
    fields.update(overrides)
    return fields


@pytest.fixture()
def project_id(session: Session) -> int:
    pid = store.upsert_project(session, "ext-1", **_fields())
    session.commit()
    return pid


# =========================================================================
# Project store
# =========================================================================


class TestUpsertProject:
    def test_insert_returns_new_id(self, session):
        pid = store.upsert_project(session, "ext-new", **_fields())
        session.commit()
        proj = store.get_project(session, pid)
        assert proj is not None
        assert proj.external_id == "ext-new"
        assert proj.title == "Open Forecasting"
        assert proj.last_synced > 0

    def test_same_external_id_is_idempotent(self, session):
        with patch("evaluator.store.now_ms", side_effect=[1_000, 2_000]):
            first = store.upsert_project(session, "ext-1", **_fields())
            session.commit()
            before = services.project_summary(store.get_project(session, first))
            second = store.upsert_project(session, "ext-1", **_fields())
            session.commit()
        after = services.project_summary(store.get_project(session, second))

        assert first == second
        assert session.execute(select(func.count(Project.id))).scalar_one() == 1
        assert before.pop("last_synced") == 1_000
        assert after.pop("last_synced") == 2_000
        assert before == after

    def test_resync_overwrites_fields(self, session, project_id):
        pid = store.upsert_project(session, "ext-1", **_fields(title="Renamed", amount_raised=900.0))
        session.commit()
        assert pid == project_id
        proj = store.get_project(session, project_id)
        assert proj.title == "Renamed"
        assert proj.amount_raised == 900.0

    def test_missing_created_at_kept_on_update(self, session):
        with patch("evaluator.store.now_ms", side_effect=[1_000, 2_000]):
            pid = store.upsert_project(session, "ext-1", **_fields(created_at=None))
            session.commit()
            store.upsert_project(session, "ext-1", **_fields(created_at=None, title="Again"))
            session.commit()
        proj = store.get_project(session, pid)
        assert proj.title == "Again"
        assert proj.created_at == 1_000
        assert proj.last_synced == 2_000

    def test_unknown_field_rejected(self, session):
        with pytest.raises(TypeError):
            store.upsert_project(session, "ext-x", **_fields(), colour="red")


class TestListProjects:
    def test_newest_insert_first(self, session):
        # created_at deliberately runs the other way round
        for i in range(3):
            store.upsert_project(session, f"ext-{i}", **_fields(title=f"P{i}", created_at=10 - i))
        session.commit()
        titles = [p.title for p in store.list_projects(session)]
        assert titles == ["P2", "P1", "P0"]

    def test_resync_keeps_insertion_position(self, session):
        store.upsert_project(session, "ext-a", **_fields(title="A"))
        store.upsert_project(session, "ext-b", **_fields(title="B"))
        store.upsert_project(session, "ext-a", **_fields(title="A2"))
        session.commit()
        assert [p.title for p in store.list_projects(session)] == ["B", "A2"]

    def test_limit(self, session):
        for i in range(5):
            store.upsert_project(session, f"ext-{i}", **_fields())
        session.commit()
        assert len(store.list_projects(session, limit=2)) == 2
        assert len(store.list_projects(session)) == 5

    def test_empty(self, session):
        assert store.list_projects(session) == []
        assert store.count_projects(session) == 0


class TestGetProject:
    def test_missing_returns_none(self, session):
        assert store.get_project(session, 9999) is None


# =========================================================================
# Evaluation store
# =========================================================================


class TestUpsertEvaluation:
    def test_insert_then_get(self, session, project_id):
        eid = store.upsert_evaluation(session, "alice", project_id, 7, 8.5, "Solid team")
        session.commit()
        evaluation = store.get_evaluation(session, "alice", project_id)
        assert evaluation.id == eid
        assert evaluation.team_score == 7.0
        assert evaluation.idea_score == 8.5
        assert evaluation.notes == "Solid team"

    def test_one_row_per_reviewer_and_project(self, session, project_id):
        ids = {
            store.upsert_evaluation(session, "alice", project_id, 1, 2, "first"),
            store.upsert_evaluation(session, "alice", project_id, 3, 4, None),
            store.upsert_evaluation(session, "alice", project_id, 9, 10, "last"),
        }
        session.commit()
        assert len(ids) == 1
        rows = session.execute(
            select(Evaluation).where(Evaluation.reviewer_id == "alice")
        ).scalars().all()
        assert len(rows) == 1
        evaluation = store.get_evaluation(session, "alice", project_id)
        assert (evaluation.team_score, evaluation.idea_score, evaluation.notes) == (9.0, 10.0, "last")

    def test_overwrite_clears_notes(self, session, project_id):
        store.upsert_evaluation(session, "alice", project_id, 5, 5, "note")
        store.upsert_evaluation(session, "alice", project_id, 5, 5)
        session.commit()
        assert store.get_evaluation(session, "alice", project_id).notes is None

    def test_reviewers_are_independent(self, session, project_id):
        a = store.upsert_evaluation(session, "alice", project_id, 5, 5)
        b = store.upsert_evaluation(session, "bob", project_id, 6, 6)
        session.commit()
        assert a != b
        assert len(store.list_evaluations(session, project_id)) == 2

    @pytest.mark.parametrize("team, idea", [(0, 0), (10, 10), (0, 10)])
    def test_bounds_inclusive(self, session, project_id, team, idea):
        store.upsert_evaluation(session, "alice", project_id, team, idea)

    @pytest.mark.parametrize("team, idea", [
        (-0.1, 5), (10.1, 5), (5, -0.1), (5, 10.1), (math.nan, 5), (True, 5), ("7", 5),
    ])
    def test_out_of_range_rejected_without_write(self, session, project_id, team, idea):
        store.upsert_evaluation(session, "alice", project_id, 4, 6, "keep")
        session.commit()
        with pytest.raises(ValidationError):
            store.upsert_evaluation(session, "alice", project_id, team, idea, "lost")
        session.rollback()
        evaluation = store.get_evaluation(session, "alice", project_id)
        assert (evaluation.team_score, evaluation.idea_score, evaluation.notes) == (4.0, 6.0, "keep")

    @pytest.mark.parametrize("reviewer", [None, ""])
    def test_requires_reviewer(self, session, project_id, reviewer):
        with pytest.raises(AuthenticationError):
            store.upsert_evaluation(session, reviewer, project_id, 5, 5)
        assert store.list_evaluations(session, project_id) == []


class TestGetEvaluation:
    def test_missing_returns_none(self, session, project_id):
        assert store.get_evaluation(session, "nobody", project_id) is None

    def test_list_is_project_scoped(self, session, project_id):
        other = store.upsert_project(session, "ext-2", **_fields())
        store.upsert_evaluation(session, "alice", project_id, 5, 5)
        store.upsert_evaluation(session, "alice", other, 6, 6)
        session.commit()
        assert [e.project_id for e in store.list_evaluations(session, other)] == [other]


# =========================================================================
# Services
# =========================================================================


class TestAggregateScores:
    def test_empty(self, session, project_id):
        assert services.get_aggregate_scores(session, project_id) == {
            "team_score": {"average": 0, "count": 0},
            "idea_score": {"average": 0, "count": 0},
        }

    def test_mean_and_count(self, session, project_id):
        for reviewer, team, idea in [("a", 2, 1), ("b", 4, 2), ("c", 6, 2)]:
            store.upsert_evaluation(session, reviewer, project_id, team, idea)
        session.commit()
        result = services.get_aggregate_scores(session, project_id)
        assert result["team_score"] == {"average": 4.0, "count": 3}
        assert result["idea_score"]["average"] == pytest.approx(5 / 3)
        assert result["idea_score"]["count"] == 3

    def test_reflects_latest_write(self, session, project_id):
        store.upsert_evaluation(session, "a", project_id, 2, 2)
        session.commit()
        assert services.get_aggregate_scores(session, project_id)["team_score"]["average"] == 2.0
        store.upsert_evaluation(session, "a", project_id, 8, 2)
        session.commit()
        assert services.get_aggregate_scores(session, project_id)["team_score"]["average"] == 8.0

    def test_other_projects_ignored(self, session, project_id):
        other = store.upsert_project(session, "ext-2", **_fields())
        store.upsert_evaluation(session, "a", other, 10, 10)
        session.commit()
        assert services.get_aggregate_scores(session, project_id)["team_score"]["count"] == 0


class TestEvaluationService:
    def test_current_evaluation_unauthenticated(self, session, project_id):
        store.upsert_evaluation(session, "alice", project_id, 5, 5)
        session.commit()
        assert services.get_current_evaluation(session, None, project_id) is None

    def test_current_evaluation(self, session, project_id):
        store.upsert_evaluation(session, "alice", project_id, 5, 6)
        session.commit()
        evaluation = services.get_current_evaluation(session, "alice", project_id)
        assert services.evaluation_summary(evaluation)["idea_score"] == 6.0

    @pytest.mark.parametrize("notes, expected", [
        ("  ", None), ("", None), (None, None), ("  fine  ", "fine"),
    ])
    def test_submit_normalizes_notes(self, session, project_id, notes, expected):
        services.submit_evaluation(session, "alice", project_id, 5, 5, notes)
        session.commit()
        assert store.get_evaluation(session, "alice", project_id).notes == expected
