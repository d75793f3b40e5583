from __future__ import annotations

from sqlalchemy import BigInteger, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    creator: Mapped[str] = mapped_column(String(300), default="")
    slug: Mapped[str] = mapped_column(String(500), default="")
    blurb: Mapped[str] = mapped_column(Text, default="")
    amount_raised: Mapped[float] = mapped_column(Float, default=0.0)
    funding_goal: Mapped[float] = mapped_column(Float, default=0.0)  # 0 = unset
    min_funding: Mapped[float] = mapped_column(Float, default=0.0)  # 0 = unset
    stage: Mapped[str] = mapped_column(String(50), default="")
    type: Mapped[str] = mapped_column(String(50), default="")
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)  # epoch ms
    causes: Mapped[str] = mapped_column(Text, default="")
    last_synced: Mapped[int] = mapped_column(BigInteger, nullable=False)  # epoch ms

    evaluations: Mapped[list[Evaluation]] = relationship("Evaluation", back_populates="project")


class Evaluation(Base):
    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint("reviewer_id", "project_id", name="uq_evaluations_reviewer_project"),
        Index("ix_evaluations_project_id", "project_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reviewer_id: Mapped[str] = mapped_column(String(200), nullable=False)
    project_id: Mapped[int] = mapped_column(Integer, ForeignKey("projects.id"), nullable=False)
    team_score: Mapped[float] = mapped_column(Float, nullable=False)  # 0-10
    idea_score: Mapped[float] = mapped_column(Float, nullable=False)  # 0-10
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    project: Mapped[Project] = relationship("Project", back_populates="evaluations")
