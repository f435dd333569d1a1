from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text,
    UniqueConstraint, func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Quiz(Base):
    """The editable draft plus its publication pointers."""
    __tablename__ = "quizzes"
    __table_args__ = (
        Index("idx_quizzes_owner", "owner_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    shareable_id: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    settings: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    access: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    scheduling: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    # optimistic concurrency, bumped on every draft write
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # highest snapshot version ever allocated
    last_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    published_version: Mapped[Optional[int]] = mapped_column(Integer)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    questions: Mapped[List["QuizQuestion"]] = relationship(
        back_populates="quiz", cascade="all, delete-orphan", order_by="QuizQuestion.position"
    )


class QuizQuestion(Base):
    __tablename__ = "quiz_questions"
    __table_args__ = (
        UniqueConstraint("quiz_id", "position", name="uq_quiz_question_position"),
    )

    # question ids are stable within a quiz, not globally
    quiz_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), primary_key=True
    )
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    explanation: Mapped[Optional[str]] = mapped_column(Text)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)

    quiz: Mapped["Quiz"] = relationship(back_populates="questions")


class QuizSnapshot(Base):
    """Insert-only published versions."""
    __tablename__ = "quiz_snapshots"
    __table_args__ = (
        UniqueConstraint("quiz_id", "version", name="uq_quiz_snapshot_version"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quiz_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    body: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    published_by: Mapped[Optional[str]] = mapped_column(String(255))
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"
    __table_args__ = (
        Index("idx_qa_quiz_identity", "quiz_id", "identity_key"),
        # at most one completed attempt per ordinal: the quota's race guard
        UniqueConstraint("quiz_id", "identity_key", "ordinal", name="uq_quiz_attempt_ordinal"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    quiz_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False
    )
    snapshot_version: Mapped[int] = mapped_column(Integer, nullable=False)
    identity_key: Mapped[str] = mapped_column(String(300), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(255))
    anonymous_session_id: Mapped[Optional[str]] = mapped_column(String(255))
    anonymous_name: Mapped[Optional[str]] = mapped_column(String(255))
    anonymous_email: Mapped[Optional[str]] = mapped_column(String(255))
    ip_address: Mapped[Optional[str]] = mapped_column(String(45))
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    ordinal: Mapped[Optional[int]] = mapped_column(Integer)
    score: Mapped[Optional[int]] = mapped_column(Integer)
    max_score: Mapped[Optional[int]] = mapped_column(Integer)
    percentage: Mapped[Optional[float]] = mapped_column(Float)
    passed: Mapped[Optional[bool]] = mapped_column(Boolean)
    answers: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list)
