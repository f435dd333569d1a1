"""
Attempts: admission, submission and the race-safe attempt quota.

Only completed attempts count against the quota. Completing an attempt
claims the next ordinal for its (quiz, identity) pair under a unique
constraint, so two concurrent submissions can never both take the last
slot; the loser re-reads the count and either claims the following
ordinal or is refused.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from quizgate.core.clock import Clock, utcnow
from quizgate.core.config import Settings, settings as default_settings
from quizgate.core.database import session_scope
from quizgate.core.errors import (
    AdmissionDenied, AttemptNotFound, PersistenceError, QuizNotFound, SnapshotNotFound,
)
from quizgate.models.domain import Attempt, Identity, Snapshot
from quizgate.models.orm import QuizAttempt, QuizSnapshot
from quizgate.services.access_gate import (
    AccessGate, AdmissionContext, AttemptLimitExceeded, Decision, as_utc,
)
from quizgate.services.scoring import score_answer
from quizgate.services.version_store import VersionStore

logger = logging.getLogger(__name__)


def _to_attempt(row: QuizAttempt) -> Attempt:
    return Attempt(
        id=row.id,
        quiz_id=row.quiz_id,
        snapshot_version=row.snapshot_version,
        identity_key=row.identity_key,
        ip_address=row.ip_address,
        started_at=row.started_at,
        completed_at=row.completed_at,
        ordinal=row.ordinal,
        score=row.score,
        max_score=row.max_score,
        percentage=row.percentage,
        passed=row.passed,
        answers=row.answers or [],
    )


@dataclass
class Completion:
    score: int
    max_score: int
    percentage: float
    passed: bool
    answers: List[Dict[str, Any]] = field(default_factory=list)


class AttemptLedger:
    """Append-only attempt store."""

    def __init__(self, session_factory: sessionmaker, clock: Clock = utcnow, cfg: Optional[Settings] = None):
        self.session_factory = session_factory
        self.clock = clock
        self.cfg = cfg or default_settings

    def count_completed(self, quiz_id: str, identity: Identity) -> int:
        with session_scope(self.session_factory) as db:
            return self._count_completed(db, quiz_id, identity.key)

    @staticmethod
    def _count_completed(db, quiz_id: str, identity_key: str) -> int:
        return db.scalar(
            select(func.count(QuizAttempt.id)).where(
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.identity_key == identity_key,
                QuizAttempt.ordinal.is_not(None),
            )
        ) or 0

    def open_attempt(self, quiz_id: str, snapshot_version: int, identity: Identity, ip_address: Optional[str] = None) -> Attempt:
        """Open an attempt bound to a published version; SnapshotNotFound otherwise."""
        row = QuizAttempt(
            id=str(uuid.uuid4()),
            quiz_id=quiz_id,
            snapshot_version=snapshot_version,
            identity_key=identity.key,
            user_id=None if identity.is_anonymous else identity.user_id,
            anonymous_session_id=identity.session_id if identity.is_anonymous else None,
            anonymous_name=identity.name if identity.is_anonymous else None,
            anonymous_email=identity.email if identity.is_anonymous else None,
            ip_address=ip_address,
            started_at=self.clock(),
            answers=[],
        )
        with session_scope(self.session_factory) as db:
            published = db.scalar(
                select(QuizSnapshot.id).where(
                    QuizSnapshot.quiz_id == quiz_id, QuizSnapshot.version == snapshot_version
                )
            )
            if published is None:
                raise SnapshotNotFound(quiz_id, snapshot_version)
            db.add(row)
            db.flush()
            return _to_attempt(row)

    def find_in_progress(self, quiz_id: str, identity: Identity) -> Optional[Attempt]:
        with session_scope(self.session_factory) as db:
            row = db.scalar(
                select(QuizAttempt)
                .where(
                    QuizAttempt.quiz_id == quiz_id,
                    QuizAttempt.identity_key == identity.key,
                    QuizAttempt.completed_at.is_(None),
                )
                .order_by(QuizAttempt.started_at.desc())
                .limit(1)
            )
            return _to_attempt(row) if row is not None else None

    def get(self, attempt_id: str) -> Attempt:
        with session_scope(self.session_factory) as db:
            row = db.get(QuizAttempt, attempt_id)
            if row is None:
                raise AttemptNotFound(attempt_id)
            return _to_attempt(row)

    def complete(self, attempt_id: str, max_attempts: Optional[int], completion: Completion) -> Attempt:
        """Mark an attempt completed, claiming the next quota slot.

        Raises AdmissionDenied(AttemptLimitExceeded) when every slot is taken.
        A completed attempt is returned unchanged.
        """
        with session_scope(self.session_factory) as db:
            for _ in range(self.cfg.ATTEMPT_CLAIM_MAX_RETRIES):
                row = db.get(QuizAttempt, attempt_id, populate_existing=True)
                if row is None:
                    raise AttemptNotFound(attempt_id)
                if row.completed_at is not None:
                    return _to_attempt(row)

                ordinal = self._count_completed(db, row.quiz_id, row.identity_key) + 1
                if max_attempts is not None and ordinal > max_attempts:
                    logger.info(f"Attempt {attempt_id} refused: quota of {max_attempts} used up")
                    raise AdmissionDenied(AttemptLimitExceeded(max_attempts))
                try:
                    res = db.execute(
                        update(QuizAttempt)
                        .where(QuizAttempt.id == attempt_id, QuizAttempt.completed_at.is_(None))
                        .values(
                            ordinal=ordinal,
                            completed_at=self.clock(),
                            score=completion.score,
                            max_score=completion.max_score,
                            percentage=completion.percentage,
                            passed=completion.passed,
                            answers=completion.answers,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    db.commit()
                except IntegrityError:
                    db.rollback()
                    logger.info(f"Ordinal {ordinal} for attempt {attempt_id} taken concurrently, retrying")
                    continue
                if res.rowcount == 1:
                    return _to_attempt(db.get(QuizAttempt, attempt_id, populate_existing=True))
                # another submission of this same attempt won; loop returns its result
            raise PersistenceError(f"Could not claim a completion slot for attempt {attempt_id}")


@dataclass
class StartResult:
    decision: Decision
    attempt: Optional[Attempt] = None
    snapshot: Optional[Snapshot] = None

    @property
    def allowed(self) -> bool:
        return self.decision.allowed


class AttemptService:
    """Admission and submission on top of the version store and ledger."""

    def __init__(
        self,
        store: VersionStore,
        ledger: AttemptLedger,
        gate: Optional[AccessGate] = None,
        clock: Clock = utcnow,
        cfg: Optional[Settings] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.gate = gate or AccessGate()
        self.clock = clock
        self.cfg = cfg or default_settings

    def effective_max_attempts(self, snapshot: Snapshot, identity: Identity) -> Optional[int]:
        limit = snapshot.settings.max_attempts
        if identity.is_anonymous:
            anon = self.cfg.ANONYMOUS_ATTEMPT_LIMIT
            limit = anon if limit is None else min(limit, anon)
        return limit

    def start(
        self,
        quiz_id: str,
        identity: Identity,
        submitted_code: Optional[str] = None,
        submitted_ip: Optional[str] = None,
        authorized: bool = False,
    ) -> StartResult:
        draft = self.store.get_draft(quiz_id)
        snapshot = self.store.get_published_snapshot(quiz_id)
        if snapshot is None:
            # never published: the gate still decides, from the draft's config
            decision = self.gate.evaluate(
                draft.access, draft.scheduling, False,
                AdmissionContext(now=self.clock(), identity=identity),
            )
            return StartResult(decision)

        context = AdmissionContext(
            now=self.clock(),
            identity=identity,
            submitted_code=submitted_code,
            submitted_ip=submitted_ip,
            prior_attempt_count=self.ledger.count_completed(quiz_id, identity),
            authorized=authorized or (not identity.is_anonymous and identity.user_id == draft.owner_id),
        )
        decision = self.gate.evaluate(
            snapshot.access, snapshot.scheduling, draft.is_published, context,
            self.effective_max_attempts(snapshot, identity),
        )
        if not decision.allowed:
            return StartResult(decision, snapshot=snapshot)

        attempt = self.ledger.find_in_progress(quiz_id, identity)
        if attempt is None:
            attempt = self.ledger.open_attempt(quiz_id, snapshot.version, identity, submitted_ip)
            logger.info(f"Opened attempt {attempt.id} on {quiz_id}@{snapshot.version}")
        return StartResult(decision, attempt, snapshot)

    def submit(self, attempt_id: str, identity: Identity, answers: List[Dict[str, Any]]) -> Attempt:
        """Score answers against the snapshot the attempt is bound to.

        `answers` items are {"questionId": ..., "answer": {...}}. Unknown
        question ids are ignored; unanswered questions score zero.
        """
        attempt = self.ledger.get(attempt_id)
        if attempt.identity_key != identity.key:
            raise AttemptNotFound(attempt_id)
        if attempt.is_completed:
            return attempt

        snapshot = self.store.get_snapshot(attempt.quiz_id, attempt.snapshot_version)
        if snapshot is None:
            raise QuizNotFound(attempt.quiz_id)

        by_question = {a.get("questionId"): a.get("answer") for a in answers if isinstance(a, Mapping)}
        score = max_score = 0
        graded: List[Dict[str, Any]] = []
        for question in snapshot.questions:
            max_score += question.points
            if question.id not in by_question:
                continue
            result = score_answer(question, by_question[question.id])
            score += result.points_earned
            graded.append({
                "questionId": question.id,
                "answer": by_question[question.id],
                "isCorrect": result.is_correct,
                "pointsEarned": result.points_earned,
                "pendingReview": result.pending_review,
            })

        percentage = percent(score, max_score)
        passing = snapshot.settings.passing_score
        completion = Completion(
            score=score,
            max_score=max_score,
            percentage=percentage,
            passed=passing is None or percentage >= passing,
            answers=graded,
        )
        completed = self.ledger.complete(attempt_id, self.effective_max_attempts(snapshot, identity), completion)
        logger.info(f"Attempt {attempt_id} completed: {completed.score}/{completed.max_score}")
        return completed

    def results_visible(self, snapshot: Snapshot, now: Optional[datetime] = None) -> bool:
        bound = snapshot.scheduling.results_visible_from
        if bound is None:
            return True
        return as_utc(now or self.clock()) >= as_utc(bound)


def percent(score: int, max_score: int) -> float:
    if max_score <= 0:
        return 0.0
    value = Decimal(score * 100) / Decimal(max_score)
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
