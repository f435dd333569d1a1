"""
Draft editing and immutable, versioned publishing.

Draft writes are optimistic: the caller passes the lock version it last
read and the write is a conditional UPDATE on that version. Publishing
allocates the next snapshot version with a compare-and-swap on the quiz's
`last_version` and on the draft lock version it read, inserts the snapshot
and moves the published pointer in the same transaction, so a snapshot is
either fully visible or not at all.
"""
import copy
import logging
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.orm import Session, sessionmaker

from quizgate.core.cache import SnapshotCache, default_snapshot_cache
from quizgate.core.clock import Clock, utcnow
from quizgate.core.config import Settings, settings as default_settings
from quizgate.core.database import session_scope
from quizgate.core.errors import (
    EmptyQuiz, InvalidQuestionData, PublishConflict, QuizNotFound, VersionConflict,
)
from quizgate.models.domain import (
    AccessConfig, Draft, Question, QuestionType, QuizSettings, SchedulingConfig, Snapshot,
)
from quizgate.models.orm import Quiz, QuizQuestion, QuizSnapshot
from quizgate.services.cidr import normalize_allow_list
from quizgate.services.question_validator import QuestionSchemaValidator
from quizgate.services.shareable_id import ShareableIdGenerator

logger = logging.getLogger(__name__)

DraftMutation = Callable[[Draft], Optional[Draft]]


class _LostPublishRace(Exception):
    pass


class VersionStore:
    def __init__(
        self,
        session_factory: sessionmaker,
        validator: Optional[QuestionSchemaValidator] = None,
        id_generator: Optional[ShareableIdGenerator] = None,
        cache: Optional[SnapshotCache] = None,
        clock: Clock = utcnow,
        cfg: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.validator = validator or QuestionSchemaValidator()
        self.id_generator = id_generator or ShareableIdGenerator()
        self.cfg = cfg or default_settings
        self.cache = cache if cache is not None else default_snapshot_cache(self.cfg)
        self.clock = clock

    # ========== Drafts ==========

    def create_draft(
        self,
        owner_id: str,
        title: str,
        description: Optional[str] = None,
        settings: Optional[QuizSettings] = None,
        access: Optional[AccessConfig] = None,
        scheduling: Optional[SchedulingConfig] = None,
        questions: Iterable[Question] = (),
    ) -> Draft:
        questions = self._prepare_questions(questions)
        access = self._normalize_access(access or AccessConfig())
        with session_scope(self.session_factory) as db:
            code = self.id_generator.generate_unique(
                lambda c: db.scalar(select(Quiz.id).where(Quiz.shareable_id == c)) is not None,
                max_tries=self.cfg.SHAREABLE_ID_MAX_TRIES,
            )
            draft = Draft(
                quiz_id=str(uuid.uuid4()),
                shareable_id=code,
                owner_id=owner_id,
                title=title,
                description=description,
                settings=settings or QuizSettings(),
                access=access,
                scheduling=scheduling or SchedulingConfig(),
                questions=questions,
            )
            db.add(Quiz(
                id=draft.quiz_id,
                shareable_id=draft.shareable_id,
                owner_id=owner_id,
                lock_version=0,
                last_version=0,
                is_published=False,
                **self._content_columns(draft),
            ))
            db.flush()
            self._replace_questions(db, draft.quiz_id, questions)
        logger.info(f"Created quiz {draft.quiz_id} ({draft.shareable_id}) for {owner_id}")
        return draft

    def get_draft(self, quiz_id: str) -> Draft:
        with session_scope(self.session_factory) as db:
            return self._to_draft(db, self._load_quiz(db, quiz_id))

    def get_draft_by_shareable_id(self, shareable_id: str) -> Draft:
        with session_scope(self.session_factory) as db:
            row = db.scalar(select(Quiz).where(Quiz.shareable_id == shareable_id))
            if row is None:
                raise QuizNotFound(shareable_id)
            return self._to_draft(db, row)

    def update_draft(self, quiz_id: str, expected_version: int, mutation: DraftMutation) -> Draft:
        """Apply `mutation` to the draft if it is still at `expected_version`.

        The mutation gets a deep copy and may edit it in place or return a
        replacement. Identity and publication fields cannot be changed here.
        """
        with session_scope(self.session_factory) as db:
            row = self._load_quiz(db, quiz_id)
            if row.lock_version != expected_version:
                logger.info(f"Draft conflict on {quiz_id}: expected {expected_version}, at {row.lock_version}")
                raise VersionConflict(row.lock_version, expected_version)

            current = self._to_draft(db, row)
            working = current.model_copy(deep=True)
            result = mutation(working)
            mutated = Draft.model_validate((result if result is not None else working).model_dump())

            questions = self._prepare_questions(mutated.questions)
            new_version = expected_version + 1
            updated = mutated.model_copy(update={
                "quiz_id": current.quiz_id,
                "shareable_id": current.shareable_id,
                "owner_id": current.owner_id,
                "published_version": current.published_version,
                "is_published": current.is_published,
                "lock_version": new_version,
                "access": self._normalize_access(mutated.access),
                "questions": questions,
            })

            res = db.execute(
                update(Quiz)
                .where(Quiz.id == quiz_id, Quiz.lock_version == expected_version)
                .values(lock_version=new_version, updated_at=self.clock(), **self._content_columns(updated))
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                current_version = db.scalar(
                    select(Quiz.lock_version).where(Quiz.id == quiz_id).execution_options(populate_existing=True)
                )
                logger.info(f"Draft conflict on {quiz_id}: lost conditional write at {expected_version}")
                raise VersionConflict(current_version, expected_version)

            self._replace_questions(db, quiz_id, questions)
        return updated

    # ========== Publishing ==========

    def create_snapshot(self, quiz_id: str, published_by: Optional[str] = None) -> Snapshot:
        """Publish the current draft as the next immutable version."""
        for attempt in range(1, self.cfg.PUBLISH_MAX_RETRIES + 1):
            try:
                snapshot = self._publish_once(quiz_id, published_by)
            except _LostPublishRace:
                logger.info(f"Publish race on {quiz_id}, retry {attempt}")
                continue
            logger.info(f"Published quiz {quiz_id} version {snapshot.version}")
            if self.cache is not None:
                self.cache.set(quiz_id, snapshot.version, snapshot.model_dump(mode="json"))
            return snapshot
        raise PublishConflict(quiz_id)

    def _publish_once(self, quiz_id: str, published_by: Optional[str]) -> Snapshot:
        with session_scope(self.session_factory) as db:
            row = self._load_quiz(db, quiz_id)
            # the swap fails if the draft was edited after this read
            seen_lock = row.lock_version
            draft = self._to_draft(db, row)
            if not draft.questions:
                raise EmptyQuiz(quiz_id)
            # payloads may have been written by paths that skipped validation
            self.validator.validate_all(draft.questions)

            seen_version = row.last_version
            version = seen_version + 1
            res = db.execute(
                update(Quiz)
                .where(Quiz.id == quiz_id, Quiz.last_version == seen_version, Quiz.lock_version == seen_lock)
                .values(last_version=version, published_version=version, is_published=True)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                raise _LostPublishRace()

            snapshot = Snapshot.model_validate({
                **copy.deepcopy(draft.content()),
                "quiz_id": quiz_id,
                "version": version,
                "published_at": self.clock(),
                "published_by": published_by,
            })
            db.add(QuizSnapshot(
                quiz_id=quiz_id,
                version=version,
                body=snapshot.model_dump(mode="json"),
                published_by=published_by,
                published_at=snapshot.published_at,
            ))
        return snapshot

    def unpublish(self, quiz_id: str) -> Draft:
        """Take the quiz offline. Snapshots and the version pointer stay for existing attempts."""
        with session_scope(self.session_factory) as db:
            self._load_quiz(db, quiz_id)
            db.execute(
                update(Quiz).where(Quiz.id == quiz_id).values(is_published=False)
                .execution_options(synchronize_session=False)
            )
            row = db.scalar(select(Quiz).where(Quiz.id == quiz_id).execution_options(populate_existing=True))
            draft = self._to_draft(db, row)
        logger.info(f"Unpublished quiz {quiz_id}")
        return draft

    def get_published_snapshot(self, quiz_id: str) -> Optional[Snapshot]:
        with session_scope(self.session_factory) as db:
            version = db.scalar(select(Quiz.published_version).where(Quiz.id == quiz_id))
        if version is None:
            return None
        return self.get_snapshot(quiz_id, version)

    def get_snapshot(self, quiz_id: str, version: int) -> Optional[Snapshot]:
        if self.cache is not None:
            cached = self.cache.get(quiz_id, version)
            if cached is not None:
                return Snapshot.model_validate(cached)
        with session_scope(self.session_factory) as db:
            body = db.scalar(
                select(QuizSnapshot.body).where(QuizSnapshot.quiz_id == quiz_id, QuizSnapshot.version == version)
            )
        if body is None:
            return None
        if self.cache is not None:
            self.cache.set(quiz_id, version, body)
        return Snapshot.model_validate(body)

    def has_unpublished_changes(self, quiz_id: str) -> bool:
        draft = self.get_draft(quiz_id)
        if draft.published_version is None:
            return False
        published = self.get_snapshot(quiz_id, draft.published_version)
        if published is None:
            return False
        return draft.content() != published.content()

    # ========== Helpers ==========

    def _load_quiz(self, db: Session, quiz_id: str) -> Quiz:
        row = db.get(Quiz, quiz_id)
        if row is None:
            raise QuizNotFound(quiz_id)
        return row

    def _to_draft(self, db: Session, row: Quiz) -> Draft:
        rows = db.scalars(
            select(QuizQuestion).where(QuizQuestion.quiz_id == row.id).order_by(QuizQuestion.position)
        ).all()
        return Draft(
            quiz_id=row.id,
            shareable_id=row.shareable_id,
            owner_id=row.owner_id,
            title=row.title,
            description=row.description,
            settings=QuizSettings.model_validate(row.settings or {}),
            access=AccessConfig.model_validate(row.access or {}),
            scheduling=SchedulingConfig.model_validate(row.scheduling or {}),
            questions=[self._to_question(q) for q in rows],
            lock_version=row.lock_version,
            published_version=row.published_version,
            is_published=row.is_published,
        )

    @staticmethod
    def _to_question(row: QuizQuestion) -> Question:
        if row.type not in QuestionType.__members__:
            raise InvalidQuestionData(row.type, "unknown question type")
        return Question(
            id=row.id,
            type=QuestionType(row.type),
            text=row.text,
            points=row.points,
            explanation=row.explanation,
            payload=copy.deepcopy(row.payload or {}),
        )

    def _prepare_questions(self, questions: Iterable[Question]) -> List[Question]:
        prepared: List[Question] = []
        seen = set()
        for q in questions:
            self.validator.validate_question(q)
            q = q.model_copy(deep=True, update={"id": q.id or str(uuid.uuid4())})
            if q.id in seen:
                raise InvalidQuestionData(q.type, f"duplicate question id '{q.id}'")
            seen.add(q.id)
            prepared.append(q)
        return prepared

    @staticmethod
    def _normalize_access(access: AccessConfig) -> AccessConfig:
        return access.model_copy(update={"allowed_ip_addresses": normalize_allow_list(access.allowed_ip_addresses)})

    @staticmethod
    def _content_columns(draft: Draft) -> Dict[str, Any]:
        return {
            "title": draft.title,
            "description": draft.description,
            "settings": draft.settings.model_dump(mode="json"),
            "access": draft.access.model_dump(mode="json"),
            "scheduling": draft.scheduling.model_dump(mode="json"),
        }

    @staticmethod
    def _replace_questions(db: Session, quiz_id: str, questions: List[Question]) -> None:
        db.execute(
            delete(QuizQuestion).where(QuizQuestion.quiz_id == quiz_id)
            .execution_options(synchronize_session=False)
        )
        if not questions:
            return
        db.execute(insert(QuizQuestion), [
            {
                "id": q.id,
                "quiz_id": quiz_id,
                "position": position,
                "type": q.type.value,
                "text": q.text,
                "points": q.points,
                "explanation": q.explanation,
                "payload": copy.deepcopy(q.payload),
            }
            for position, q in enumerate(questions)
        ])
