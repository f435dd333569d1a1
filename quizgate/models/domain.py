"""
Domain models for drafts, snapshots, identities and attempts.
"""
import enum
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class QuestionType(str, enum.Enum):
    """The eight supported question shapes."""
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    MULTIPLE_ANSWER = "MULTIPLE_ANSWER"
    TRUE_FALSE = "TRUE_FALSE"
    FILL_IN_BLANK = "FILL_IN_BLANK"
    DROPDOWN = "DROPDOWN"
    FREE_TEXT = "FREE_TEXT"
    NUMERIC = "NUMERIC"
    FILE_UPLOAD = "FILE_UPLOAD"


class Question(BaseModel):
    """A question as authored. `payload` is validated per `type`."""
    id: Optional[str] = None
    type: QuestionType
    text: str = ""
    points: int = Field(default=1, ge=0)
    explanation: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class QuizSettings(BaseModel):
    time_limit: Optional[int] = None  # minutes
    passing_score: Optional[int] = Field(default=None, ge=0, le=100)
    shuffle_questions: bool = False
    shuffle_choices: bool = False
    show_correct_answers: bool = True
    max_attempts: Optional[int] = Field(default=None, ge=1)


class AccessConfig(BaseModel):
    is_public: bool = True
    allow_anonymous: bool = False
    require_access_code: bool = False
    access_code_hash: Optional[str] = None
    filter_ip_addresses: bool = False
    allowed_ip_addresses: Optional[str] = None


class SchedulingConfig(BaseModel):
    available_from: Optional[datetime] = None
    available_until: Optional[datetime] = None
    results_visible_from: Optional[datetime] = None


class Draft(BaseModel):
    """Mutable quiz definition, owned by its author."""
    quiz_id: str
    shareable_id: str
    owner_id: str
    title: str
    description: Optional[str] = None
    settings: QuizSettings = Field(default_factory=QuizSettings)
    access: AccessConfig = Field(default_factory=AccessConfig)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    questions: List[Question] = Field(default_factory=list)
    lock_version: int = 0
    published_version: Optional[int] = None
    is_published: bool = False

    def content(self) -> Dict[str, Any]:
        """The publishable part of the draft."""
        return self.model_dump(
            mode="json",
            include={"title", "description", "settings", "access", "scheduling", "questions"},
        )


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    return value


class FrozenQuestion(Question):
    """A published question. The payload is read-only all the way down."""
    model_config = ConfigDict(frozen=True)

    payload: Mapping[str, Any] = Field(default_factory=dict)

    @field_validator("payload")
    @classmethod
    def freeze_payload(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return _freeze(v)

    @field_serializer("payload")
    def thaw_payload(self, v: Mapping[str, Any]) -> Dict[str, Any]:
        return _thaw(v)


class FrozenQuizSettings(QuizSettings):
    model_config = ConfigDict(frozen=True)


class FrozenAccessConfig(AccessConfig):
    model_config = ConfigDict(frozen=True)


class FrozenSchedulingConfig(SchedulingConfig):
    model_config = ConfigDict(frozen=True)


class Snapshot(BaseModel):
    """Immutable capture of a draft at publish time."""
    model_config = ConfigDict(frozen=True)

    quiz_id: str
    version: int
    title: str
    description: Optional[str] = None
    settings: FrozenQuizSettings
    access: FrozenAccessConfig
    scheduling: FrozenSchedulingConfig
    questions: Tuple[FrozenQuestion, ...]
    published_at: datetime
    published_by: Optional[str] = None

    def content(self) -> Dict[str, Any]:
        return self.model_dump(
            mode="json",
            include={"title", "description", "settings", "access", "scheduling", "questions"},
        )

    def question(self, question_id: str) -> Optional[Question]:
        return next((q for q in self.questions if q.id == question_id), None)


class AuthenticatedIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)
    user_id: str

    @property
    def is_anonymous(self) -> bool:
        return False

    @property
    def key(self) -> str:
        return f"user:{self.user_id}"


class AnonymousIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)
    session_id: str = Field(min_length=1)
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return True

    @property
    def key(self) -> str:
        return f"anon:{self.session_id}"


Identity = Union[AuthenticatedIdentity, AnonymousIdentity]


class Attempt(BaseModel):
    """One test-taker's attempt, bound to a snapshot version."""
    id: str
    quiz_id: str
    snapshot_version: int
    identity_key: str
    ip_address: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    ordinal: Optional[int] = None
    score: Optional[int] = None
    max_score: Optional[int] = None
    percentage: Optional[float] = None
    passed: Optional[bool] = None
    answers: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None
