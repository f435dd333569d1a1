"""
Typed question payloads.

Each question type has its own payload model; a question is parsed once,
at the boundary, into the matching variant of `TypedQuestion`. Payload keys
keep their camelCase wire names through aliases, and unknown keys are kept
so a payload round-trips unchanged.
"""
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from pydantic import (
    BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr,
    TypeAdapter, field_validator, model_validator,
)

from quizgate.models.domain import Question, QuestionType

MAX_CHOICE_TEXT_LENGTH = 2000
MAX_TOLERANCE = 1_000_000
MIN_FILE_SIZE_MB = 1
MAX_FILE_SIZE_MB = 100

Number = Union[StrictInt, StrictFloat]


class Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Choice(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Union[StrictStr, StrictInt]
    text: StrictStr
    correct: Any = False

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("'text' must be a non-empty string")
        if len(v) > MAX_CHOICE_TEXT_LENGTH:
            raise ValueError(f"'text' cannot exceed {MAX_CHOICE_TEXT_LENGTH} characters")
        return v

    @property
    def is_correct(self) -> bool:
        # only a literal boolean true marks a choice correct
        return self.correct is True


class ChoicePayload(Payload):
    choices: List[Choice]

    @model_validator(mode="after")
    def check_choices(self):
        if len(self.choices) < 2:
            raise ValueError("'choices' must have at least 2 choices")
        seen = set()
        for choice in self.choices:
            if choice.id in seen:
                raise ValueError(f"duplicate choice id '{choice.id}' found")
            seen.add(choice.id)
        self.check_correct_count(sum(1 for c in self.choices if c.is_correct))
        return self

    def check_correct_count(self, count: int) -> None:
        raise NotImplementedError

    def correct_ids(self) -> List[Union[str, int]]:
        return [c.id for c in self.choices if c.is_correct]


class MultipleChoicePayload(ChoicePayload):
    def check_correct_count(self, count: int) -> None:
        if count != 1:
            raise ValueError("must have exactly 1 correct answer")


class MultipleAnswerPayload(ChoicePayload):
    def check_correct_count(self, count: int) -> None:
        if count < 1:
            raise ValueError("must have at least 1 correct answer")


class DropdownPayload(MultipleChoicePayload):
    pass


class TrueFalsePayload(Payload):
    correct: StrictBool


AcceptableAnswers = Annotated[List[StrictStr], Field(min_length=1)]


class FillInBlankPayload(Payload):
    answers: Annotated[List[Union[StrictStr, AcceptableAnswers]], Field(min_length=1)]
    case_sensitive: Any = Field(default=False, alias="caseSensitive")
    numeric: Any = False
    tolerance: Any = None

    @property
    def is_case_sensitive(self) -> bool:
        return self.case_sensitive is True

    def numeric_tolerance(self) -> Optional[float]:
        """Tolerance for numeric blanks: a number, a numeric string, or "off"."""
        if self.numeric is not True or self.tolerance is None or self.tolerance == "off":
            return None
        if isinstance(self.tolerance, bool):
            return None
        try:
            return float(self.tolerance)
        except (TypeError, ValueError):
            return None


class FreeTextPayload(Payload):
    allow_image: StrictBool = Field(default=False, alias="allowImage")
    reference_answer: Optional[str] = Field(default=None, alias="referenceAnswer")


class NumericPayload(Payload):
    correct_answer: Number = Field(alias="correctAnswer")
    tolerance: Optional[Number] = None
    unit: Optional[StrictStr] = None

    @field_validator("tolerance")
    @classmethod
    def tolerance_in_range(cls, v):
        if v is None:
            return v
        if v < 0:
            raise ValueError("'tolerance' must be non-negative")
        if v > MAX_TOLERANCE:
            raise ValueError("'tolerance' cannot exceed 1,000,000")
        return v


class FileUploadPayload(Payload):
    accepted_types: Annotated[List[StrictStr], Field(min_length=1)] = Field(alias="acceptedTypes")
    max_file_size_mb: StrictInt = Field(alias="maxFileSizeMB", ge=MIN_FILE_SIZE_MB, le=MAX_FILE_SIZE_MB)

    @field_validator("accepted_types")
    @classmethod
    def types_not_blank(cls, v: List[str]) -> List[str]:
        if any(not t.strip() for t in v):
            raise ValueError("each accepted type must be a non-empty string")
        return v


PAYLOAD_MODELS: Dict[QuestionType, Type[Payload]] = {
    QuestionType.MULTIPLE_CHOICE: MultipleChoicePayload,
    QuestionType.MULTIPLE_ANSWER: MultipleAnswerPayload,
    QuestionType.TRUE_FALSE: TrueFalsePayload,
    QuestionType.FILL_IN_BLANK: FillInBlankPayload,
    QuestionType.DROPDOWN: DropdownPayload,
    QuestionType.FREE_TEXT: FreeTextPayload,
    QuestionType.NUMERIC: NumericPayload,
    QuestionType.FILE_UPLOAD: FileUploadPayload,
}


# ========== Tagged union ==========

class TypedQuestionBase(BaseModel):
    id: Optional[str] = None
    text: str = ""
    points: int = 1
    explanation: Optional[str] = None


class MultipleChoiceQuestion(TypedQuestionBase):
    type: Literal[QuestionType.MULTIPLE_CHOICE]
    payload: MultipleChoicePayload


class MultipleAnswerQuestion(TypedQuestionBase):
    type: Literal[QuestionType.MULTIPLE_ANSWER]
    payload: MultipleAnswerPayload


class TrueFalseQuestion(TypedQuestionBase):
    type: Literal[QuestionType.TRUE_FALSE]
    payload: TrueFalsePayload


class FillInBlankQuestion(TypedQuestionBase):
    type: Literal[QuestionType.FILL_IN_BLANK]
    payload: FillInBlankPayload


class DropdownQuestion(TypedQuestionBase):
    type: Literal[QuestionType.DROPDOWN]
    payload: DropdownPayload


class FreeTextQuestion(TypedQuestionBase):
    type: Literal[QuestionType.FREE_TEXT]
    payload: FreeTextPayload


class NumericQuestion(TypedQuestionBase):
    type: Literal[QuestionType.NUMERIC]
    payload: NumericPayload


class FileUploadQuestion(TypedQuestionBase):
    type: Literal[QuestionType.FILE_UPLOAD]
    payload: FileUploadPayload


TypedQuestion = Annotated[
    Union[
        MultipleChoiceQuestion, MultipleAnswerQuestion, TrueFalseQuestion,
        FillInBlankQuestion, DropdownQuestion, FreeTextQuestion,
        NumericQuestion, FileUploadQuestion,
    ],
    Field(discriminator="type"),
]

_typed_question = TypeAdapter(TypedQuestion)


def parse_question(question: Question) -> TypedQuestion:
    """Parse a stored question into its typed variant.

    Raises pydantic.ValidationError; callers wanting the domain error go
    through QuestionSchemaValidator first.
    """
    return _typed_question.validate_python(question.model_dump())
