"""
Per-type question payload validation.

Runs on every question write and again, over the whole question list, at
publish time.
"""
import logging
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from quizgate.core.errors import InvalidQuestionData
from quizgate.models.domain import Question, QuestionType
from quizgate.models.payloads import PAYLOAD_MODELS

logger = logging.getLogger(__name__)


def describe_validation_error(exc: ValidationError) -> str:
    """Turn the first pydantic error into a reason naming the offending field."""
    err = exc.errors()[0]
    if err["type"] == "value_error" and "error" in err.get("ctx", {}):
        msg = str(err["ctx"]["error"])
    else:
        msg = err["msg"]
    loc = ".".join(str(part) for part in err["loc"])
    return f"{loc}: {msg}" if loc else msg


class QuestionSchemaValidator:
    """Checks question payloads against the shape required by their type."""

    def validate(self, question_type: Any, payload: Any) -> None:
        try:
            qtype = QuestionType(question_type)
        except ValueError:
            raise InvalidQuestionData(question_type, "unknown question type") from None

        if payload is None:
            raise InvalidQuestionData(qtype, "data cannot be null")
        if not isinstance(payload, Mapping):
            raise InvalidQuestionData(qtype, "data must be an object")

        try:
            PAYLOAD_MODELS[qtype].model_validate(dict(payload))
        except ValidationError as e:
            raise InvalidQuestionData(qtype, describe_validation_error(e)) from None

    def validate_question(self, question: Question) -> None:
        self.validate(question.type, question.payload)

    def validate_all(self, questions: Iterable[Question]) -> None:
        """Validate every question; the first failure names its position."""
        for position, question in enumerate(questions, start=1):
            try:
                self.validate_question(question)
            except InvalidQuestionData as e:
                logger.info(f"Question {position} ({question.id}) failed validation: {e.reason}")
                raise InvalidQuestionData(e.question_type, f"question {position}: {e.reason}") from None


validator = QuestionSchemaValidator()
