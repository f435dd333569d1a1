"""
Error taxonomy.

Domain errors are expected outcomes the caller must handle. Persistence
errors mean the storage collaborator failed and the operation did not
complete; they never stand in for a denial.
"""
from typing import Any, Optional


class QuizGateError(Exception):
    """Root of all quizgate errors."""


class DomainError(QuizGateError):
    """Expected, typed outcome of a quiz operation."""


class PersistenceError(QuizGateError):
    """The persistence collaborator failed."""


class VersionConflict(DomainError):
    def __init__(self, current_version: int, expected_version: Optional[int] = None):
        self.current_version = current_version
        self.expected_version = expected_version
        super().__init__(
            f"draft version conflict: expected {expected_version}, current is {current_version}"
        )


class InvalidQuestionData(DomainError):
    def __init__(self, question_type: Any, reason: str):
        self.question_type = str(getattr(question_type, "value", question_type))
        self.reason = reason
        super().__init__(f"Invalid {self.question_type} question data: {reason}")


class QuizNotFound(DomainError):
    def __init__(self, quiz_id: str):
        self.quiz_id = quiz_id
        super().__init__(f"Quiz not found: {quiz_id}")


class AttemptNotFound(DomainError):
    def __init__(self, attempt_id: str):
        self.attempt_id = attempt_id
        super().__init__(f"Attempt not found: {attempt_id}")


class EmptyQuiz(DomainError):
    def __init__(self, quiz_id: str):
        self.quiz_id = quiz_id
        super().__init__(f"Cannot publish quiz with no questions: {quiz_id}")


class PublishConflict(DomainError):
    def __init__(self, quiz_id: str):
        self.quiz_id = quiz_id
        super().__init__(f"Concurrent publish of quiz {quiz_id} could not be resolved")


class ShareableIdExhausted(DomainError):
    def __init__(self, tries: int):
        self.tries = tries
        super().__init__(f"No unused shareable id found after {tries} tries")


class InvalidToken(DomainError):
    def __init__(self, detail: str = "Invalid or expired token"):
        super().__init__(detail)


class AdmissionDenied(DomainError):
    """A denial detected after admission, e.g. the quota filled up before submission."""

    def __init__(self, reason: Any):
        self.reason = reason
        super().__init__(f"Admission denied: {reason}")


class SnapshotNotFound(DomainError):
    def __init__(self, quiz_id: str, version: int):
        self.quiz_id = quiz_id
        self.version = version
        super().__init__(f"Quiz {quiz_id} has no published version {version}")
