"""
Answer scoring against a snapshot's frozen questions.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from quizgate.models.domain import Question
from quizgate.models.payloads import (
    DropdownQuestion, FileUploadQuestion, FillInBlankQuestion, FreeTextQuestion,
    MultipleAnswerQuestion, MultipleChoiceQuestion, NumericQuestion, TrueFalseQuestion,
    TypedQuestion, parse_question,
)


@dataclass
class ScoringResult:
    is_correct: bool
    points_earned: int
    # questions graded by a person later
    pending_review: bool = False


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    if isinstance(value, str):
        return [value]
    return []


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _partial(ratio: float, points: int) -> int:
    # round half up, like the stored percentage
    return int(max(0.0, ratio) * points + 0.5)


def _all_or_nothing(ok: bool, points: int) -> ScoringResult:
    return ScoringResult(ok, points if ok else 0)


def score_multiple_choice(q: Union[MultipleChoiceQuestion, DropdownQuestion], answer: Dict[str, Any]) -> ScoringResult:
    correct_ids = [str(i) for i in q.payload.correct_ids()]
    selected = answer.get("selected")
    if isinstance(selected, list):
        if len(selected) > 1:
            hits = sum(1 for s in selected if str(s) in correct_ids)
            return ScoringResult(hits == len(selected), _partial(hits / len(selected), q.points))
        selected = selected[0] if selected else None
    return _all_or_nothing(selected is not None and str(selected) in correct_ids, q.points)


def score_multiple_answer(q: MultipleAnswerQuestion, answer: Dict[str, Any]) -> ScoringResult:
    correct_ids = {str(i) for i in q.payload.correct_ids()}
    chosen = set(_string_list(answer.get("selected")))
    right = len(chosen & correct_ids)
    wrong = len(chosen - correct_ids)
    ratio = (right - wrong) / len(correct_ids)
    return ScoringResult(right == len(correct_ids) and wrong == 0, _partial(ratio, q.points))


def score_true_false(q: TrueFalseQuestion, answer: Dict[str, Any]) -> ScoringResult:
    value = answer.get("answer")
    if isinstance(value, str):
        value = value.strip().lower() == "true"
    return _all_or_nothing(isinstance(value, bool) and value == q.payload.correct, q.points)


def _blank_matches(given: str, expected: Union[str, List[str]], case_sensitive: bool, tolerance: Optional[float]) -> bool:
    if not given or not given.strip():
        return False
    acceptable = expected if isinstance(expected, list) else [expected]
    if tolerance is not None:
        given_num, expected_num = _number(given), _number(acceptable[0])
        if given_num is not None and expected_num is not None:
            return abs(given_num - expected_num) <= tolerance
    norm = (lambda s: s.strip()) if case_sensitive else (lambda s: s.strip().lower())
    return any(norm(given) == norm(a) for a in acceptable)


def score_fill_in_blank(q: FillInBlankQuestion, answer: Dict[str, Any]) -> ScoringResult:
    expected = q.payload.answers
    given = _string_list(answer.get("answers"))
    tolerance = q.payload.numeric_tolerance()
    hits = sum(
        1 for i, exp in enumerate(expected)
        if _blank_matches(given[i] if i < len(given) else "", exp, q.payload.is_case_sensitive, tolerance)
    )
    return ScoringResult(hits == len(expected), _partial(hits / len(expected), q.points))


def score_numeric(q: NumericQuestion, answer: Dict[str, Any]) -> ScoringResult:
    given = _number(answer.get("answer"))
    if given is None:
        return ScoringResult(False, 0)
    tolerance = q.payload.tolerance or 0
    return _all_or_nothing(abs(given - q.payload.correct_answer) <= tolerance, q.points)


def score_typed(q: TypedQuestion, answer: Any) -> ScoringResult:
    # anything but an object is an unreadable answer and scores nothing
    if not isinstance(answer, Mapping):
        answer = {}
    if isinstance(q, (MultipleChoiceQuestion, DropdownQuestion)):
        return score_multiple_choice(q, answer)
    if isinstance(q, MultipleAnswerQuestion):
        return score_multiple_answer(q, answer)
    if isinstance(q, TrueFalseQuestion):
        return score_true_false(q, answer)
    if isinstance(q, FillInBlankQuestion):
        return score_fill_in_blank(q, answer)
    if isinstance(q, NumericQuestion):
        return score_numeric(q, answer)
    if isinstance(q, (FreeTextQuestion, FileUploadQuestion)):
        return ScoringResult(False, 0, pending_review=True)
    raise TypeError(f"Unsupported question variant: {type(q).__name__}")


def score_answer(question: Question, answer: Any) -> ScoringResult:
    return score_typed(parse_question(question), answer)
