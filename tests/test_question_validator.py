import pytest

from quizgate.core.errors import InvalidQuestionData
from quizgate.models.domain import Question, QuestionType
from quizgate.services.question_validator import QuestionSchemaValidator

validator = QuestionSchemaValidator()


def choices(*correct_flags, ids=None):
    ids = ids or [f"c{i}" for i in range(len(correct_flags))]
    return {"choices": [
        {"id": cid, "text": f"Choice {cid}", "correct": flag} for cid, flag in zip(ids, correct_flags)
    ]}


def rejects(qtype, payload):
    with pytest.raises(InvalidQuestionData) as exc:
        validator.validate(qtype, payload)
    return exc.value


# ========== Choice types ==========

def test_multiple_choice_needs_exactly_one_correct():
    validator.validate(QuestionType.MULTIPLE_CHOICE, choices(False, True, False))
    assert "exactly 1 correct" in rejects(QuestionType.MULTIPLE_CHOICE, choices(False, False)).reason
    assert "exactly 1 correct" in rejects(QuestionType.MULTIPLE_CHOICE, choices(True, True)).reason


def test_duplicate_choice_ids_rejected():
    err = rejects(QuestionType.MULTIPLE_CHOICE, choices(True, False, ids=["x", "x"]))
    assert "duplicate choice id 'x'" in err.reason


def test_needs_two_choices():
    assert "at least 2" in rejects(QuestionType.MULTIPLE_ANSWER, choices(True)).reason


def test_multiple_answer_needs_one_correct():
    validator.validate(QuestionType.MULTIPLE_ANSWER, choices(True, True, False))
    assert "at least 1 correct" in rejects(QuestionType.MULTIPLE_ANSWER, choices(False, False)).reason


def test_dropdown_follows_multiple_choice():
    validator.validate(QuestionType.DROPDOWN, choices(True, False))
    rejects(QuestionType.DROPDOWN, choices(True, True))


def test_choice_text_rules():
    blank = {"choices": [{"id": "a", "text": "  ", "correct": True}, {"id": "b", "text": "B"}]}
    err = rejects(QuestionType.MULTIPLE_CHOICE, blank)
    assert "text" in err.reason

    long = {"choices": [{"id": "a", "text": "x" * 2001, "correct": True}, {"id": "b", "text": "B"}]}
    assert "2000" in rejects(QuestionType.MULTIPLE_CHOICE, long).reason

    missing_id = {"choices": [{"text": "A", "correct": True}, {"id": "b", "text": "B"}]}
    assert "id" in rejects(QuestionType.MULTIPLE_CHOICE, missing_id).reason


def test_only_literal_true_marks_correct():
    truthy = {"choices": [{"id": "a", "text": "A", "correct": "true"}, {"id": "b", "text": "B", "correct": 1}]}
    rejects(QuestionType.MULTIPLE_CHOICE, truthy)


# ========== Other types ==========

def test_true_false():
    validator.validate(QuestionType.TRUE_FALSE, {"correct": False})
    assert "correct" in rejects(QuestionType.TRUE_FALSE, {}).reason
    rejects(QuestionType.TRUE_FALSE, {"correct": "yes"})


def test_fill_in_blank():
    validator.validate(QuestionType.FILL_IN_BLANK, {"answers": ["Paris", ["4", "four"]]})
    assert "answers" in rejects(QuestionType.FILL_IN_BLANK, {"answers": []}).reason
    rejects(QuestionType.FILL_IN_BLANK, {"answers": [3]})
    rejects(QuestionType.FILL_IN_BLANK, {"answers": [[]]})
    rejects(QuestionType.FILL_IN_BLANK, {})


def test_free_text():
    validator.validate(QuestionType.FREE_TEXT, {})
    validator.validate(QuestionType.FREE_TEXT, {"allowImage": True, "rubric": "anything"})
    assert "allowImage" in rejects(QuestionType.FREE_TEXT, {"allowImage": "yes"}).reason


def test_numeric():
    validator.validate(QuestionType.NUMERIC, {"correctAnswer": 9.81, "tolerance": 0.01, "unit": "m/s2"})
    validator.validate(QuestionType.NUMERIC, {"correctAnswer": 3})
    assert "correctAnswer" in rejects(QuestionType.NUMERIC, {}).reason
    rejects(QuestionType.NUMERIC, {"correctAnswer": "3"})
    assert "non-negative" in rejects(QuestionType.NUMERIC, {"correctAnswer": 1, "tolerance": -1}).reason
    assert "1,000,000" in rejects(QuestionType.NUMERIC, {"correctAnswer": 1, "tolerance": 1_000_001}).reason
    rejects(QuestionType.NUMERIC, {"correctAnswer": 1, "unit": 5})


def test_file_upload():
    validator.validate(QuestionType.FILE_UPLOAD, {"acceptedTypes": ["pdf", ".docx"], "maxFileSizeMB": 10})
    rejects(QuestionType.FILE_UPLOAD, {"acceptedTypes": [], "maxFileSizeMB": 10})
    rejects(QuestionType.FILE_UPLOAD, {"acceptedTypes": ["  "], "maxFileSizeMB": 10})
    rejects(QuestionType.FILE_UPLOAD, {"acceptedTypes": ["pdf"], "maxFileSizeMB": 0})
    rejects(QuestionType.FILE_UPLOAD, {"acceptedTypes": ["pdf"], "maxFileSizeMB": 101})
    rejects(QuestionType.FILE_UPLOAD, {"acceptedTypes": ["pdf"], "maxFileSizeMB": 2.5})


# ========== Boundary ==========

def test_unknown_type_and_bad_payload():
    assert rejects("ESSAY", {}).reason == "unknown question type"
    assert rejects(QuestionType.TRUE_FALSE, None).reason == "data cannot be null"
    assert rejects(QuestionType.TRUE_FALSE, ["correct"]).reason == "data must be an object"


def test_error_carries_type():
    err = rejects(QuestionType.NUMERIC, {})
    assert err.question_type == "NUMERIC"
    assert "NUMERIC" in str(err)


def test_validate_all_names_position():
    questions = [
        Question(type=QuestionType.TRUE_FALSE, payload={"correct": True}),
        Question(type=QuestionType.NUMERIC, payload={"tolerance": 1}),
    ]
    with pytest.raises(InvalidQuestionData) as exc:
        validator.validate_all(questions)
    assert exc.value.reason.startswith("question 2: ")
    assert exc.value.question_type == "NUMERIC"
