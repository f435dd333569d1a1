import pytest

from quizgate.models.domain import Question, QuestionType
from quizgate.services.scoring import score_answer

from conftest import mc_question, tf_question


def q(qtype, payload, points=4):
    return Question(id="q", type=qtype, points=points, payload=payload)


MA = q(QuestionType.MULTIPLE_ANSWER, {"choices": [
    {"id": "a", "text": "A", "correct": True},
    {"id": "b", "text": "B", "correct": True},
    {"id": "c", "text": "C", "correct": False},
    {"id": "d", "text": "D", "correct": False},
]})


def test_multiple_choice():
    question = mc_question(correct="b", points=3)
    assert score_answer(question, {"selected": "b"}).points_earned == 3
    assert score_answer(question, {"selected": ["b"]}).is_correct
    wrong = score_answer(question, {"selected": "a"})
    assert not wrong.is_correct
    assert wrong.points_earned == 0
    assert score_answer(question, {}).points_earned == 0
    assert score_answer(question, None).points_earned == 0


def test_numeric_choice_ids_match_strings():
    question = q(QuestionType.DROPDOWN, {"choices": [
        {"id": 1, "text": "One", "correct": True},
        {"id": 2, "text": "Two"},
    ]}, points=2)
    assert score_answer(question, {"selected": "1"}).is_correct
    assert score_answer(question, {"selected": 1}).points_earned == 2


def test_dropdown_multiple_selection_is_partial():
    question = q(QuestionType.DROPDOWN, {"choices": [
        {"id": "x", "text": "X", "correct": True},
        {"id": "y", "text": "Y"},
    ]})
    result = score_answer(question, {"selected": ["x", "y"]})
    assert not result.is_correct
    assert result.points_earned == 2


@pytest.mark.parametrize("selected,points,correct", [
    (["a", "b"], 4, True),
    (["a"], 2, False),
    (["a", "c"], 0, False),
    (["a", "b", "c"], 2, False),
    (["c", "d"], 0, False),
    ([], 0, False),
])
def test_multiple_answer_partial_credit(selected, points, correct):
    result = score_answer(MA, {"selected": selected})
    assert result.points_earned == points
    assert result.is_correct is correct


def test_true_false():
    question = tf_question(correct=False, points=2)
    assert score_answer(question, {"answer": False}).points_earned == 2
    assert score_answer(question, {"answer": "false"}).is_correct
    assert not score_answer(question, {"answer": "TRUE"}).is_correct
    assert not score_answer(question, {"answer": 0}).is_correct


def test_fill_in_blank():
    question = q(QuestionType.FILL_IN_BLANK, {"answers": ["Paris", ["4", "four"]]})
    assert score_answer(question, {"answers": ["paris", "Four"]}).points_earned == 4
    half = score_answer(question, {"answers": ["Paris", "five"]})
    assert half.points_earned == 2
    assert not half.is_correct
    assert score_answer(question, {"answers": ["Paris"]}).points_earned == 2
    assert score_answer(question, {"answers": " paris "}).points_earned == 2


def test_fill_in_blank_case_sensitive():
    question = q(QuestionType.FILL_IN_BLANK, {"answers": ["NaCl"], "caseSensitive": True})
    assert score_answer(question, {"answers": ["NaCl"]}).is_correct
    assert not score_answer(question, {"answers": ["nacl"]}).is_correct


def test_fill_in_blank_numeric_tolerance():
    question = q(QuestionType.FILL_IN_BLANK, {"answers": ["3.14"], "numeric": True, "tolerance": "0.01"})
    assert score_answer(question, {"answers": ["3.145"]}).is_correct
    assert not score_answer(question, {"answers": ["3.2"]}).is_correct

    off = q(QuestionType.FILL_IN_BLANK, {"answers": ["3.14"], "numeric": True, "tolerance": "off"})
    assert not score_answer(off, {"answers": ["3.145"]}).is_correct


def test_numeric():
    question = q(QuestionType.NUMERIC, {"correctAnswer": 9.81, "tolerance": 0.05})
    assert score_answer(question, {"answer": 9.8}).points_earned == 4
    assert score_answer(question, {"answer": "9.85"}).is_correct
    assert not score_answer(question, {"answer": 10}).is_correct
    assert not score_answer(question, {"answer": "ten"}).is_correct
    assert not score_answer(question, {"answer": True}).is_correct

    exact = q(QuestionType.NUMERIC, {"correctAnswer": 42})
    assert score_answer(exact, {"answer": 42}).is_correct
    assert not score_answer(exact, {"answer": 42.001}).is_correct


@pytest.mark.parametrize("qtype,payload", [
    (QuestionType.FREE_TEXT, {}),
    (QuestionType.FILE_UPLOAD, {"acceptedTypes": ["pdf"], "maxFileSizeMB": 5}),
])
def test_manual_types_are_not_auto_graded(qtype, payload):
    result = score_answer(q(qtype, payload), {"text": "anything"})
    assert result.points_earned == 0
    assert not result.is_correct
    assert result.pending_review


@pytest.mark.parametrize("answer", ["b", ["b"], 7, True, None])
def test_answer_that_is_not_an_object_scores_nothing(answer):
    for question in (mc_question(correct="b"), tf_question(), MA, q(QuestionType.NUMERIC, {"correctAnswer": 7})):
        result = score_answer(question, answer)
        assert result.points_earned == 0
        assert not result.is_correct
