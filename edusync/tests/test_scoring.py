"""
Tests for the scoring engine.
"""

import logging

import pytest

from edusync.assessments.codecs import QuestionSetCodec
from edusync.assessments.models import Answer, Option, Question, QuestionType, ScoreStatus
from edusync.assessments.scoring import ScoringEngine, ScoringPolicy


@pytest.fixture
def questions(questions_json):
    return QuestionSetCodec().parse(questions_json)


@pytest.fixture
def engine():
    return ScoringEngine()


def choice_question(question_id, question_type, correct, points):
    options = tuple(Option(o, o) for o in ("A", "B", "C", "D"))
    return Question(question_id, question_type, "?", options, correct, points)


class TestScoringEngine:

    def test_single_choice_correct_gets_full_points(self, engine):
        question = choice_question("q1", QuestionType.SINGLE_CHOICE, "A", 10)
        result = engine.score([question], [Answer("q1", "A")])
        assert result.total_score == 10

    def test_single_choice_wrong_gets_zero(self, engine):
        question = choice_question("q1", QuestionType.SINGLE_CHOICE, "A", 10)
        result = engine.score([question], [Answer("q1", "B")])
        assert result.total_score == 0
        assert result.breakdown[0].status is ScoreStatus.INCORRECT

    def test_multi_choice_subset_gets_zero(self, engine):
        question = choice_question("q2", QuestionType.MULTI_CHOICE, frozenset({"A", "C"}), 6)
        result = engine.score([question], [Answer("q2", frozenset({"A"}))])
        assert result.total_score == 0

    def test_multi_choice_exact_set_gets_full_points(self, engine):
        question = choice_question("q2", QuestionType.MULTI_CHOICE, frozenset({"A", "C"}), 6)
        result = engine.score([question], [Answer("q2", frozenset({"C", "A"}))])
        assert result.total_score == 6

    def test_partial_credit_policy(self):
        engine = ScoringEngine(ScoringPolicy(multi_choice_partial_credit=True))
        question = choice_question("q2", QuestionType.MULTI_CHOICE, frozenset({"A", "C"}), 6)

        half = engine.score([question], [Answer("q2", frozenset({"A"}))])
        cancelled = engine.score([question], [Answer("q2", frozenset({"A", "B"}))])

        assert half.total_score == 3
        assert half.breakdown[0].status is ScoreStatus.PARTIAL
        assert cancelled.total_score == 0

    def test_free_text_is_pending(self, engine, questions):
        result = engine.score(questions, [Answer("q3", "Because")])

        item = result.breakdown[2]
        assert item.status is ScoreStatus.PENDING
        assert item.points_awarded == 0
        assert result.pending_count == 1

    def test_unanswered_questions_score_zero(self, engine, questions):
        result = engine.score(questions, [])

        assert result.total_score == 0
        assert [item.status for item in result.breakdown] == [ScoreStatus.UNANSWERED] * 3
        assert result.possible_points == 20

    def test_full_submission(self, engine, questions):
        answers = [Answer("q1", "A"), Answer("q2", frozenset({"A", "C"})), Answer("q3", "text")]
        result = engine.score(questions, answers, max_score=20)

        assert result.total_score == 15
        assert result.raw_score == 15
        assert result.correct_count == 2

    def test_total_is_clamped_to_max_score(self, engine, questions, caplog):
        answers = [Answer("q1", "A"), Answer("q2", frozenset({"A", "C"}))]

        with caplog.at_level(logging.WARNING, logger="edusync"):
            result = engine.score(questions, answers, max_score=12)

        assert result.raw_score == 15
        assert result.total_score == 12
        assert "differs from the sum of question points" in caplog.text

    def test_scores_stay_within_bounds(self, engine, questions):
        for answers in (
            [],
            [Answer("q1", "B")],
            [Answer("q1", "A"), Answer("q2", frozenset({"A", "B", "C"}))],
            [Answer("q1", "A"), Answer("q2", frozenset({"A", "C"})), Answer("q3", "x")],
        ):
            result = engine.score(questions, answers, max_score=20)
            assert 0 <= result.total_score <= 20

    def test_scoring_is_pure(self, engine, questions):
        answers = [Answer("q1", "A"), Answer("q2", frozenset({"A"}))]
        first = engine.score(questions, answers, max_score=20)
        second = engine.score(questions, answers, max_score=20)
        assert first == second

    def test_is_correct(self, engine, questions):
        assert engine.is_correct(questions[0], Answer("q1", "A")) is True
        assert engine.is_correct(questions[0], Answer("q1", "C")) is False
        assert engine.is_correct(questions[2], Answer("q3", "text")) is None
