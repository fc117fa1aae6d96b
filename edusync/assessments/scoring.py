"""
Scoring Engine

This module computes the score of a submission from the parsed questions of
an assessment and the parsed answers of the student. Scoring is a pure
in-memory computation: the same inputs always produce the same ScoreResult.

Rules:
- single choice: full points when the chosen option is the correct one
- multi choice: full points only when the chosen set equals the correct set,
  unless the policy enables partial credit
- free text: never scored automatically, reported as pending
- unanswered: zero points
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from edusync.assessments.models import (
    Answer,
    Question,
    QuestionScore,
    QuestionType,
    ScoreResult,
    ScoreStatus,
)
from edusync.common.logger import app_logger

logger = app_logger.getChild("assessments.scoring")


@dataclass(frozen=True)
class ScoringPolicy:
    """
    Tunable scoring rules.

    Attributes:
        multi_choice_partial_credit: Award multi-choice points in proportion to
            correct selections minus wrong selections, floored at zero
    """
    multi_choice_partial_credit: bool = False


DEFAULT_POLICY = ScoringPolicy()


class ScoringEngine:
    """Scores answers against questions under a ScoringPolicy."""

    def __init__(self, policy: ScoringPolicy = DEFAULT_POLICY):
        self.policy = policy

    def score(
        self,
        questions: Sequence[Question],
        answers: Sequence[Answer],
        max_score: Optional[int] = None
    ) -> ScoreResult:
        """
        Score a submission.

        Args:
            questions: Parsed questions of the assessment
            answers: Parsed answers of the submission
            max_score: Configured maximum score of the assessment; the total
                is clamped to it when given

        Returns:
            ScoreResult with the clamped total, the raw total, the sum of
            question points and a per-question breakdown
        """
        by_question: Dict[str, Answer] = {answer.question_id: answer for answer in answers}
        possible_points = sum(question.points for question in questions)

        breakdown = []
        for question in questions:
            answer = by_question.get(question.question_id)
            breakdown.append(self._score_question(question, answer))

        raw_score = sum(item.points_awarded for item in breakdown)
        total_score = raw_score

        if max_score is not None:
            if max_score != possible_points:
                logger.warning(
                    f"Configured max score {max_score} differs from the sum of question points "
                    f"{possible_points}"
                )
            total_score = max(0, min(raw_score, max_score))

        return ScoreResult(
            total_score=total_score,
            raw_score=raw_score,
            possible_points=possible_points,
            breakdown=tuple(breakdown)
        )

    def is_correct(self, question: Question, answer: Answer) -> Optional[bool]:
        """
        Whether a single answer earns full points.

        Returns None for free-text questions, which need manual grading.
        """
        item = self._score_question(question, answer)
        if item.status is ScoreStatus.PENDING:
            return None
        return item.status is ScoreStatus.CORRECT

    def _score_question(self, question: Question, answer: Optional[Answer]) -> QuestionScore:
        if question.question_type is QuestionType.FREE_TEXT:
            status = ScoreStatus.PENDING if answer is not None else ScoreStatus.UNANSWERED
            return QuestionScore(question.question_id, status, 0, question.points)

        if answer is None:
            return QuestionScore(question.question_id, ScoreStatus.UNANSWERED, 0, question.points)

        if question.question_type is QuestionType.SINGLE_CHOICE:
            correct = answer.response == question.correct
            return QuestionScore(
                question.question_id,
                ScoreStatus.CORRECT if correct else ScoreStatus.INCORRECT,
                question.points if correct else 0,
                question.points
            )

        return self._score_multi_choice(question, answer)

    def _score_multi_choice(self, question: Question, answer: Answer) -> QuestionScore:
        chosen = answer.response if isinstance(answer.response, frozenset) else frozenset([answer.response])
        correct = question.correct

        if chosen == correct:
            return QuestionScore(question.question_id, ScoreStatus.CORRECT, question.points, question.points)

        awarded = 0
        if self.policy.multi_choice_partial_credit and correct:
            hits = len(chosen & correct)
            misses = len(chosen - correct)
            awarded = max(0, (hits - misses) * question.points // len(correct))

        return QuestionScore(
            question.question_id,
            ScoreStatus.PARTIAL if awarded > 0 else ScoreStatus.INCORRECT,
            awarded,
            question.points
        )
