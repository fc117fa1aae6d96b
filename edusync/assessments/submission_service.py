"""
Submission Orchestrator

This module ties the assessment subsystem together. For a submission it:

1. checks that the student may see the assessment
2. checks the attempt state before any scoring is done
3. enforces the assessment's time limit
4. parses the question set and the answers, then scores them
5. persists a new Result and records the submit event

It also drives the start and answer steps of an attempt and serves the read
side: per-assessment summary statistics and result listings.

A student who is not enrolled in an assessment's course gets the same
AssessmentNotFoundError as for an assessment that does not exist.
"""

import uuid
import datetime
import statistics
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from edusync.assessments.codecs import AnswerCodec, QuestionSetCodec
from edusync.assessments.membership import CourseMembership
from edusync.assessments.models import (
    SCORE_BUCKETS,
    Assessment,
    AssessmentSummary,
    AttemptStatus,
    QuizEvent,
    Result,
    ResultDetails,
    Submission,
)
from edusync.assessments.repositories import AssessmentRepository, ResultRepository
from edusync.assessments.scoring import ScoringEngine
from edusync.assessments.sequencer import EventSequencer
from edusync.common.error_handling import (
    AlreadySubmittedError,
    AssessmentNotFoundError,
    MalformedAnswersError,
    NotEnrolledError,
    NotStartedError,
    SubmissionExpiredError,
)
from edusync.common.logger import LoggerAdapter, app_logger, log_execution_time

logger = app_logger.getChild("assessments.submission")

DEFAULT_GRACE = datetime.timedelta(seconds=60)


@dataclass(frozen=True)
class StartedAttempt:
    """What a student receives when starting an attempt."""
    assessment: Assessment
    questions: List[Dict[str, Any]]
    attempt: int
    started_at: datetime.datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assessment_id": self.assessment.assessment_id,
            "course_id": self.assessment.course_id,
            "title": self.assessment.title,
            "max_score": self.assessment.max_score,
            "time_limit_seconds": (
                self.assessment.time_limit.total_seconds()
                if self.assessment.time_limit is not None else None
            ),
            "questions": self.questions,
            "attempt": self.attempt,
            "started_at": self.started_at.isoformat()
        }


def score_bucket(percentage: float) -> str:
    """Distribution bucket of a percentage score."""
    for label, upper in SCORE_BUCKETS:
        if percentage <= upper:
            return label
    return SCORE_BUCKETS[-1][0]


class SubmissionOrchestrator:
    """
    Entry point for attempts, submissions and result reads.

    Attributes:
        assessments: Assessment storage
        results: Result storage
        membership: Course roster lookups
        sequencer: Attempt state machine and event emitter
        grace: Allowance on top of an assessment's time limit
    """

    def __init__(
        self,
        assessments: AssessmentRepository,
        results: ResultRepository,
        membership: CourseMembership,
        sequencer: EventSequencer,
        scoring_engine: Optional[ScoringEngine] = None,
        question_codec: Optional[QuestionSetCodec] = None,
        answer_codec: Optional[AnswerCodec] = None,
        grace: datetime.timedelta = DEFAULT_GRACE,
        clock: Optional[Callable[[], datetime.datetime]] = None
    ):
        self.assessments = assessments
        self.results = results
        self.membership = membership
        self.sequencer = sequencer
        self.scoring_engine = scoring_engine or ScoringEngine()
        self.question_codec = question_codec or QuestionSetCodec()
        self.answer_codec = answer_codec or AnswerCodec()
        self.grace = grace
        self.clock = clock or sequencer.clock

    async def _visible_assessment(
        self,
        user_id: str,
        assessment_id: str,
        course_id: Optional[str] = None
    ) -> Assessment:
        assessment = await self.assessments.get_by_id(assessment_id)
        if (
            assessment is None
            or (course_id is not None and assessment.course_id != course_id)
            or not await self.membership.is_enrolled(assessment.course_id, user_id)
        ):
            raise AssessmentNotFoundError(assessment_id)
        return assessment

    async def start_attempt(self, user_id: str, assessment_id: str) -> StartedAttempt:
        """
        Start a new attempt and hand out the questions without their answers.

        Raises:
            AssessmentNotFoundError: If the assessment is missing or not visible
            DuplicateStartError: If an attempt is already open
        """
        assessment = await self._visible_assessment(user_id, assessment_id)
        questions = self.question_codec.parse(assessment.questions)

        event = await self.sequencer.start(assessment_id, user_id, payload={
            "course_id": assessment.course_id,
            "assessment_title": assessment.title,
            "total_questions": len(questions)
        })
        logger.info(f"User {user_id} started attempt {event.attempt} of assessment {assessment_id}")

        return StartedAttempt(
            assessment=assessment,
            questions=self.question_codec.redact(questions),
            attempt=event.attempt,
            started_at=event.timestamp
        )

    async def record_answer(
        self,
        user_id: str,
        assessment_id: str,
        question_id: str,
        response: Any,
        time_taken_seconds: Optional[float] = None
    ) -> QuizEvent:
        """
        Record a single answer of an open attempt for live monitoring.

        Nothing is persisted; the answer only feeds the event stream.

        Raises:
            AssessmentNotFoundError: If the assessment is missing or not visible
            MalformedAnswersError: If the question is unknown or the response malformed
            NotStartedError: If the attempt was never started
            AlreadySubmittedError: If the attempt was already submitted
        """
        assessment = await self._visible_assessment(user_id, assessment_id)
        questions = self.question_codec.parse(assessment.questions)

        index = next((i for i, q in enumerate(questions) if q.question_id == str(question_id)), None)
        if index is None:
            raise MalformedAnswersError(
                f"Unknown question {question_id}",
                [{"index": 0, "question_id": str(question_id), "reason": "unknown question id"}]
            )

        question = questions[index]
        answer = self.answer_codec.parse_response(question, response)

        return await self.sequencer.answer(assessment_id, user_id, payload={
            "course_id": assessment.course_id,
            "question_id": question.question_id,
            "question_index": index,
            "is_correct": self.scoring_engine.is_correct(question, answer),
            "time_taken_seconds": time_taken_seconds
        })

    async def submit(self, user_id: str, submission: Submission) -> Result:
        """
        Score and persist a submission.

        Args:
            user_id: The submitting student
            submission: The submitted answers

        Returns:
            The persisted Result

        Raises:
            NotEnrolledError: If the submission names a course the user is not enrolled in
            AssessmentNotFoundError: If the assessment is missing or not visible
            NotStartedError: If the attempt was never started
            AlreadySubmittedError: If the attempt was already submitted
            SubmissionExpiredError: If the time limit plus grace has passed
            MalformedAnswersError: If the answers do not fit the question set
        """
        log = LoggerAdapter(logger, {"assessment_id": submission.assessment_id, "user_id": user_id})

        if submission.course_id is not None and not await self.membership.is_enrolled(
            submission.course_id, user_id
        ):
            raise NotEnrolledError(submission.course_id)

        assessment = await self._visible_assessment(user_id, submission.assessment_id, submission.course_id)

        async with self.sequencer.attempt(assessment.assessment_id, user_id) as attempt:
            if attempt.status is AttemptStatus.SUBMITTED:
                raise AlreadySubmittedError(assessment.assessment_id, user_id)
            if attempt.status is AttemptStatus.NOT_STARTED:
                raise NotStartedError(assessment.assessment_id, user_id)

            now = self.clock()
            elapsed = now - attempt.started_at

            if assessment.time_limit is not None and elapsed > assessment.time_limit + self.grace:
                await attempt.submit({
                    "course_id": assessment.course_id,
                    "expired": True,
                    "total_time_seconds": elapsed.total_seconds()
                })
                log.warning(f"Rejected submission after {elapsed.total_seconds():.0f}s")
                raise SubmissionExpiredError(
                    assessment.assessment_id,
                    elapsed.total_seconds(),
                    assessment.time_limit.total_seconds(),
                    self.grace.total_seconds()
                )

            questions = self.question_codec.parse(assessment.questions)
            answers = self.answer_codec.parse(submission.answers, questions)
            score = self.scoring_engine.score(questions, answers, assessment.max_score)

            result = Result(
                result_id=str(uuid.uuid4()),
                assessment_id=assessment.assessment_id,
                user_id=user_id,
                score=score.total_score,
                attempt_date=now,
                answers=submission.answers,
                time_taken=submission.time_taken if submission.time_taken is not None else elapsed
            )
            await self.results.add(result)

            await attempt.submit({
                "course_id": assessment.course_id,
                "score": score.total_score,
                "max_score": assessment.max_score,
                "score_percentage": (
                    round(score.total_score / assessment.max_score * 100, 2)
                    if assessment.max_score > 0 else 0.0
                ),
                "correct_answers": score.correct_count,
                "total_questions": len(questions),
                "total_time_seconds": result.time_taken.total_seconds()
            })

        log.info(f"Stored result {result.result_id} with score {result.score}/{assessment.max_score}")
        return result

    @log_execution_time(logger)
    async def get_assessment_summary(self, assessment_id: str) -> Optional[AssessmentSummary]:
        """
        Aggregate every result of an assessment.

        Percentages use the sum of question points as denominator, which may
        differ from the configured max score.

        Returns:
            The summary, or None if the assessment has no results yet
        """
        results = await self.results.list_by_assessment(assessment_id)
        if not results:
            return None

        assessment = await self.assessments.get_by_id(assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError(assessment_id)

        questions = self.question_codec.parse(assessment.questions)
        possible_points = sum(question.points for question in questions)

        scores = [result.score for result in results]
        percentages = [
            score / possible_points * 100 if possible_points > 0 else 0.0
            for score in scores
        ]

        distribution = {label: 0 for label, _ in SCORE_BUCKETS}
        for percentage in percentages:
            distribution[score_bucket(percentage)] += 1

        return AssessmentSummary(
            assessment_id=assessment_id,
            assessment_title=assessment.title,
            course_id=assessment.course_id,
            attempt_count=len(results),
            mean_score=round(statistics.mean(scores), 2),
            median_score=float(statistics.median(scores)),
            highest_score=max(scores),
            lowest_score=min(scores),
            max_possible_score=assessment.max_score,
            average_percentage=round(statistics.mean(percentages), 2),
            score_distribution=distribution
        )

    async def get_student_results(self, user_id: str, course_id: Optional[str] = None) -> List[ResultDetails]:
        """A student's results, newest first, optionally for one course."""
        results = await self.results.list_by_user(user_id, course_id)
        return await self._with_details(results)

    @log_execution_time(logger)
    async def get_course_results(self, course_id: str) -> List[ResultDetails]:
        """Every result of a course, newest first."""
        results = await self.results.list_by_course(course_id)
        return await self._with_details(results)

    async def _with_details(self, results: List[Result]) -> List[ResultDetails]:
        assessments: Dict[str, Optional[Assessment]] = {}
        details = []
        for result in results:
            if result.assessment_id not in assessments:
                assessments[result.assessment_id] = await self.assessments.get_by_id(result.assessment_id)
            assessment = assessments[result.assessment_id]
            if assessment is None:
                logger.warning(f"Result {result.result_id} refers to missing assessment {result.assessment_id}")
                continue
            details.append(ResultDetails(
                result=result,
                assessment_title=assessment.title,
                course_id=assessment.course_id,
                max_score=assessment.max_score
            ))
        return details
