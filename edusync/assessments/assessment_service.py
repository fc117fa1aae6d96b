"""
Assessment Management Service

This module provides instructor operations on assessments (create, update,
delete) and the read operations shared by instructors and students. Question
sets are validated by the question set codec on every write and stored in
canonical form.
"""

import uuid
import datetime
from typing import Any, Dict, List, Optional, Tuple

from edusync.assessments.codecs import QuestionSetCodec
from edusync.assessments.membership import CourseMembership
from edusync.assessments.models import Assessment, utcnow
from edusync.assessments.repositories import AssessmentRepository, ResultRepository
from edusync.common.error_handling import (
    AssessmentHasResultsError,
    AssessmentNotFoundError,
    NotEnrolledError,
    NotInstructorError,
    ValidationError,
)
from edusync.common.logger import app_logger

logger = app_logger.getChild("assessments.management")


class AssessmentService:
    """Instructor-facing assessment management."""

    def __init__(
        self,
        assessments: AssessmentRepository,
        results: ResultRepository,
        membership: CourseMembership,
        question_codec: Optional[QuestionSetCodec] = None,
        clock=utcnow
    ):
        self.assessments = assessments
        self.results = results
        self.membership = membership
        self.question_codec = question_codec or QuestionSetCodec()
        self.clock = clock

    async def _require_instructor(self, course_id: str, user_id: str) -> None:
        if not await self.membership.is_instructor(course_id, user_id):
            raise NotInstructorError(course_id)

    def _canonical_questions(self, questions: str, max_score: Optional[int]) -> Tuple[str, int]:
        parsed = self.question_codec.parse(questions)
        total_points = sum(question.points for question in parsed)

        if max_score is None:
            max_score = total_points
        elif max_score < 0:
            raise ValidationError("Max score must not be negative", details={"max_score": max_score})
        elif max_score != total_points:
            logger.warning(
                f"Max score {max_score} differs from the sum of question points {total_points}"
            )
        return self.question_codec.serialize(parsed), max_score

    async def create(
        self,
        user_id: str,
        course_id: str,
        title: str,
        questions: str,
        max_score: Optional[int] = None,
        time_limit: Optional[datetime.timedelta] = None
    ) -> Assessment:
        """
        Create an assessment in a course taught by the user.

        Args:
            user_id: The instructor
            course_id: Course the assessment belongs to
            title: Assessment title
            questions: Serialized question set
            max_score: Configured maximum score; the sum of question points when omitted
            time_limit: Optional time limit of an attempt

        Returns:
            The stored assessment

        Raises:
            NotInstructorError: If the user does not teach the course
            MalformedQuestionSetError: If the question set is invalid
        """
        await self._require_instructor(course_id, user_id)
        canonical, max_score = self._canonical_questions(questions, max_score)

        now = self.clock()
        assessment = Assessment(
            assessment_id=str(uuid.uuid4()),
            course_id=course_id,
            title=title,
            questions=canonical,
            max_score=max_score,
            time_limit=time_limit,
            created_at=now,
            updated_at=now
        )
        await self.assessments.save(assessment)
        logger.info(f"Instructor {user_id} created assessment {assessment.assessment_id} in course {course_id}")
        return assessment

    async def update(
        self,
        user_id: str,
        assessment_id: str,
        title: str,
        questions: str,
        max_score: Optional[int] = None,
        time_limit: Optional[datetime.timedelta] = None
    ) -> Assessment:
        """
        Replace the editable fields of an assessment.

        Existing results keep the score they were given.
        """
        assessment = await self.assessments.get_by_id(assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError(assessment_id)
        await self._require_instructor(assessment.course_id, user_id)

        canonical, max_score = self._canonical_questions(questions, max_score)
        assessment = Assessment(
            assessment_id=assessment.assessment_id,
            course_id=assessment.course_id,
            title=title,
            questions=canonical,
            max_score=max_score,
            time_limit=time_limit,
            created_at=assessment.created_at,
            updated_at=self.clock()
        )
        await self.assessments.save(assessment)
        logger.info(f"Instructor {user_id} updated assessment {assessment_id}")
        return assessment

    async def delete(self, user_id: str, assessment_id: str) -> None:
        """
        Delete an assessment that has no results.

        Raises:
            AssessmentNotFoundError: If the assessment does not exist
            NotInstructorError: If the user does not teach the course
            AssessmentHasResultsError: If results refer to the assessment
        """
        assessment = await self.assessments.get_by_id(assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError(assessment_id)
        await self._require_instructor(assessment.course_id, user_id)

        result_count = await self.results.count_by_assessment(assessment_id)
        if result_count:
            raise AssessmentHasResultsError(assessment_id, result_count)

        await self.assessments.delete(assessment_id)
        logger.info(f"Instructor {user_id} deleted assessment {assessment_id}")

    async def get(self, user_id: str, assessment_id: str) -> Dict[str, Any]:
        """
        An assessment as seen by the user.

        Instructors of the course see the correct answers; enrolled students
        get the redacted questions. Anyone else gets AssessmentNotFoundError.
        """
        assessment = await self.assessments.get_by_id(assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError(assessment_id)

        questions = self.question_codec.parse(assessment.questions)
        if await self.membership.is_instructor(assessment.course_id, user_id):
            rendered = self.question_codec.to_dicts(questions)
        elif await self.membership.is_enrolled(assessment.course_id, user_id):
            rendered = self.question_codec.redact(questions)
        else:
            raise AssessmentNotFoundError(assessment_id)

        data = assessment.to_dict()
        data["questions"] = rendered
        return data

    async def list_by_course(self, user_id: str, course_id: str) -> List[Assessment]:
        """
        Assessments of a course, for its instructors and enrolled students.

        Raises:
            NotEnrolledError: If the user neither teaches nor attends the course
        """
        if not (
            await self.membership.is_instructor(course_id, user_id)
            or await self.membership.is_enrolled(course_id, user_id)
        ):
            raise NotEnrolledError(course_id)
        return await self.assessments.list_by_course(course_id)
