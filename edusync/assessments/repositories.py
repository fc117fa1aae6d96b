"""
Assessment Repositories

This module defines the repository interfaces of the assessment subsystem and
their in-memory implementations. The in-memory repositories back the service
when ``STORAGE_BACKEND`` is "memory" and are used throughout the tests; the
SQLAlchemy implementations live in ``sql_repository``.

Result listings are always returned newest first.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from edusync.assessments.models import Assessment, Result
from edusync.common.logger import app_logger

logger = app_logger.getChild("assessments.repositories")


class AssessmentRepository(ABC):
    """Storage of assessments."""

    @abstractmethod
    async def get_by_id(self, assessment_id: str) -> Optional[Assessment]:
        """
        Retrieve an assessment by its ID.

        Returns:
            The assessment if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_by_course(self, course_id: str) -> List[Assessment]:
        """List the assessments of a course, oldest first."""
        pass

    @abstractmethod
    async def save(self, assessment: Assessment) -> Assessment:
        """Create or replace an assessment."""
        pass

    @abstractmethod
    async def delete(self, assessment_id: str) -> bool:
        """
        Delete an assessment.

        Returns:
            True if the assessment existed, False otherwise
        """
        pass


class ResultRepository(ABC):
    """Append-only storage of results."""

    @abstractmethod
    async def add(self, result: Result) -> Result:
        """
        Persist a new result.

        Raises:
            ValueError: If a result with the same ID already exists
        """
        pass

    @abstractmethod
    async def get_by_id(self, result_id: str) -> Optional[Result]:
        pass

    @abstractmethod
    async def list_by_assessment(self, assessment_id: str) -> List[Result]:
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str, course_id: Optional[str] = None) -> List[Result]:
        """List a user's results, optionally limited to one course."""
        pass

    @abstractmethod
    async def list_by_course(self, course_id: str) -> List[Result]:
        pass

    @abstractmethod
    async def count_by_assessment(self, assessment_id: str) -> int:
        pass


def _newest_first(results: List[Result]) -> List[Result]:
    return sorted(results, key=lambda result: result.attempt_date, reverse=True)


class MemoryAssessmentRepository(AssessmentRepository):
    """
    In-memory implementation of the AssessmentRepository.

    Intended for development and testing purposes only.
    """

    def __init__(self, initial_data: Optional[List[Assessment]] = None):
        self._assessments: Dict[str, Assessment] = {}
        for assessment in initial_data or []:
            self._assessments[assessment.assessment_id] = assessment

    async def get_by_id(self, assessment_id: str) -> Optional[Assessment]:
        return self._assessments.get(assessment_id)

    async def list_by_course(self, course_id: str) -> List[Assessment]:
        return sorted(
            (a for a in self._assessments.values() if a.course_id == course_id),
            key=lambda a: a.created_at
        )

    async def save(self, assessment: Assessment) -> Assessment:
        self._assessments[assessment.assessment_id] = assessment
        return assessment

    async def delete(self, assessment_id: str) -> bool:
        return self._assessments.pop(assessment_id, None) is not None


class MemoryResultRepository(ResultRepository):
    """
    In-memory implementation of the ResultRepository.

    Course filters are resolved through the assessment repository, the way a
    database would join results to assessments.
    """

    def __init__(self, assessments: AssessmentRepository):
        self._assessments = assessments
        self._results: Dict[str, Result] = {}

    async def add(self, result: Result) -> Result:
        if result.result_id in self._results:
            raise ValueError(f"Result {result.result_id} already exists")
        self._results[result.result_id] = result
        logger.debug(f"Stored result {result.result_id} for assessment {result.assessment_id}")
        return result

    async def get_by_id(self, result_id: str) -> Optional[Result]:
        return self._results.get(result_id)

    async def list_by_assessment(self, assessment_id: str) -> List[Result]:
        return _newest_first([r for r in self._results.values() if r.assessment_id == assessment_id])

    async def list_by_user(self, user_id: str, course_id: Optional[str] = None) -> List[Result]:
        results = [r for r in self._results.values() if r.user_id == user_id]
        if course_id is not None:
            results = [r for r in results if await self._in_course(r, course_id)]
        return _newest_first(results)

    async def list_by_course(self, course_id: str) -> List[Result]:
        return _newest_first([r for r in self._results.values() if await self._in_course(r, course_id)])

    async def count_by_assessment(self, assessment_id: str) -> int:
        return sum(1 for r in self._results.values() if r.assessment_id == assessment_id)

    async def _in_course(self, result: Result, course_id: str) -> bool:
        assessment = await self._assessments.get_by_id(result.assessment_id)
        return assessment is not None and assessment.course_id == course_id
