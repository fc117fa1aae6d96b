"""
SQL Assessment Repositories

This module provides SQLAlchemy implementations of the assessment and result
repositories. Each operation opens its own session from the async session
factory, so repositories are safe to share between concurrent requests.
"""

from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from edusync.assessments.database_models import AssessmentRecord, ResultRecord
from edusync.assessments.models import Assessment, Result
from edusync.assessments.repositories import AssessmentRepository, ResultRepository
from edusync.common.error_handling import DatabaseError
from edusync.common.logger import get_logger

logger = get_logger(__name__)


class SQLAssessmentRepository(AssessmentRepository):
    """Repository for assessments stored in the ``assessments`` table."""

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize the repository with a session factory.

        Args:
            session_factory: SQLAlchemy async session factory
        """
        self._session_factory = session_factory

    async def get_by_id(self, assessment_id: str) -> Optional[Assessment]:
        async with self._session_factory() as session:
            record = await session.get(AssessmentRecord, assessment_id)
            return record.to_domain() if record else None

    async def list_by_course(self, course_id: str) -> List[Assessment]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AssessmentRecord)
                .where(AssessmentRecord.course_id == course_id)
                .order_by(AssessmentRecord.created_at)
            )
            return [record.to_domain() for record in result.scalars().all()]

    async def save(self, assessment: Assessment) -> Assessment:
        try:
            async with self._session_factory() as session:
                await session.merge(AssessmentRecord.from_domain(assessment))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save assessment {assessment.assessment_id}: {e}")
            raise DatabaseError(f"Failed to save assessment {assessment.assessment_id}", cause=e)
        return assessment

    async def delete(self, assessment_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(AssessmentRecord).where(AssessmentRecord.assessment_id == assessment_id)
                )
                await session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to delete assessment {assessment_id}: {e}")
            raise DatabaseError(f"Failed to delete assessment {assessment_id}", cause=e)


class SQLResultRepository(ResultRepository):
    """Repository for results stored in the ``results`` table."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def add(self, result: Result) -> Result:
        try:
            async with self._session_factory() as session:
                session.add(ResultRecord.from_domain(result))
                await session.commit()
        except IntegrityError as e:
            raise ValueError(f"Result {result.result_id} could not be stored: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to store result {result.result_id}: {e}")
            raise DatabaseError(f"Failed to store result {result.result_id}", cause=e)
        return result

    async def get_by_id(self, result_id: str) -> Optional[Result]:
        async with self._session_factory() as session:
            record = await session.get(ResultRecord, result_id)
            return record.to_domain() if record else None

    async def list_by_assessment(self, assessment_id: str) -> List[Result]:
        return await self._list(select(ResultRecord).where(ResultRecord.assessment_id == assessment_id))

    async def list_by_user(self, user_id: str, course_id: Optional[str] = None) -> List[Result]:
        stmt = select(ResultRecord).where(ResultRecord.user_id == user_id)
        if course_id is not None:
            stmt = stmt.join(AssessmentRecord).where(AssessmentRecord.course_id == course_id)
        return await self._list(stmt)

    async def list_by_course(self, course_id: str) -> List[Result]:
        return await self._list(
            select(ResultRecord).join(AssessmentRecord).where(AssessmentRecord.course_id == course_id)
        )

    async def count_by_assessment(self, assessment_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(ResultRecord)
                .where(ResultRecord.assessment_id == assessment_id)
            )
            return result.scalar_one()

    async def _list(self, stmt) -> List[Result]:
        async with self._session_factory() as session:
            result = await session.execute(stmt.order_by(ResultRecord.attempt_date.desc()))
            return [record.to_domain() for record in result.scalars().all()]
