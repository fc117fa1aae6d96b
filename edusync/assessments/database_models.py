"""
SQLAlchemy ORM models for assessments and results.
"""

import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String, Text

from edusync.assessments.models import Assessment, Result
from edusync.database.base import ModelBase


def _aware(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def _timedelta(seconds: Optional[float]) -> Optional[datetime.timedelta]:
    return datetime.timedelta(seconds=seconds) if seconds is not None else None


def _seconds(value: Optional[datetime.timedelta]) -> Optional[float]:
    return value.total_seconds() if value is not None else None


class AssessmentRecord(ModelBase):
    """An assessment row; the question set is kept as serialized text."""
    __tablename__ = "assessments"

    assessment_id = Column(String(36), primary_key=True)
    course_id = Column(String(255), nullable=False)
    title = Column(String(255), nullable=False)
    questions = Column(Text, nullable=False)
    max_score = Column(Integer, nullable=False)
    time_limit_seconds = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_assessments_course_id", course_id),
    )

    def __repr__(self):
        return f"<AssessmentRecord(assessment_id='{self.assessment_id}', course_id='{self.course_id}')>"

    @classmethod
    def from_domain(cls, assessment: Assessment) -> "AssessmentRecord":
        return cls(
            assessment_id=assessment.assessment_id,
            course_id=assessment.course_id,
            title=assessment.title,
            questions=assessment.questions,
            max_score=assessment.max_score,
            time_limit_seconds=_seconds(assessment.time_limit),
            created_at=assessment.created_at,
            updated_at=assessment.updated_at
        )

    def to_domain(self) -> Assessment:
        return Assessment(
            assessment_id=self.assessment_id,
            course_id=self.course_id,
            title=self.title,
            questions=self.questions,
            max_score=self.max_score,
            time_limit=_timedelta(self.time_limit_seconds),
            created_at=_aware(self.created_at),
            updated_at=_aware(self.updated_at)
        )


class ResultRecord(ModelBase):
    """
    A result row.

    The foreign key restricts deletes so that an assessment with results
    cannot be removed underneath them.
    """
    __tablename__ = "results"

    result_id = Column(String(36), primary_key=True)
    assessment_id = Column(
        String(36),
        ForeignKey("assessments.assessment_id", ondelete="RESTRICT"),
        nullable=False
    )
    user_id = Column(String(255), nullable=False)
    score = Column(Integer, nullable=False)
    attempt_date = Column(DateTime(timezone=True), nullable=False)
    answers = Column(Text, nullable=False)
    time_taken_seconds = Column(Float, nullable=True)

    __table_args__ = (
        Index("idx_results_assessment_id", assessment_id),
        Index("idx_results_user_id_attempt_date", user_id, attempt_date),
    )

    def __repr__(self):
        return (f"<ResultRecord(result_id='{self.result_id}', assessment_id='{self.assessment_id}', "
                f"user_id='{self.user_id}', score={self.score})>")

    @classmethod
    def from_domain(cls, result: Result) -> "ResultRecord":
        return cls(
            result_id=result.result_id,
            assessment_id=result.assessment_id,
            user_id=result.user_id,
            score=result.score,
            attempt_date=result.attempt_date,
            answers=result.answers,
            time_taken_seconds=_seconds(result.time_taken)
        )

    def to_domain(self) -> Result:
        return Result(
            result_id=self.result_id,
            assessment_id=self.assessment_id,
            user_id=self.user_id,
            score=self.score,
            attempt_date=_aware(self.attempt_date),
            answers=self.answers,
            time_taken=_timedelta(self.time_taken_seconds)
        )
