"""
Request models of the assessment API.
"""

import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


def to_json_text(value: Union[str, List[Any]]) -> str:
    """Accept either serialized JSON text or an already decoded list."""
    if isinstance(value, str):
        return value
    return json.dumps(value)


class AssessmentWrite(BaseModel):
    """Fields shared by assessment creation and update."""
    title: str = Field(..., min_length=1, max_length=255)
    questions: Union[str, List[Dict[str, Any]]] = Field(
        ..., description="Question set as JSON text or as a JSON array"
    )
    max_score: Optional[int] = Field(None, ge=0, description="Defaults to the sum of question points")
    time_limit_seconds: Optional[int] = Field(None, gt=0)


class AssessmentCreate(AssessmentWrite):
    course_id: str = Field(..., min_length=1)


class AssessmentUpdate(AssessmentWrite):
    pass


class SubmissionRequest(BaseModel):
    """A student's final answers for an attempt."""
    assessment_id: str
    course_id: Optional[str] = None
    answers: Union[str, List[Dict[str, Any]]] = Field(
        ..., description="Answers as JSON text or as a JSON array of {question_id, response}"
    )
    time_taken_seconds: Optional[float] = Field(None, ge=0)


class AnswerRequest(BaseModel):
    """A single answer reported while the attempt is in progress."""
    question_id: Union[str, int]
    response: Any = None
    time_taken_seconds: Optional[float] = Field(None, ge=0)
