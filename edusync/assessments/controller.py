"""
Assessment API Controller

HTTP endpoints for assessment management, attempts, submissions and results.
All endpoints resolve the caller through ``get_current_principal`` and return
the standard ``APIResponse`` envelope; domain errors are turned into HTTP
responses by the application's exception handler.
"""

import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from edusync.api import APIResponse
from edusync.assessments.assessment_service import AssessmentService
from edusync.assessments.models import Submission
from edusync.assessments.schemas import (
    AnswerRequest,
    AssessmentCreate,
    AssessmentUpdate,
    SubmissionRequest,
    to_json_text,
)
from edusync.assessments.submission_service import SubmissionOrchestrator
from edusync.common.auth import Principal, get_current_principal, require_instructor
from edusync.common.error_handling import AssessmentNotFoundError, NotInstructorError
from edusync.common.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_orchestrator(request: Request) -> SubmissionOrchestrator:
    """Get the SubmissionOrchestrator from the application state."""
    return request.app.state.components["orchestrator"]


def get_assessment_service(request: Request) -> AssessmentService:
    """Get the AssessmentService from the application state."""
    return request.app.state.components["assessment_service"]


def _time_limit(seconds: Optional[int]) -> Optional[datetime.timedelta]:
    return datetime.timedelta(seconds=seconds) if seconds is not None else None


@router.get("/course/{course_id}")
async def list_course_assessments(
    course_id: str,
    principal: Principal = Depends(get_current_principal),
    service: AssessmentService = Depends(get_assessment_service)
):
    """List the assessments of a course."""
    assessments = await service.list_by_course(principal.user_id, course_id)
    data = []
    for assessment in assessments:
        item = assessment.to_dict()
        item.pop("questions")
        data.append(item)
    return APIResponse.success(data)


@router.get("/results/my")
async def get_my_results(
    course_id: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_principal),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator)
):
    """The caller's own results, newest first."""
    results = await orchestrator.get_student_results(principal.user_id, course_id)
    return APIResponse.success([result.to_dict() for result in results])


@router.get("/results/course/{course_id}")
async def get_course_results(
    course_id: str,
    principal: Principal = Depends(require_instructor),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator)
):
    """Every result of a course; instructors of the course only."""
    if not await orchestrator.membership.is_instructor(course_id, principal.user_id):
        raise NotInstructorError(course_id)
    results = await orchestrator.get_course_results(course_id)
    return APIResponse.success([result.to_dict() for result in results])


@router.post("/submit", status_code=status.HTTP_201_CREATED)
async def submit_assessment(
    body: SubmissionRequest,
    principal: Principal = Depends(get_current_principal),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator)
):
    """Submit the answers of an open attempt and get the scored result."""
    submission = Submission(
        assessment_id=body.assessment_id,
        answers=to_json_text(body.answers),
        time_taken=(
            datetime.timedelta(seconds=body.time_taken_seconds)
            if body.time_taken_seconds is not None else None
        ),
        course_id=body.course_id
    )
    result = await orchestrator.submit(principal.user_id, submission)
    return APIResponse.success(result.to_dict(), message="Assessment submitted")


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_assessment(
    body: AssessmentCreate,
    principal: Principal = Depends(require_instructor),
    service: AssessmentService = Depends(get_assessment_service)
):
    assessment = await service.create(
        principal.user_id,
        course_id=body.course_id,
        title=body.title,
        questions=to_json_text(body.questions),
        max_score=body.max_score,
        time_limit=_time_limit(body.time_limit_seconds)
    )
    return APIResponse.success(assessment.to_dict(), message="Assessment created")


@router.get("/{assessment_id}")
async def get_assessment(
    assessment_id: str,
    principal: Principal = Depends(get_current_principal),
    service: AssessmentService = Depends(get_assessment_service)
):
    return APIResponse.success(await service.get(principal.user_id, assessment_id))


@router.put("/{assessment_id}")
async def update_assessment(
    assessment_id: str,
    body: AssessmentUpdate,
    principal: Principal = Depends(require_instructor),
    service: AssessmentService = Depends(get_assessment_service)
):
    assessment = await service.update(
        principal.user_id,
        assessment_id,
        title=body.title,
        questions=to_json_text(body.questions),
        max_score=body.max_score,
        time_limit=_time_limit(body.time_limit_seconds)
    )
    return APIResponse.success(assessment.to_dict(), message="Assessment updated")


@router.delete("/{assessment_id}")
async def delete_assessment(
    assessment_id: str,
    principal: Principal = Depends(require_instructor),
    service: AssessmentService = Depends(get_assessment_service)
):
    await service.delete(principal.user_id, assessment_id)
    return APIResponse.success(message="Assessment deleted")


@router.post("/{assessment_id}/start")
async def start_assessment(
    assessment_id: str,
    principal: Principal = Depends(get_current_principal),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator)
):
    """Start an attempt; the questions come without their correct answers."""
    started = await orchestrator.start_attempt(principal.user_id, assessment_id)
    return APIResponse.success(started.to_dict(), message="Attempt started")


@router.post("/{assessment_id}/answer")
async def record_answer(
    assessment_id: str,
    body: AnswerRequest,
    principal: Principal = Depends(get_current_principal),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator)
):
    """Report a single answer of the open attempt for live monitoring."""
    event = await orchestrator.record_answer(
        principal.user_id,
        assessment_id,
        str(body.question_id),
        body.response,
        body.time_taken_seconds
    )
    return APIResponse.success({"sequence": event.sequence, "attempt": event.attempt})


@router.get("/{assessment_id}/summary")
async def get_assessment_summary(
    assessment_id: str,
    principal: Principal = Depends(require_instructor),
    orchestrator: SubmissionOrchestrator = Depends(get_orchestrator)
):
    """Summary statistics across all attempts; instructors of the course only."""
    assessment = await orchestrator.assessments.get_by_id(assessment_id)
    if assessment is None:
        raise AssessmentNotFoundError(assessment_id)
    if not await orchestrator.membership.is_instructor(assessment.course_id, principal.user_id):
        raise NotInstructorError(assessment.course_id)

    summary = await orchestrator.get_assessment_summary(assessment_id)
    if summary is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=APIResponse.error("No submissions found for this assessment.", code="no_results")
        )
    return APIResponse.success(summary.to_dict())
