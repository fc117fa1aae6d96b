"""
Shared fixtures for the EduSync assessment tests.
"""

import json
import datetime
from types import SimpleNamespace

import pytest

from edusync.assessments.membership import MemoryCourseMembership
from edusync.assessments.models import Assessment
from edusync.assessments.repositories import MemoryAssessmentRepository, MemoryResultRepository
from edusync.assessments.sequencer import EventSequencer
from edusync.assessments.submission_service import SubmissionOrchestrator
from edusync.telemetry.sinks import InMemoryEventSink

COURSE_ID = "course-1"
OTHER_COURSE_ID = "course-2"
ASSESSMENT_ID = "assessment-1"
STUDENT_ID = "student-1"
OTHER_STUDENT_ID = "student-2"
OUTSIDER_ID = "outsider"
INSTRUCTOR_ID = "instructor-1"

START_TIME = datetime.datetime(2026, 3, 2, 9, 0, 0, tzinfo=datetime.timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime.datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs) -> datetime.datetime:
        self.now += datetime.timedelta(**kwargs)
        return self.now


QUESTIONS = [
    {
        "id": "q1",
        "type": "single_choice",
        "prompt": "What is 7 x 6?",
        "options": [{"id": "A", "text": "42"}, {"id": "B", "text": "48"}, {"id": "C", "text": "36"}],
        "correct": "A",
        "points": 10
    },
    {
        "id": "q2",
        "type": "multi_choice",
        "prompt": "Which numbers are prime?",
        "options": [{"id": "A", "text": "2"}, {"id": "B", "text": "4"}, {"id": "C", "text": "5"}],
        "correct": ["A", "C"],
        "points": 5
    },
    {
        "id": "q3",
        "type": "free_text",
        "prompt": "Explain why 1 is not prime.",
        "options": [],
        "correct": None,
        "points": 5
    }
]


@pytest.fixture
def questions_json() -> str:
    return json.dumps(QUESTIONS)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def membership() -> MemoryCourseMembership:
    return MemoryCourseMembership(
        enrollments={COURSE_ID: {STUDENT_ID, OTHER_STUDENT_ID}, OTHER_COURSE_ID: {OUTSIDER_ID}},
        instructors={COURSE_ID: {INSTRUCTOR_ID}}
    )


@pytest.fixture
def assessment(questions_json) -> Assessment:
    return Assessment(
        assessment_id=ASSESSMENT_ID,
        course_id=COURSE_ID,
        title="Arithmetic Basics",
        questions=questions_json,
        max_score=20,
        created_at=START_TIME,
        updated_at=START_TIME
    )


@pytest.fixture
def stack(assessment, membership, clock):
    """A fully wired in-memory orchestrator."""
    assessments = MemoryAssessmentRepository([assessment])
    results = MemoryResultRepository(assessments)
    sink = InMemoryEventSink()
    sequencer = EventSequencer(sink, clock=clock)
    orchestrator = SubmissionOrchestrator(assessments, results, membership, sequencer)
    return SimpleNamespace(
        assessments=assessments,
        results=results,
        membership=membership,
        sink=sink,
        sequencer=sequencer,
        orchestrator=orchestrator,
        clock=clock,
        assessment=assessment
    )
