"""
Assessment Models

This module defines the core data models of the assessment subsystem:
assessments and their parsed questions, submissions and answers, immutable
results, quiz events, and the value objects produced by scoring and
summarizing.
"""

import enum
import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union


def utcnow() -> datetime.datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def _isoformat(value: Optional[datetime.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _seconds(value: Optional[datetime.timedelta]) -> Optional[float]:
    return value.total_seconds() if value is not None else None


class QuestionType(enum.Enum):
    """Question types supported by the codecs and the scoring engine."""
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    FREE_TEXT = "free_text"

    @property
    def is_choice(self) -> bool:
        return self is not QuestionType.FREE_TEXT


# Correct answer of a question: an option id, a set of option ids, or an
# optional reference text for free-text questions.
CorrectAnswer = Union[str, FrozenSet[str], None]

# Response of an answer: an option id or free text, or a set of option ids.
Response = Union[str, FrozenSet[str]]


@dataclass(frozen=True)
class Option:
    """A selectable option of a choice question."""
    option_id: str
    text: str


@dataclass(frozen=True)
class Question:
    """
    A parsed question of an assessment.

    Questions only exist between the question set codec and the scoring
    engine; assessments store them in serialized form.
    """
    question_id: str
    question_type: QuestionType
    prompt: str
    options: Tuple[Option, ...] = ()
    correct: CorrectAnswer = None
    points: int = 1

    @property
    def option_ids(self) -> FrozenSet[str]:
        return frozenset(option.option_id for option in self.options)


@dataclass(frozen=True)
class Answer:
    """A student's response to one question."""
    question_id: str
    response: Response


@dataclass
class Assessment:
    """An assessment belonging to exactly one course."""
    assessment_id: str
    course_id: str
    title: str
    questions: str
    max_score: int
    time_limit: Optional[datetime.timedelta] = None
    created_at: datetime.datetime = field(default_factory=utcnow)
    updated_at: datetime.datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assessment_id": self.assessment_id,
            "course_id": self.course_id,
            "title": self.title,
            "questions": self.questions,
            "max_score": self.max_score,
            "time_limit_seconds": _seconds(self.time_limit),
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at)
        }


@dataclass(frozen=True)
class Submission:
    """A student's answers for one attempt, as received."""
    assessment_id: str
    answers: str
    time_taken: Optional[datetime.timedelta] = None
    course_id: Optional[str] = None


@dataclass(frozen=True)
class Result:
    """
    The scored outcome of one submitted attempt.

    Results are append-only: a new attempt always produces a new Result and
    existing ones are never modified.
    """
    result_id: str
    assessment_id: str
    user_id: str
    score: int
    attempt_date: datetime.datetime
    answers: str
    time_taken: Optional[datetime.timedelta] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result_id": self.result_id,
            "assessment_id": self.assessment_id,
            "user_id": self.user_id,
            "score": self.score,
            "attempt_date": _isoformat(self.attempt_date),
            "answers": self.answers,
            "time_taken_seconds": _seconds(self.time_taken)
        }


@dataclass(frozen=True)
class ResultDetails:
    """A Result joined with the assessment facts shown in result listings."""
    result: Result
    assessment_title: str
    course_id: str
    max_score: int

    @property
    def percentage(self) -> float:
        if self.max_score <= 0:
            return 0.0
        return round(self.result.score / self.max_score * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        data = self.result.to_dict()
        data.update({
            "assessment_title": self.assessment_title,
            "course_id": self.course_id,
            "max_score": self.max_score,
            "percentage": self.percentage
        })
        return data


class AttemptStatus(enum.Enum):
    """Lifecycle of a single attempt."""
    NOT_STARTED = "not_started"
    STARTED = "started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"

    @property
    def is_open(self) -> bool:
        return self in (AttemptStatus.STARTED, AttemptStatus.IN_PROGRESS)


class QuizEventType(enum.Enum):
    """Event types of the quiz telemetry stream."""
    START = "QuizStart"
    ANSWER = "QuizAnswer"
    SUBMIT = "QuizSubmit"


@dataclass(frozen=True)
class QuizEvent:
    """
    One step of an attempt's telemetry stream.

    ``sequence`` is assigned per (assessment_id, user_id) starting at 1 and
    increases by exactly one per emitted event.
    """
    event_id: str
    event_type: QuizEventType
    assessment_id: str
    user_id: str
    sequence: int
    attempt: int
    timestamp: datetime.datetime
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "assessment_id": self.assessment_id,
            "user_id": self.user_id,
            "sequence": self.sequence,
            "attempt": self.attempt,
            "timestamp": _isoformat(self.timestamp),
            "payload": dict(self.payload)
        }


class ScoreStatus(enum.Enum):
    """Per-question outcome in a score breakdown."""
    CORRECT = "correct"
    INCORRECT = "incorrect"
    PARTIAL = "partial"
    UNANSWERED = "unanswered"
    PENDING = "pending"


@dataclass(frozen=True)
class QuestionScore:
    question_id: str
    status: ScoreStatus
    points_awarded: int
    points_possible: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "status": self.status.value,
            "points_awarded": self.points_awarded,
            "points_possible": self.points_possible
        }


@dataclass(frozen=True)
class ScoreResult:
    """Output of the scoring engine for one submission."""
    total_score: int
    raw_score: int
    possible_points: int
    breakdown: Tuple[QuestionScore, ...] = ()

    @property
    def correct_count(self) -> int:
        return sum(1 for item in self.breakdown if item.status is ScoreStatus.CORRECT)

    @property
    def pending_count(self) -> int:
        return sum(1 for item in self.breakdown if item.status is ScoreStatus.PENDING)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_score": self.total_score,
            "raw_score": self.raw_score,
            "possible_points": self.possible_points,
            "correct_count": self.correct_count,
            "breakdown": [item.to_dict() for item in self.breakdown]
        }


# Percentage buckets of the score distribution, as (label, inclusive upper bound).
SCORE_BUCKETS: List[Tuple[str, float]] = [
    ("0-50", 50.0),
    ("51-60", 60.0),
    ("61-70", 70.0),
    ("71-80", 80.0),
    ("81-90", 90.0),
    ("91-100", 100.0)
]


@dataclass(frozen=True)
class AssessmentSummary:
    """Aggregate statistics over every Result of one assessment."""
    assessment_id: str
    assessment_title: str
    course_id: str
    attempt_count: int
    mean_score: float
    median_score: float
    highest_score: int
    lowest_score: int
    max_possible_score: int
    average_percentage: float
    score_distribution: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assessment_id": self.assessment_id,
            "assessment_title": self.assessment_title,
            "course_id": self.course_id,
            "attempt_count": self.attempt_count,
            "mean_score": self.mean_score,
            "median_score": self.median_score,
            "highest_score": self.highest_score,
            "lowest_score": self.lowest_score,
            "max_possible_score": self.max_possible_score,
            "average_percentage": self.average_percentage,
            "score_distribution": dict(self.score_distribution)
        }
