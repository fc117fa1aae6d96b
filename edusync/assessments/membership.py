"""
Course membership lookups.

Enrollment and course ownership are managed by the wider platform; this
module only defines the questions the assessment service asks about them,
plus an in-memory answer for development and tests.
"""

import json
from abc import ABC, abstractmethod
from typing import Dict, Optional, Set


class CourseMembership(ABC):
    """Answers who belongs to a course."""

    @abstractmethod
    async def is_enrolled(self, course_id: str, user_id: str) -> bool:
        """Whether the user is enrolled as a student of the course."""
        pass

    @abstractmethod
    async def is_instructor(self, course_id: str, user_id: str) -> bool:
        """Whether the user teaches the course."""
        pass


class MemoryCourseMembership(CourseMembership):
    """In-memory course rosters."""

    def __init__(
        self,
        enrollments: Optional[Dict[str, Set[str]]] = None,
        instructors: Optional[Dict[str, Set[str]]] = None
    ):
        self._enrollments: Dict[str, Set[str]] = {k: set(v) for k, v in (enrollments or {}).items()}
        self._instructors: Dict[str, Set[str]] = {k: set(v) for k, v in (instructors or {}).items()}

    def enroll(self, course_id: str, user_id: str) -> None:
        self._enrollments.setdefault(course_id, set()).add(user_id)

    def unenroll(self, course_id: str, user_id: str) -> None:
        self._enrollments.get(course_id, set()).discard(user_id)

    def assign_instructor(self, course_id: str, user_id: str) -> None:
        self._instructors.setdefault(course_id, set()).add(user_id)

    async def is_enrolled(self, course_id: str, user_id: str) -> bool:
        return user_id in self._enrollments.get(course_id, ())

    async def is_instructor(self, course_id: str, user_id: str) -> bool:
        return user_id in self._instructors.get(course_id, ())

    @classmethod
    def from_file(cls, path: str) -> 'MemoryCourseMembership':
        """
        Load rosters from a JSON file of the form
        ``{"<course_id>": {"students": [...], "instructors": [...]}}``.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        membership = cls()
        for course_id, roster in data.items():
            for user_id in roster.get("students", []):
                membership.enroll(str(course_id), str(user_id))
            for user_id in roster.get("instructors", []):
                membership.assign_instructor(str(course_id), str(user_id))
        return membership
