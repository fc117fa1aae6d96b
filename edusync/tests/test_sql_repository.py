"""
Database tests for the SQLAlchemy assessment and result repositories.

These tests run against an in-memory SQLite database through aiosqlite with
foreign keys enforced, so the restrict-on-delete rule is exercised for real.
"""

import datetime

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from edusync.assessments.models import Assessment, Result
from edusync.assessments.sql_repository import SQLAssessmentRepository, SQLResultRepository
from edusync.common.error_handling import DatabaseError
from edusync.database.base import Base
from edusync.database.init_db import close_database, get_session_factory, initialize_database
from edusync.tests.conftest import START_TIME


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def assessments(session_factory):
    return SQLAssessmentRepository(session_factory)


@pytest.fixture
def results(session_factory):
    return SQLResultRepository(session_factory)


def make_assessment(assessment_id="assessment-1", course_id="course-1", questions_json="[]"):
    return Assessment(
        assessment_id=assessment_id,
        course_id=course_id,
        title="Fractions",
        questions=questions_json,
        max_score=20,
        time_limit=datetime.timedelta(minutes=30),
        created_at=START_TIME,
        updated_at=START_TIME
    )


def make_result(result_id, assessment_id="assessment-1", user_id="student-1", minutes=0, score=10):
    return Result(
        result_id=result_id,
        assessment_id=assessment_id,
        user_id=user_id,
        score=score,
        attempt_date=START_TIME + datetime.timedelta(minutes=minutes),
        answers='[{"question_id": "q1", "response": "A"}]',
        time_taken=datetime.timedelta(seconds=90)
    )


class TestSQLAssessmentRepository:

    @pytest.mark.asyncio
    async def test_save_and_get(self, assessments, questions_json):
        assessment = make_assessment(questions_json=questions_json)
        await assessments.save(assessment)

        loaded = await assessments.get_by_id("assessment-1")

        assert loaded == assessment
        assert loaded.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_get_missing(self, assessments):
        assert await assessments.get_by_id("missing") is None

    @pytest.mark.asyncio
    async def test_save_replaces_existing(self, assessments):
        await assessments.save(make_assessment())
        updated = make_assessment()
        updated.title = "Decimals"
        await assessments.save(updated)

        assert (await assessments.get_by_id("assessment-1")).title == "Decimals"

    @pytest.mark.asyncio
    async def test_list_by_course(self, assessments):
        await assessments.save(make_assessment("a1", "course-1"))
        await assessments.save(make_assessment("a2", "course-2"))

        listed = await assessments.list_by_course("course-1")

        assert [a.assessment_id for a in listed] == ["a1"]

    @pytest.mark.asyncio
    async def test_delete(self, assessments):
        await assessments.save(make_assessment())
        assert await assessments.delete("assessment-1") is True
        assert await assessments.delete("assessment-1") is False


class TestSQLResultRepository:

    @pytest.mark.asyncio
    async def test_add_and_get(self, assessments, results):
        await assessments.save(make_assessment())
        result = make_result("r1")

        await results.add(result)

        assert await results.get_by_id("r1") == result

    @pytest.mark.asyncio
    async def test_duplicate_result_id_is_rejected(self, assessments, results):
        await assessments.save(make_assessment())
        await results.add(make_result("r1"))

        with pytest.raises(ValueError):
            await results.add(make_result("r1", score=0))

    @pytest.mark.asyncio
    async def test_listings_are_newest_first(self, assessments, results):
        await assessments.save(make_assessment("a1", "course-1"))
        await assessments.save(make_assessment("a2", "course-2"))
        await results.add(make_result("r1", "a1", minutes=1))
        await results.add(make_result("r2", "a1", minutes=5))
        await results.add(make_result("r3", "a2", minutes=3))
        await results.add(make_result("r4", "a1", user_id="student-2", minutes=4))

        assert [r.result_id for r in await results.list_by_assessment("a1")] == ["r2", "r4", "r1"]
        assert [r.result_id for r in await results.list_by_user("student-1")] == ["r2", "r3", "r1"]
        assert [r.result_id for r in await results.list_by_user("student-1", "course-2")] == ["r3"]
        assert [r.result_id for r in await results.list_by_course("course-1")] == ["r2", "r4", "r1"]
        assert await results.count_by_assessment("a1") == 3

    @pytest.mark.asyncio
    async def test_assessment_with_results_cannot_be_deleted(self, assessments, results):
        await assessments.save(make_assessment())
        await results.add(make_result("r1"))

        with pytest.raises(DatabaseError):
            await assessments.delete("assessment-1")

        assert await assessments.get_by_id("assessment-1") is not None


class TestInitializeDatabase:

    @pytest.mark.asyncio
    async def test_initialize_creates_schema(self):
        await initialize_database(
            "sqlite+aiosqlite://",
            create_schema=True,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False}
        )
        try:
            repository = SQLAssessmentRepository(get_session_factory())
            await repository.save(make_assessment())
            assert await repository.get_by_id("assessment-1") is not None
        finally:
            await close_database()

        with pytest.raises(RuntimeError):
            get_session_factory()
