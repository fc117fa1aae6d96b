"""
Tests for the shared building blocks: keyed locks, errors, logging and
the authentication dependencies.
"""

import json
import asyncio
import logging

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from edusync.api import status_for
from edusync.common.auth import Role, get_current_principal, require_instructor
from edusync.common.error_handling import (
    AlreadySubmittedError,
    AssessmentNotFoundError,
    DatabaseError,
    EduSyncError,
    ErrorCategory,
    ErrorCode,
    MalformedAnswersError,
    NotEnrolledError,
    SubmissionExpiredError,
    convert_exception,
    error_response,
)
from edusync.common.locks import KeyedLock
from edusync.common.logger import JsonFormatter, LoggerAdapter, log_execution_time
from edusync.config import Settings


class TestKeyedLock:

    @pytest.mark.asyncio
    async def test_same_key_is_exclusive(self):
        locks = KeyedLock()
        active = 0
        peak = 0

        async def worker():
            nonlocal active, peak
            async with locks.acquire("a1:u1"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0)
                active -= 1

        await asyncio.gather(*(worker() for _ in range(10)))

        assert peak == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = KeyedLock()

        async with locks.acquire("first"):
            async with locks.acquire("second"):
                assert locks.locked("first")
                assert locks.locked("second")
            assert not locks.locked("second")

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = KeyedLock()

        with pytest.raises(RuntimeError):
            async with locks.acquire("key"):
                raise RuntimeError("boom")

        assert not locks.locked("key")
        assert len(locks) == 0


class TestErrors:

    def test_error_response_for_domain_error(self):
        error = MalformedAnswersError("Submission has 1 invalid answer(s)", [
            {"index": 0, "question_id": "q9", "reason": "unknown question id 'q9'"}
        ])

        response = error_response(error)

        assert response["code"] == "malformed_answers"
        assert response["category"] == "validation"
        assert response["details"]["errors"][0]["question_id"] == "q9"

    def test_error_response_converts_plain_exceptions(self):
        response = error_response(KeyError("missing"))
        assert response["code"] == "unknown_error"
        assert response["category"] == "internal"

    def test_convert_exception_keeps_domain_errors(self):
        error = AlreadySubmittedError("a1", "u1")
        converted = convert_exception(error, context={"path": "/submit"})

        assert converted is error
        assert converted.context == {"path": "/submit"}

    def test_to_dict_includes_cause(self):
        error = DatabaseError("Failed to store result", cause=OSError("disk full"))
        data = error.to_dict()

        assert data["code"] == "database_error"
        assert data["details"]["cause"] == {"type": "OSError", "message": "disk full"}
        assert json.loads(error.to_json())["exception_type"] == "DatabaseError"

    @pytest.mark.parametrize("error, expected", [
        (MalformedAnswersError("bad"), 400),
        (SubmissionExpiredError("a1", 700.0, 600.0, 60.0), 410),
        (AlreadySubmittedError("a1", "u1"), 409),
        (NotEnrolledError("c1"), 403),
        (AssessmentNotFoundError("a1"), 404),
        (DatabaseError("down"), 500),
    ])
    def test_status_mapping(self, error, expected):
        assert status_for(error) == expected

    def test_base_error_is_internal(self):
        error = EduSyncError("unexpected")
        assert error.category is ErrorCategory.INTERNAL
        assert error.code is ErrorCode.UNKNOWN_ERROR


class TestLogging:

    def test_json_formatter_merges_adapter_context(self):
        logger = logging.getLogger("edusync.tests.json")
        records = []

        class Capture(logging.Handler):
            def emit(self, record):
                records.append(record)

        handler = Capture()
        logger.addHandler(handler)
        try:
            adapter = LoggerAdapter(logger, {"assessment_id": "a1"}).with_context(user_id="u1")
            adapter.warning("late submission")
        finally:
            logger.removeHandler(handler)

        output = json.loads(JsonFormatter().format(records[0]))
        assert output["message"] == "late submission"
        assert output["assessment_id"] == "a1"
        assert output["user_id"] == "u1"
        assert output["level"] == "WARNING"

    @pytest.mark.asyncio
    async def test_log_execution_time_reraises(self, caplog):
        logger = logging.getLogger("edusync.tests.timing")

        @log_execution_time(logger)
        async def failing():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await failing()
        assert "failing failed after" in caplog.text

    def test_log_execution_time_sync(self):
        @log_execution_time()
        def add(a, b):
            return a + b

        assert add(2, 3) == 5


class TestAuthDependencies:

    @pytest.mark.asyncio
    async def test_bearer_token_is_user_id(self):
        principal = await get_current_principal("Bearer student-1", None)
        assert principal.user_id == "student-1"
        assert principal.role is Role.STUDENT

    @pytest.mark.asyncio
    async def test_role_header_is_case_insensitive(self):
        principal = await get_current_principal("Bearer instructor-9", "Instructor")
        assert principal.is_instructor

    @pytest.mark.asyncio
    @pytest.mark.parametrize("header", [None, "", "Bearer", "Token abc", "Bearer a b"])
    async def test_bad_authorization_header(self, header):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_principal(header, None)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_require_instructor(self):
        student = await get_current_principal("Bearer student-1", None)
        with pytest.raises(HTTPException) as exc_info:
            await require_instructor(student)
        assert exc_info.value.status_code == 403


class TestSettings:

    def test_event_defaults(self):
        fields = Settings.model_fields
        assert fields["EVENT_SINKS"].default == "websocket"
        assert fields["EVENT_SINK_TIMEOUT_SECONDS"].default == 5.0
        assert fields["EVENT_MEMORY_LIMIT"].default == 10000

    def test_sink_names_are_normalized(self):
        settings = Settings(EVENT_SINKS=" Memory, file,memory ,", REDIS_URL="")
        assert settings.event_sink_names == ["memory", "file"]

    @pytest.mark.parametrize("field", ["EVENT_SINK_TIMEOUT_SECONDS", "EVENT_MEMORY_LIMIT"])
    def test_event_limits_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            Settings(**{field: 0})
