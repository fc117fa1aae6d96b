"""
API tests for the assessment endpoints and the monitor WebSocket.

The application is created with prebuilt in-memory components so that the
tests control the clock, the roster and the event sink.
"""

import json
import datetime

import pytest
from starlette.websockets import WebSocketDisconnect
from fastapi.testclient import TestClient

from edusync.assessments.assessment_service import AssessmentService
from edusync.config import Settings
from edusync.main import create_app
from edusync.realtime.manager import WebSocketManager
from edusync.tests.conftest import (
    ASSESSMENT_ID,
    COURSE_ID,
    INSTRUCTOR_ID,
    OTHER_STUDENT_ID,
    OUTSIDER_ID,
    STUDENT_ID,
)

API = "/api/assessments"

ANSWERS = [
    {"question_id": "q1", "response": "A"},
    {"question_id": "q2", "response": ["C", "A"]},
    {"question_id": "q3", "response": "Because it has only one divisor."}
]


def student(user_id=STUDENT_ID):
    return {"Authorization": f"Bearer {user_id}"}


def instructor(user_id=INSTRUCTOR_ID):
    return {"Authorization": f"Bearer {user_id}", "X-User-Role": "instructor"}


@pytest.fixture
def client(stack):
    settings = Settings(EVENT_SINKS="memory", STORAGE_BACKEND="memory", REDIS_URL="")
    components = {
        "settings": settings,
        "redis": None,
        "websocket_manager": WebSocketManager(),
        "membership": stack.membership,
        "sink": stack.sink,
        "sequencer": stack.sequencer,
        "orchestrator": stack.orchestrator,
        "assessment_service": AssessmentService(
            stack.assessments, stack.results, stack.membership, clock=stack.clock
        )
    }
    app = create_app(settings=settings, components=components)
    with TestClient(app) as test_client:
        yield test_client


def submit(client, user_id=STUDENT_ID, answers=ANSWERS, **extra):
    body = {"assessment_id": ASSESSMENT_ID, "answers": answers}
    body.update(extra)
    return client.post(f"{API}/submit", json=body, headers=student(user_id))


def result_count(client):
    response = client.get(f"{API}/results/course/{COURSE_ID}", headers=instructor())
    return len(response.json()["data"])


class TestAuthentication:

    def test_missing_authorization(self, client):
        response = client.post(f"{API}/{ASSESSMENT_ID}/start")
        assert response.status_code == 401

    def test_wrong_scheme(self, client):
        response = client.post(f"{API}/{ASSESSMENT_ID}/start", headers={"Authorization": f"Basic {STUDENT_ID}"})
        assert response.status_code == 401

    def test_unknown_role(self, client):
        headers = {"Authorization": f"Bearer {STUDENT_ID}", "X-User-Role": "admin"}
        assert client.get(f"{API}/course/{COURSE_ID}", headers=headers).status_code == 401

    def test_student_cannot_create(self, client, questions_json):
        response = client.post(
            f"{API}/",
            json={"course_id": COURSE_ID, "title": "Nope", "questions": questions_json},
            headers=student()
        )
        assert response.status_code == 403


class TestAttemptFlow:

    def test_start_answer_submit(self, client, stack):
        started = client.post(f"{API}/{ASSESSMENT_ID}/start", headers=student())
        assert started.status_code == 200
        data = started.json()["data"]
        assert data["attempt"] == 1
        assert all("correct" not in question for question in data["questions"])

        answered = client.post(
            f"{API}/{ASSESSMENT_ID}/answer",
            json={"question_id": "q1", "response": "A", "time_taken_seconds": 12.5},
            headers=student()
        )
        assert answered.json()["data"] == {"sequence": 2, "attempt": 1}

        stack.clock.advance(minutes=4)
        submitted = submit(client)

        assert submitted.status_code == 201
        body = submitted.json()
        assert body["status"] == "success"
        assert body["data"]["score"] == 15
        assert body["data"]["time_taken_seconds"] == 240.0

    def test_answers_as_json_text(self, client):
        client.post(f"{API}/{ASSESSMENT_ID}/start", headers=student())
        response = submit(client, answers=json.dumps(ANSWERS[:1]))
        assert response.status_code == 201
        assert response.json()["data"]["score"] == 10

    def test_submit_twice_conflicts(self, client, stack):
        client.post(f"{API}/{ASSESSMENT_ID}/start", headers=student())
        assert submit(client).status_code == 201

        response = submit(client)

        assert response.status_code == 409
        assert response.json()["code"] == "already_submitted"
        assert result_count(client) == 1

    def test_submit_without_start(self, client):
        response = submit(client)
        assert response.status_code == 409
        assert response.json()["code"] == "not_started"

    def test_duplicate_start(self, client):
        client.post(f"{API}/{ASSESSMENT_ID}/start", headers=student())
        response = client.post(f"{API}/{ASSESSMENT_ID}/start", headers=student())
        assert response.status_code == 409
        assert response.json()["code"] == "duplicate_start"

    def test_unenrolled_student_sees_not_found(self, client):
        response = client.post(f"{API}/{ASSESSMENT_ID}/start", headers=student(OUTSIDER_ID))
        assert response.status_code == 404
        assert response.json()["code"] == "assessment_not_found"

    def test_submission_for_foreign_course(self, client):
        response = submit(client, user_id=STUDENT_ID, course_id="course-2")
        assert response.status_code == 403
        assert response.json()["code"] == "not_enrolled"

    def test_malformed_answers(self, client):
        client.post(f"{API}/{ASSESSMENT_ID}/start", headers=student())

        response = submit(client, answers=[{"question_id": "q9", "response": "A"}])

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "malformed_answers"
        assert body["details"]["errors"][0]["question_id"] == "q9"

    def test_expired_submission(self, client, stack):
        stack.assessment.time_limit = datetime.timedelta(minutes=10)
        client.post(f"{API}/{ASSESSMENT_ID}/start", headers=student())
        stack.clock.advance(minutes=12)

        response = submit(client)

        assert response.status_code == 410
        assert response.json()["code"] == "submission_expired"
        assert result_count(client) == 0

    def test_invalid_request_body(self, client):
        response = client.post(f"{API}/submit", json={"answers": []}, headers=student())
        assert response.status_code == 422
        assert response.json()["code"] == "request_validation_error"


class TestResults:

    def _submit_as(self, client, user_id, answers):
        client.post(f"{API}/{ASSESSMENT_ID}/start", headers=student(user_id))
        assert submit(client, user_id=user_id, answers=answers).status_code == 201

    def test_my_results(self, client):
        self._submit_as(client, STUDENT_ID, ANSWERS)

        response = client.get(f"{API}/results/my", params={"course_id": COURSE_ID}, headers=student())

        data = response.json()["data"]
        assert len(data) == 1
        assert data[0]["assessment_title"] == "Arithmetic Basics"

    def test_course_results_for_instructor_only(self, client):
        self._submit_as(client, STUDENT_ID, ANSWERS)

        assert client.get(f"{API}/results/course/{COURSE_ID}", headers=student()).status_code == 403
        assert client.get(
            f"{API}/results/course/{COURSE_ID}", headers=instructor("other-instructor")
        ).status_code == 403

        response = client.get(f"{API}/results/course/{COURSE_ID}", headers=instructor())
        assert len(response.json()["data"]) == 1

    def test_summary_without_results(self, client):
        response = client.get(f"{API}/{ASSESSMENT_ID}/summary", headers=instructor())
        assert response.status_code == 404
        assert response.json()["code"] == "no_results"

    def test_summary(self, client):
        self._submit_as(client, STUDENT_ID, ANSWERS)
        self._submit_as(client, OTHER_STUDENT_ID, [{"question_id": "q2", "response": ["A", "C"]}])

        response = client.get(f"{API}/{ASSESSMENT_ID}/summary", headers=instructor())

        data = response.json()["data"]
        assert data["assessment_title"] == "Arithmetic Basics"
        assert data["course_id"] == COURSE_ID
        assert data["attempt_count"] == 2
        assert data["highest_score"] == 15
        assert data["lowest_score"] == 5


class TestAssessmentManagement:

    def test_create_and_get(self, client, questions_json):
        created = client.post(
            f"{API}/",
            json={"course_id": COURSE_ID, "title": "Quiz 2", "questions": json.loads(questions_json)},
            headers=instructor()
        )
        assert created.status_code == 201
        assessment_id = created.json()["data"]["assessment_id"]
        assert created.json()["data"]["max_score"] == 20

        as_student = client.get(f"{API}/{assessment_id}", headers=student())
        assert "correct" not in as_student.json()["data"]["questions"][0]

    def test_create_malformed_question_set(self, client):
        response = client.post(
            f"{API}/",
            json={"course_id": COURSE_ID, "title": "Broken", "questions": "not json"},
            headers=instructor()
        )
        assert response.status_code == 400
        assert response.json()["code"] == "malformed_question_set"

    def test_list_course(self, client):
        response = client.get(f"{API}/course/{COURSE_ID}", headers=student())
        data = response.json()["data"]
        assert [item["assessment_id"] for item in data] == [ASSESSMENT_ID]
        assert "questions" not in data[0]

    def test_delete_with_results_is_refused(self, client):
        client.post(f"{API}/{ASSESSMENT_ID}/start", headers=student())
        submit(client)

        response = client.delete(f"{API}/{ASSESSMENT_ID}", headers=instructor())

        assert response.status_code == 409
        assert response.json()["code"] == "assessment_has_results"

    def test_delete(self, client):
        assert client.delete(f"{API}/{ASSESSMENT_ID}", headers=instructor()).status_code == 200
        assert client.get(f"{API}/{ASSESSMENT_ID}", headers=instructor()).status_code == 404


class TestMonitorSocket:

    def test_instructor_gets_pong(self, client):
        with client.websocket_connect(f"/ws/assessments/{ASSESSMENT_ID}/monitor?token={INSTRUCTOR_ID}") as ws:
            ws.send_text(json.dumps({"type": "ping"}))
            assert ws.receive_json() == {"type": "pong"}

    def test_student_is_refused(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/ws/assessments/{ASSESSMENT_ID}/monitor?token={STUDENT_ID}") as ws:
                ws.receive_text()
