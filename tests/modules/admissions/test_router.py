"""
API tests for the admissions routers.

The service layer is patched; these tests check authentication, role
checks, request validation and the mapping of service errors to HTTP.
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from admission_api.api import api_router
from admission_api.core.auth import (
    ROLE_INSTITUTION,
    ROLE_STUDENT,
    Principal,
    get_current_principal,
)
from admission_api.core.database import get_db
from admission_api.core.redis import get_redis
from admission_api.modules.admissions.models import ApplicationStatus
from admission_api.modules.admissions.service import (
    AcceptanceResult,
    EligibleCourse,
    InstitutionCapExceededError,
    NotOwnerError,
    NotYetPublishedError,
)

SERVICE = "admission_api.modules.admissions.service"


@pytest.fixture
def app(mock_db):
    app = FastAPI()
    app.include_router(api_router)

    async def override_get_db():
        yield mock_db

    async def override_get_redis():
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    return app


def client_as(app: FastAPI, role: str, principal_id):
    app.dependency_overrides[get_current_principal] = lambda: Principal(id=principal_id, role=role)
    return TestClient(app)


class TestStudentEndpoints:
    """Tests for /admissions endpoints."""

    def test_requires_authentication(self, app):
        response = TestClient(app).get("/admissions/applications")
        assert response.status_code in (401, 403)

    def test_institution_cannot_apply(self, app, institution_id):
        client = client_as(app, ROLE_INSTITUTION, institution_id)

        response = client.post("/admissions/applications", json={"course_id": str(uuid4())})

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "STUDENT_ACCESS_REQUIRED"

    def test_apply(self, app, student_id, make_application):
        application = make_application(ApplicationStatus.PENDING)
        client = client_as(app, ROLE_STUDENT, student_id)

        with patch(f"{SERVICE}.apply_to_course", AsyncMock(return_value=application)) as apply:
            response = client.post(
                "/admissions/applications", json={"course_id": str(application.course_id)}
            )

        assert response.status_code == 201
        body = response.json()
        assert body["id"] == str(application.id)
        assert body["status"] == "pending"
        apply.assert_awaited_once()
        assert apply.await_args.args[1:] == (student_id, application.course_id)

    def test_apply_cap_reached(self, app, student_id):
        client = client_as(app, ROLE_STUDENT, student_id)

        with patch(
            f"{SERVICE}.apply_to_course", AsyncMock(side_effect=InstitutionCapExceededError(2))
        ):
            response = client.post("/admissions/applications", json={"course_id": str(uuid4())})

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "INSTITUTION_CAP_EXCEEDED"

    def test_apply_invalid_body(self, app, student_id):
        client = client_as(app, ROLE_STUDENT, student_id)

        response = client.post("/admissions/applications", json={"course_id": "nope"})

        assert response.status_code == 422

    def test_unexpected_error_is_500(self, app, student_id):
        client = client_as(app, ROLE_STUDENT, student_id)

        with patch(f"{SERVICE}.list_student_applications", AsyncMock(side_effect=RuntimeError)):
            response = client.get("/admissions/applications")

        assert response.status_code == 500
        assert response.json()["detail"]["error"] == "INTERNAL_ERROR"

    def test_list_hides_unpublished_decisions(self, app, student_id, make_application):
        applications = [
            make_application(ApplicationStatus.ADMITTED),
            make_application(ApplicationStatus.REJECTED, published=True),
        ]
        client = client_as(app, ROLE_STUDENT, student_id)

        with patch(
            f"{SERVICE}.list_student_applications", AsyncMock(return_value=applications)
        ):
            response = client.get("/admissions/applications")

        body = response.json()
        assert body["total"] == 2
        assert [a["status"] for a in body["applications"]] == ["pending", "rejected"]

    def test_withdraw(self, app, student_id):
        client = client_as(app, ROLE_STUDENT, student_id)
        application_id = uuid4()

        with patch(f"{SERVICE}.withdraw_application", AsyncMock()) as withdraw:
            response = client.delete(f"/admissions/applications/{application_id}")

        assert response.status_code == 204
        assert withdraw.await_args.args[1:] == (student_id, application_id)

    def test_accept(self, app, student_id, make_application):
        accepted = make_application(ApplicationStatus.ACCEPTED, published=True)
        declined = [make_application(ApplicationStatus.REJECTED) for _ in range(2)]
        client = client_as(app, ROLE_STUDENT, student_id)

        with patch(
            f"{SERVICE}.accept_offer",
            AsyncMock(return_value=AcceptanceResult(accepted=accepted, declined=declined)),
        ):
            response = client.post(f"/admissions/offers/{accepted.id}/accept")

        assert response.status_code == 200
        body = response.json()
        assert body["accepted"]["status"] == "accepted"
        assert body["declined_application_ids"] == [str(a.id) for a in declined]

    def test_accept_unpublished(self, app, student_id):
        client = client_as(app, ROLE_STUDENT, student_id)

        with patch(f"{SERVICE}.accept_offer", AsyncMock(side_effect=NotYetPublishedError())):
            response = client.post(f"/admissions/offers/{uuid4()}/accept")

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "NOT_YET_PUBLISHED"


class TestInstitutionEndpoints:
    """Tests for /institution/admissions endpoints."""

    def test_student_cannot_decide(self, app, student_id):
        client = client_as(app, ROLE_STUDENT, student_id)

        response = client.post(
            f"/institution/admissions/applications/{uuid4()}/decision",
            json={"status": "admitted"},
        )

        assert response.status_code == 403

    def test_decide(self, app, institution_id, make_application):
        application = make_application(ApplicationStatus.WAITLISTED)
        client = client_as(app, ROLE_INSTITUTION, institution_id)

        with patch(
            f"{SERVICE}.decide_application", AsyncMock(return_value=application)
        ) as decide:
            response = client.post(
                f"/institution/admissions/applications/{application.id}/decision",
                json={"status": "waitlisted", "notes": "Strong"},
            )

        assert response.status_code == 200
        assert response.json()["status"] == "waitlisted"
        assert decide.await_args.args[3] == ApplicationStatus.WAITLISTED
        assert decide.await_args.kwargs["notes"] == "Strong"

    def test_decide_rejects_non_decision_status(self, app, institution_id):
        client = client_as(app, ROLE_INSTITUTION, institution_id)

        response = client.post(
            f"/institution/admissions/applications/{uuid4()}/decision",
            json={"status": "accepted"},
        )

        assert response.status_code == 422

    def test_publish(self, app, institution_id):
        client = client_as(app, ROLE_INSTITUTION, institution_id)
        course_id = uuid4()

        with patch(f"{SERVICE}.publish_course_admissions", AsyncMock(return_value=3)):
            response = client.post(f"/institution/admissions/courses/{course_id}/publish")

        assert response.status_code == 200
        assert response.json()["published_count"] == 3

    def test_waitlist_positions(self, app, institution_id, sample_course, make_application):
        waitlist = [make_application(ApplicationStatus.WAITLISTED) for _ in range(3)]
        client = client_as(app, ROLE_INSTITUTION, institution_id)

        with patch(f"{SERVICE}.get_course_waitlist", AsyncMock(return_value=waitlist)):
            response = client.get(f"/institution/admissions/courses/{sample_course.id}/waitlist")

        body = response.json()
        assert body["total"] == 3
        assert [e["position"] for e in body["entries"]] == [1, 2, 3]
        assert [e["application_id"] for e in body["entries"]] == [str(a.id) for a in waitlist]

    def test_promote_from_waitlist(self, app, institution_id, sample_course, make_application):
        promoted = make_application(
            ApplicationStatus.ADMITTED, promoted_from_waitlist=True, published=True
        )
        client = client_as(app, ROLE_INSTITUTION, institution_id)

        with patch(
            f"{SERVICE}.promote_from_waitlist", AsyncMock(return_value=promoted)
        ) as promote:
            response = client.post(
                f"/institution/admissions/courses/{sample_course.id}/waitlist/promote"
            )

        assert response.status_code == 200
        body = response.json()
        assert body["promoted"]["id"] == str(promoted.id)
        assert body["promoted"]["promoted_from_waitlist"] is True
        assert promote.await_args.args[1:] == (institution_id, sample_course.id)

    def test_promote_from_empty_waitlist(self, app, institution_id, sample_course):
        client = client_as(app, ROLE_INSTITUTION, institution_id)

        with patch(f"{SERVICE}.promote_from_waitlist", AsyncMock(return_value=None)):
            response = client.post(
                f"/institution/admissions/courses/{sample_course.id}/waitlist/promote"
            )

        assert response.status_code == 200
        assert response.json()["promoted"] is None

    def test_promote_on_foreign_course(self, app, institution_id):
        client = client_as(app, ROLE_INSTITUTION, institution_id)

        with patch(
            f"{SERVICE}.promote_from_waitlist",
            AsyncMock(side_effect=NotOwnerError("This course is not offered by your institution.")),
        ):
            response = client.post(f"/institution/admissions/courses/{uuid4()}/waitlist/promote")

        assert response.status_code == 403
        assert response.json()["detail"]["error"] == "NOT_OWNER"

    def test_student_cannot_promote(self, app, student_id):
        client = client_as(app, ROLE_STUDENT, student_id)

        response = client.post(f"/institution/admissions/courses/{uuid4()}/waitlist/promote")

        assert response.status_code == 403

    def test_list_filters_by_status(self, app, institution_id):
        client = client_as(app, ROLE_INSTITUTION, institution_id)

        with patch(
            f"{SERVICE}.list_institution_applications", AsyncMock(return_value=[])
        ) as listing:
            response = client.get("/institution/admissions/applications?status=waitlisted")

        assert response.status_code == 200
        assert listing.await_args.kwargs["status"] == ApplicationStatus.WAITLISTED


class TestEligibilityEndpoint:
    """Tests for the public eligibility check."""

    def test_no_authentication_needed(self, app, sample_course):
        match = EligibleCourse(course=sample_course, requirements={"Mathematics": "B"})

        with patch(f"{SERVICE}.find_eligible_courses", AsyncMock(return_value=[match])):
            response = TestClient(app).post(
                "/eligibility/courses", json={"subjects": {"Mathematics": "A"}}
            )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["courses"][0]["course_name"] == "Computer Science"

    def test_unknown_grade(self, app):
        response = TestClient(app).post(
            "/eligibility/courses", json={"subjects": {"Mathematics": "Z"}}
        )

        assert response.status_code == 422
