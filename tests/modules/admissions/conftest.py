"""
Fixtures for admissions tests.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from admission_api.modules.admissions.models import (
    AdmissionEvent,
    AdmissionEventType,
    ApplicationStatus,
    CourseApplication,
)
from admission_api.modules.courses.models import Course
from admission_api.modules.students.models import Student


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.delete = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def institution_id():
    return uuid4()


@pytest.fixture
def student_id():
    return uuid4()


@pytest.fixture
def sample_course(institution_id):
    """Create a sample course requiring Mathematics at B."""
    course = MagicMock(spec=Course)
    course.id = uuid4()
    course.institution_id = institution_id
    course.institution_name = "Test University"
    course.name = "Computer Science"
    course.requirements = {"Mathematics": "B"}
    course.application_deadline = None
    course.admissions_published = False
    course.admissions_published_at = None
    return course


@pytest.fixture
def sample_subjects():
    return {"Mathematics": "A", "English": "B"}


@pytest.fixture
def sample_student(student_id, sample_subjects):
    student = MagicMock(spec=Student)
    student.id = student_id
    student.email = "student@test.com"
    student.full_name = "Test Student"
    student.subjects = sample_subjects
    return student


@pytest.fixture
def make_application(student_id, sample_course):
    """Factory for application models (real ORM instances, not attached to a session)."""

    def _make(
        status: ApplicationStatus = ApplicationStatus.PENDING,
        *,
        student=None,
        course=None,
        published: bool = False,
        applied_at: datetime | None = None,
        **overrides,
    ) -> CourseApplication:
        course = course or sample_course
        now = datetime.now(UTC)
        application = CourseApplication(
            id=uuid4(),
            student_id=student or student_id,
            course_id=course.id,
            institution_id=course.institution_id,
            subjects_snapshot={"Mathematics": "A"},
            eligible_at_apply=True,
            status=status,
            admission_published=published,
            promoted_from_waitlist=False,
            applied_at=applied_at or now - timedelta(days=1),
            updated_at=now,
        )
        for key, value in overrides.items():
            setattr(application, key, value)
        return application

    return _make


@pytest.fixture
def sample_event(student_id, sample_course):
    event = MagicMock(spec=AdmissionEvent)
    event.id = uuid4()
    event.event_type = AdmissionEventType.APPLICATION_SUBMITTED
    event.application_id = uuid4()
    event.student_id = student_id
    event.course_id = sample_course.id
    event.payload = {"course_name": sample_course.name}
    event.dispatched_at = None
    return event
