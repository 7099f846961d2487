"""
Admissions Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from admission_api.modules.admissions.eligibility import parse_grade
from admission_api.modules.admissions.helpers import get_status_label, student_visible_status

# Re-use enums from models
from admission_api.modules.admissions.models import (
    DECISION_STATUSES,
    ApplicationStatus,
    CourseApplication,
    DecisionSource,
)

# ============================================
# Student Schemas
# ============================================


class ApplyRequest(BaseModel):
    """Request body for POST /admissions/applications."""

    course_id: UUID = Field(..., description="Course to apply to")


class StudentApplicationResponse(BaseModel):
    """An application as its student sees it.

    Unpublished institution decisions are reported as pending.
    """

    id: UUID
    course_id: UUID
    institution_id: UUID
    status: ApplicationStatus
    status_label: str
    eligible_at_apply: bool
    admission_published: bool
    promoted_from_waitlist: bool
    decision_reason: str | None = None
    applied_at: datetime
    updated_at: datetime
    accepted_at: datetime | None = None

    @classmethod
    def from_application(cls, application: CourseApplication) -> "StudentApplicationResponse":
        status = student_visible_status(application)
        published = application.admission_published
        return cls(
            id=application.id,
            course_id=application.course_id,
            institution_id=application.institution_id,
            status=status,
            status_label=get_status_label(status),
            eligible_at_apply=application.eligible_at_apply,
            admission_published=published,
            promoted_from_waitlist=application.promoted_from_waitlist and published,
            decision_reason=(
                application.decision_reason if status != ApplicationStatus.PENDING else None
            ),
            applied_at=application.applied_at,
            updated_at=application.updated_at,
            accepted_at=application.accepted_at,
        )


class StudentApplicationListResponse(BaseModel):
    """List of a student's applications or offers."""

    applications: list[StudentApplicationResponse]
    total: int = Field(..., ge=0)


class AcceptOfferResponse(BaseModel):
    """Response for POST /admissions/offers/{id}/accept."""

    accepted: StudentApplicationResponse
    declined_application_ids: list[UUID] = Field(
        default_factory=list,
        description="Other applications closed because this offer was accepted",
    )
    message: str


# ============================================
# Institution Schemas
# ============================================


class DecisionRequest(BaseModel):
    """Request body for POST /institution/admissions/applications/{id}/decision."""

    status: ApplicationStatus = Field(..., description="admitted, rejected or waitlisted")
    notes: str | None = Field(
        None,
        max_length=2000,
        description="Notes recorded with the decision",
        json_schema_extra={"example": "Strong mathematics background."},
    )

    @field_validator("status")
    @classmethod
    def status_must_be_decision(cls, value: ApplicationStatus) -> ApplicationStatus:
        if value not in DECISION_STATUSES:
            allowed = ", ".join(sorted(s.value for s in DECISION_STATUSES))
            raise ValueError(f"status must be one of: {allowed}")
        return value


class InstitutionApplicationResponse(BaseModel):
    """Full application view for the institution that received it."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    student_id: UUID
    course_id: UUID
    status: ApplicationStatus
    decided_by: DecisionSource | None = None
    decision_reason: str | None = None
    decision_notes: str | None = None
    subjects_snapshot: dict[str, str]
    eligible_at_apply: bool
    admission_published: bool
    promoted_from_waitlist: bool
    promoted_at: datetime | None = None
    accepted_at: datetime | None = None
    applied_at: datetime
    updated_at: datetime


class InstitutionApplicationListResponse(BaseModel):
    """List of applications received by an institution."""

    applications: list[InstitutionApplicationResponse]
    total: int = Field(..., ge=0)


class PublishResponse(BaseModel):
    """Response for POST /institution/admissions/courses/{id}/publish."""

    course_id: UUID
    published_count: int = Field(..., ge=0, description="Applications newly made visible")
    message: str


class PromotionResponse(BaseModel):
    """Response for POST /institution/admissions/courses/{id}/waitlist/promote."""

    course_id: UUID
    promoted: InstitutionApplicationResponse | None = None
    message: str


class WaitlistEntry(BaseModel):
    """One applicant on a course waitlist."""

    position: int = Field(..., ge=1)
    application_id: UUID
    student_id: UUID
    eligible_at_apply: bool
    applied_at: datetime


class WaitlistResponse(BaseModel):
    """A course waitlist in promotion order."""

    course_id: UUID
    entries: list[WaitlistEntry]
    total: int = Field(..., ge=0)


# ============================================
# Eligibility Schemas
# ============================================


class EligibilityRequest(BaseModel):
    """Subject/grade record to check against every course."""

    subjects: dict[str, str] = Field(
        ...,
        min_length=1,
        description="Subject name to letter grade (A*, A, B, C, D, E, F)",
        json_schema_extra={"example": {"Mathematics": "A", "English": "B"}},
    )

    @field_validator("subjects")
    @classmethod
    def grades_must_be_known(cls, value: dict[str, str]) -> dict[str, str]:
        unknown = [subject for subject, grade in value.items() if parse_grade(grade) is None]
        if unknown:
            raise ValueError(f"Unknown grade for subject(s): {', '.join(sorted(unknown))}")
        if any(not subject.strip() for subject in value):
            raise ValueError("Subject names must not be empty")
        return value


class EligibleCourseItem(BaseModel):
    """A course the submitted record qualifies for."""

    course_id: UUID
    course_name: str
    institution_id: UUID
    institution_name: str | None = None
    requirements: dict[str, str]


class EligibilityResponse(BaseModel):
    """Response for POST /eligibility/courses."""

    courses: list[EligibleCourseItem]
    total: int = Field(..., ge=0)
