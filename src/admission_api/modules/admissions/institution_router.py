"""
Admissions Institution Router

API endpoints for institutions deciding on and publishing applications.
All endpoints require a valid token with the institution role; an
institution can only see and act on applications to its own courses.

Endpoints:
- GET /institution/admissions/applications - List received applications
- POST /institution/admissions/applications/{id}/decision - Admit, reject or waitlist
- POST /institution/admissions/courses/{id}/publish - Publish a course's decisions
- GET /institution/admissions/courses/{id}/waitlist - Waitlist in promotion order
- POST /institution/admissions/courses/{id}/waitlist/promote - Admit the head of the waitlist
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from admission_api.core.auth import Principal, get_current_institution
from admission_api.core.database import get_db
from admission_api.modules.admissions import service
from admission_api.modules.admissions.helpers import internal_error, service_error_to_http
from admission_api.modules.admissions.models import ApplicationStatus
from admission_api.modules.admissions.schemas import (
    DecisionRequest,
    InstitutionApplicationListResponse,
    InstitutionApplicationResponse,
    PromotionResponse,
    PublishResponse,
    WaitlistEntry,
    WaitlistResponse,
)
from admission_api.modules.admissions.service import AdmissionServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/applications",
    response_model=InstitutionApplicationListResponse,
    summary="List Received Applications",
)
async def list_applications(
    course_id: UUID | None = Query(None, description="Only this course"),
    status_filter: ApplicationStatus | None = Query(
        None, alias="status", description="Only this status"
    ),
    db: AsyncSession = Depends(get_db),
    institution: Principal = Depends(get_current_institution),
) -> InstitutionApplicationListResponse:
    """List applications made to the institution, oldest first."""
    try:
        applications = await service.list_institution_applications(
            db, institution.id, course_id=course_id, status=status_filter
        )
        return InstitutionApplicationListResponse(
            applications=[
                InstitutionApplicationResponse.model_validate(a) for a in applications
            ],
            total=len(applications),
        )
    except Exception as e:
        logger.exception(f"Error listing institution applications: {e}")
        raise internal_error() from e


@router.post(
    "/applications/{application_id}/decision",
    response_model=InstitutionApplicationResponse,
    summary="Decide Application",
    description="""
Admit, reject or waitlist a pending application.

The decision is not visible to the student until the course's admissions
are published.
""",
    responses={
        403: {"description": "Application was made to another institution"},
        404: {"description": "Application not found"},
        409: {"description": "Application is not pending"},
        422: {"description": "Status is not admitted, rejected or waitlisted"},
    },
)
async def decide_application(
    application_id: UUID,
    data: DecisionRequest,
    db: AsyncSession = Depends(get_db),
    institution: Principal = Depends(get_current_institution),
) -> InstitutionApplicationResponse:
    """Record a decision on one application."""
    try:
        application = await service.decide_application(
            db, institution.id, application_id, data.status, notes=data.notes
        )
        return InstitutionApplicationResponse.model_validate(application)

    except AdmissionServiceError as e:
        logger.warning(f"Decision on {application_id} rejected: {e.error_code}")
        raise service_error_to_http(e) from e
    except Exception as e:
        logger.exception(f"Error deciding application: {e}")
        raise internal_error() from e


@router.post(
    "/courses/{course_id}/publish",
    response_model=PublishResponse,
    summary="Publish Course Admissions",
    description="""
Publish the admission decisions of a course.

Every admitted, rejected or waitlisted application becomes visible to its
student. Pending applications stay hidden. Publishing again later releases
decisions made since; nothing is ever unpublished.
""",
    responses={
        403: {"description": "Course belongs to another institution"},
        404: {"description": "Course not found"},
    },
)
async def publish_course_admissions(
    course_id: UUID,
    db: AsyncSession = Depends(get_db),
    institution: Principal = Depends(get_current_institution),
) -> PublishResponse:
    """Publish one course's decisions."""
    try:
        count = await service.publish_course_admissions(db, institution.id, course_id)
        return PublishResponse(
            course_id=course_id,
            published_count=count,
            message=f"{count} decision(s) published.",
        )

    except AdmissionServiceError as e:
        logger.warning(f"Publication of course {course_id} rejected: {e.error_code}")
        raise service_error_to_http(e) from e
    except Exception as e:
        logger.exception(f"Error publishing admissions: {e}")
        raise internal_error() from e


@router.get(
    "/courses/{course_id}/waitlist",
    response_model=WaitlistResponse,
    summary="Get Course Waitlist",
    description="Waitlisted applications in the order they will be promoted.",
    responses={
        403: {"description": "Course belongs to another institution"},
        404: {"description": "Course not found"},
    },
)
async def get_course_waitlist(
    course_id: UUID,
    db: AsyncSession = Depends(get_db),
    institution: Principal = Depends(get_current_institution),
) -> WaitlistResponse:
    """Show a course's waitlist."""
    try:
        waitlist = await service.get_course_waitlist(db, institution.id, course_id)
        entries = [
            WaitlistEntry(
                position=position,
                application_id=application.id,
                student_id=application.student_id,
                eligible_at_apply=application.eligible_at_apply,
                applied_at=application.applied_at,
            )
            for position, application in enumerate(waitlist, start=1)
        ]
        return WaitlistResponse(course_id=course_id, entries=entries, total=len(entries))

    except AdmissionServiceError as e:
        raise service_error_to_http(e) from e
    except Exception as e:
        logger.exception(f"Error reading waitlist: {e}")
        raise internal_error() from e


@router.post(
    "/courses/{course_id}/waitlist/promote",
    response_model=PromotionResponse,
    summary="Promote From Waitlist",
    description="""
Admit the earliest waitlisted applicant of a course into a freed seat.

The promoted application is visible to the student at once when the course's
admissions are already published. An empty waitlist promotes nobody.
""",
    responses={
        403: {"description": "Course belongs to another institution"},
        404: {"description": "Course not found"},
    },
)
async def promote_from_waitlist(
    course_id: UUID,
    db: AsyncSession = Depends(get_db),
    institution: Principal = Depends(get_current_institution),
) -> PromotionResponse:
    """Promote the head of a course's waitlist."""
    try:
        promoted = await service.promote_from_waitlist(db, institution.id, course_id)
        if promoted is None:
            return PromotionResponse(course_id=course_id, message="The waitlist is empty.")

        return PromotionResponse(
            course_id=course_id,
            promoted=InstitutionApplicationResponse.model_validate(promoted),
            message="Applicant promoted from the waitlist.",
        )

    except AdmissionServiceError as e:
        logger.warning(f"Waitlist promotion on course {course_id} rejected: {e.error_code}")
        raise service_error_to_http(e) from e
    except Exception as e:
        logger.exception(f"Error promoting from waitlist: {e}")
        raise internal_error() from e
