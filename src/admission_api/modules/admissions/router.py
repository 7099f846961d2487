"""
Admissions Student Router

API endpoints for students managing their course applications.
All endpoints require a valid token with the student role.

Endpoints:
- POST /admissions/applications - Apply to a course
- GET /admissions/applications - List my applications
- DELETE /admissions/applications/{id} - Withdraw a pending application
- GET /admissions/offers - List my published admission offers
- POST /admissions/offers/{id}/accept - Accept an offer (declines everything else)

Security:
- Students only ever see their own applications
- Institution decisions are hidden until the course is published
- Rate limiting on apply and accept per student
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from admission_api.core.auth import Principal, get_current_student
from admission_api.core.database import get_db
from admission_api.core.rate_limit import student_rate_limit
from admission_api.modules.admissions import service
from admission_api.modules.admissions.helpers import internal_error, service_error_to_http
from admission_api.modules.admissions.schemas import (
    AcceptOfferResponse,
    ApplyRequest,
    StudentApplicationListResponse,
    StudentApplicationResponse,
)
from admission_api.modules.admissions.service import AdmissionServiceError

logger = logging.getLogger(__name__)

router = APIRouter()

# Rate limits for student write actions: (requests, window seconds)
RATE_LIMIT_APPLY = (10, 60)
RATE_LIMIT_ACCEPT = (5, 60)


@router.post(
    "/applications",
    response_model=StudentApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Apply to a Course",
    description="""
Apply to a course.

Your current subjects and grades are snapshotted with the application;
later profile changes do not affect it.

**Limits:**
- At most 2 active (pending, admitted, waitlisted or accepted) applications per institution
- One active application per course
""",
    responses={
        404: {"description": "Course or student profile not found"},
        409: {"description": "Duplicate application or institution cap reached"},
        422: {"description": "No subjects on your profile"},
        429: {"description": "Too many applications in a short time"},
    },
)
async def apply_to_course(
    data: ApplyRequest,
    db: AsyncSession = Depends(get_db),
    student: Principal = Depends(student_rate_limit("apply", *RATE_LIMIT_APPLY)),
) -> StudentApplicationResponse:
    """Apply to a course as the authenticated student."""
    try:
        application = await service.apply_to_course(db, student.id, data.course_id)
        return StudentApplicationResponse.from_application(application)

    except AdmissionServiceError as e:
        logger.warning(f"Application rejected for student {student.id}: {e.error_code}")
        raise service_error_to_http(e) from e
    except Exception as e:
        logger.exception(f"Error applying to course: {e}")
        raise internal_error() from e


@router.get(
    "/applications",
    response_model=StudentApplicationListResponse,
    summary="List My Applications",
)
async def list_my_applications(
    db: AsyncSession = Depends(get_db),
    student: Principal = Depends(get_current_student),
) -> StudentApplicationListResponse:
    """List the student's applications, newest first."""
    try:
        applications = await service.list_student_applications(db, student.id)
        return StudentApplicationListResponse(
            applications=[StudentApplicationResponse.from_application(a) for a in applications],
            total=len(applications),
        )
    except Exception as e:
        logger.exception(f"Error listing applications: {e}")
        raise internal_error() from e


@router.delete(
    "/applications/{application_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Withdraw Application",
    description="Withdraw a pending application. Decided applications cannot be withdrawn.",
    responses={
        403: {"description": "Not your application"},
        404: {"description": "Application not found"},
        409: {"description": "Application is no longer pending"},
    },
)
async def withdraw_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    student: Principal = Depends(get_current_student),
) -> Response:
    """Withdraw one of the student's pending applications."""
    try:
        await service.withdraw_application(db, student.id, application_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    except AdmissionServiceError as e:
        logger.warning(f"Withdrawal of {application_id} rejected: {e.error_code}")
        raise service_error_to_http(e) from e
    except Exception as e:
        logger.exception(f"Error withdrawing application: {e}")
        raise internal_error() from e


@router.get(
    "/offers",
    response_model=StudentApplicationListResponse,
    summary="List My Offers",
    description="Admission offers that have been published and can be accepted.",
)
async def list_my_offers(
    db: AsyncSession = Depends(get_db),
    student: Principal = Depends(get_current_student),
) -> StudentApplicationListResponse:
    """List the student's published admission offers."""
    try:
        offers = await service.list_student_offers(db, student.id)
        return StudentApplicationListResponse(
            applications=[StudentApplicationResponse.from_application(o) for o in offers],
            total=len(offers),
        )
    except Exception as e:
        logger.exception(f"Error listing offers: {e}")
        raise internal_error() from e


@router.post(
    "/offers/{application_id}/accept",
    response_model=AcceptOfferResponse,
    summary="Accept Offer",
    description="""
Accept a published admission offer.

**Effects (all or nothing):**
- The offer becomes accepted
- Every other pending, admitted or waitlisted application you hold is closed
- Seats you held elsewhere are offered to the next waitlisted applicant

A student can hold at most one accepted offer.
""",
    responses={
        403: {"description": "Not your application"},
        404: {"description": "Application not found"},
        409: {"description": "Not an open offer, not yet published, or a concurrent change"},
        429: {"description": "Too many attempts in a short time"},
    },
)
async def accept_offer(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    student: Principal = Depends(student_rate_limit("accept", *RATE_LIMIT_ACCEPT)),
) -> AcceptOfferResponse:
    """Accept an offer as the authenticated student."""
    try:
        result = await service.accept_offer(db, student.id, application_id)

        declined = len(result.declined)
        return AcceptOfferResponse(
            accepted=StudentApplicationResponse.from_application(result.accepted),
            declined_application_ids=[a.id for a in result.declined],
            message=f"Offer accepted. {declined} other application(s) closed.",
        )

    except AdmissionServiceError as e:
        logger.warning(f"Acceptance of {application_id} rejected: {e.error_code}")
        raise service_error_to_http(e) from e
    except Exception as e:
        logger.exception(f"Error accepting offer: {e}")
        raise internal_error() from e
