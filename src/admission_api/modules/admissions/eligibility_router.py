"""
Eligibility Router

Public endpoint for checking which courses a subject/grade record
qualifies for. No authentication: prospective students use it before
creating a profile.

Endpoints:
- POST /eligibility/courses - List courses the submitted grades are eligible for
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from admission_api.core.database import get_db
from admission_api.modules.admissions import service
from admission_api.modules.admissions.helpers import internal_error
from admission_api.modules.admissions.schemas import (
    EligibilityRequest,
    EligibilityResponse,
    EligibleCourseItem,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/courses",
    response_model=EligibilityResponse,
    summary="Find Eligible Courses",
    description="""
List every course whose entry requirements the submitted grades meet.

Grades: A*, A, B, C, D, E, F. Subject names are matched case-insensitively.
""",
)
async def find_eligible_courses(
    data: EligibilityRequest,
    db: AsyncSession = Depends(get_db),
) -> EligibilityResponse:
    """Check a subject/grade record against every course."""
    try:
        matches = await service.find_eligible_courses(db, data.subjects)
    except Exception as e:
        logger.exception(f"Error checking eligibility: {e}")
        raise internal_error() from e

    courses = [
        EligibleCourseItem(
            course_id=match.course.id,
            course_name=match.course.name,
            institution_id=match.course.institution_id,
            institution_name=match.course.institution_name,
            requirements=match.requirements,
        )
        for match in matches
    ]
    return EligibilityResponse(courses=courses, total=len(courses))
