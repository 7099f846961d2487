"""
Admissions Shared Helpers

Common utility functions used across the admissions module.
These helpers are shared between the routers, schemas.py and jobs.py.
"""

from fastapi import HTTPException, status

from admission_api.modules.admissions.models import (
    AdmissionEventType,
    ApplicationStatus,
    CourseApplication,
    DecisionSource,
)
from admission_api.modules.admissions.service import AdmissionServiceError

STATUS_LABELS: dict[ApplicationStatus, str] = {
    ApplicationStatus.PENDING: "Under review",
    ApplicationStatus.ADMITTED: "Admission offered",
    ApplicationStatus.REJECTED: "Not admitted",
    ApplicationStatus.WAITLISTED: "Waitlisted",
    ApplicationStatus.ACCEPTED: "Offer accepted",
}

EVENT_SUBJECTS: dict[AdmissionEventType, str] = {
    AdmissionEventType.APPLICATION_SUBMITTED: "Application received: {course_name}",
    AdmissionEventType.APPLICATION_DECIDED: "Your application to {course_name} has been reviewed",
    AdmissionEventType.OFFER_ACCEPTED: "You accepted your offer for {course_name}",
    AdmissionEventType.OFFER_CASCADE_DECLINED: "Application to {course_name} closed",
    AdmissionEventType.WAITLIST_PROMOTED: "A place opened up for you at {course_name}",
}


def student_visible_status(application: CourseApplication) -> ApplicationStatus:
    """
    Get the status a student is allowed to see.

    Institution decisions stay hidden (shown as pending) until the course's
    admissions are published. Declines the system made because the student
    accepted another offer are shown straight away.

    Args:
        application: The course application model

    Returns:
        The status to show to the student
    """
    if application.admission_published:
        return application.status

    if (
        application.status == ApplicationStatus.REJECTED
        and application.decided_by == DecisionSource.SYSTEM
    ):
        return application.status

    return ApplicationStatus.PENDING


def get_status_label(value: ApplicationStatus) -> str:
    """Human-readable label for a status."""
    return STATUS_LABELS[value]


def get_event_subject(event_type: AdmissionEventType, course_name: str) -> str:
    """Email subject line for an admission event."""
    return EVENT_SUBJECTS[event_type].format(course_name=course_name)


def service_error_to_http(e: AdmissionServiceError) -> HTTPException:
    """Convert a service error to the HTTPException the routers raise."""
    return HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


def internal_error() -> HTTPException:
    """Generic 500 for unexpected failures (details stay in the logs)."""
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
