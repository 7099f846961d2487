"""
Admissions Background Jobs

Relays admission events from the ``admission_events`` outbox to students
by email.

Design Principles:
- Events are written in the same transaction as the change they describe,
  so a notification is never sent for a change that rolled back
- The job is idempotent: an event is stamped dispatched_at once delivered
  and never selected again
- Individual event failures don't stop the batch; failed events stay
  undispatched, count an attempt and are retried on a later run
- Events that never failed are served first, and an event that fails
  EVENT_DISPATCH_MAX_ATTEMPTS times is dead-lettered (kept, never retried)
- Batches are claimed with SKIP LOCKED so overlapping runs don't double-send

Schedule:
- Runs every EVENT_DISPATCH_INTERVAL_SECONDS (default 60)
- Can also be triggered manually via the debug endpoints
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from admission_api.core.config import settings
from admission_api.core.database import async_session_maker
from admission_api.core.email import (
    send_application_closed,
    send_application_reviewed,
    send_application_submitted,
    send_offer_accepted,
    send_waitlist_promoted,
)
from admission_api.core.scheduler import register_job
from admission_api.modules.admissions import repository
from admission_api.modules.admissions.helpers import get_event_subject
from admission_api.modules.admissions.models import AdmissionEvent, AdmissionEventType
from admission_api.modules.courses.repository import CourseRepository
from admission_api.modules.students.repository import StudentRepository

logger = logging.getLogger(__name__)

# Job IDs for registration and manual triggering
JOB_ID_DISPATCH_EVENTS = "admissions_dispatch_events"

EVENT_SENDERS: dict[AdmissionEventType, Callable[[str, str, str, str], Awaitable[bool]]] = {
    AdmissionEventType.APPLICATION_SUBMITTED: send_application_submitted,
    AdmissionEventType.APPLICATION_DECIDED: send_application_reviewed,
    AdmissionEventType.OFFER_ACCEPTED: send_offer_accepted,
    AdmissionEventType.OFFER_CASCADE_DECLINED: send_application_closed,
    AdmissionEventType.WAITLIST_PROMOTED: send_waitlist_promoted,
}


async def dispatch_admission_events() -> dict[str, Any]:
    """
    Send one batch of undispatched admission events.

    Returns:
        Dict with job execution summary including:
        - executed_at: When the job ran
        - dispatched: Events delivered (or skipped for a deleted student)
        - failed: Events that failed this run
        - dead_lettered: Failed events that reached the attempt limit
        - results: Per-event outcome
    """
    executed_at = datetime.now(UTC)
    results: dict[str, Any] = {
        "executed_at": executed_at.isoformat(),
        "dispatched": 0,
        "failed": 0,
        "dead_lettered": 0,
        "results": [],
    }

    async with async_session_maker() as db:
        try:
            events = await repository.get_undispatched_events(
                db,
                settings.event_dispatch_batch_size,
                settings.event_dispatch_max_attempts,
            )
            if not events:
                logger.debug("No admission events to dispatch")
                await db.commit()
                return results

            logger.info(f"Dispatching {len(events)} admission event(s)")

            students = await StudentRepository.get_many(db, list({e.student_id for e in events}))
            courses = await CourseRepository.get_many(db, list({e.course_id for e in events}))

            for event in events:
                outcome, error = await _dispatch_event(
                    event,
                    student=students.get(event.student_id),
                    course_name=_course_name(event, courses),
                )
                results["results"].append({"event_id": str(event.id), "status": outcome})

                if outcome == "failed":
                    results["failed"] += 1
                    attempts = await repository.record_event_failure(db, event, error)
                    if attempts >= settings.event_dispatch_max_attempts:
                        logger.error(
                            f"Admission event {event.id} dead-lettered after {attempts} attempts"
                        )
                        results["dead_lettered"] += 1
                    continue

                await repository.mark_event_dispatched(db, event)
                results["dispatched"] += 1

            await db.commit()
        except Exception:
            await db.rollback()
            raise

    logger.info(
        f"Admission event dispatch completed. "
        f"Dispatched: {results['dispatched']}, Failed: {results['failed']}, "
        f"Dead-lettered: {results['dead_lettered']}"
    )
    return results


def _course_name(event: AdmissionEvent, courses: dict) -> str:
    course = courses.get(event.course_id)
    if course is not None:
        return course.name
    return (event.payload or {}).get("course_name", "your course")


async def _dispatch_event(
    event: AdmissionEvent, student, course_name: str
) -> tuple[str, str | None]:
    """
    Deliver one event.

    Returns:
        (outcome, error): outcome is "sent", "skipped" (nobody to deliver to)
        or "failed", error describes a failure
    """
    if student is None:
        logger.warning(f"Student {event.student_id} for event {event.id} no longer exists")
        return "skipped", None

    sender = EVENT_SENDERS[event.event_type]
    subject = get_event_subject(event.event_type, course_name)

    try:
        sent = await sender(student.email, student.full_name, course_name, subject)
    except Exception as e:
        logger.error(f"Error dispatching admission event {event.id}: {e}", exc_info=True)
        return "failed", f"{type(e).__name__}: {e}"

    if not sent:
        logger.error(f"Failed to send email for admission event {event.id}")
        return "failed", "email provider did not accept the message"

    return "sent", None


def register_admission_jobs() -> None:
    """
    Register the admissions background jobs with the scheduler.

    Registered jobs:
    1. dispatch_admission_events - every EVENT_DISPATCH_INTERVAL_SECONDS
    """
    interval = settings.event_dispatch_interval_seconds

    register_job(
        job_id=JOB_ID_DISPATCH_EVENTS,
        func=dispatch_admission_events,
        trigger=IntervalTrigger(seconds=interval),
    )
    logger.info(f"Registered job: {JOB_ID_DISPATCH_EVENTS} (interval: {interval}s)")
