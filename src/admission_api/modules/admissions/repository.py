"""
Admissions Repository

Database operations for course applications and admission events.
All operations are async and follow the repository pattern: no business
rules live here beyond the status state machine.

Design Principles:
- Functions flush but never commit; the service layer owns the transaction
  so a multi-row operation (accept + cascade + promotion) commits as one unit
- Critical sections are PostgreSQL transaction-scoped advisory locks, released
  automatically on commit or rollback
- Rows that are about to change are read with SELECT ... FOR UPDATE
- Timezone-aware datetime handling (UTC)
"""

import hashlib
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from admission_api.modules.courses.models import Course

from .models import (
    ACTIVE_STATUSES,
    CASCADE_DECLINE_STATUSES,
    DECISION_STATUSES,
    AdmissionEvent,
    AdmissionEventType,
    ApplicationStatus,
    CourseApplication,
)

# ============================================
# Critical Sections
# ============================================

LOCK_NAMESPACE_STUDENT = "student"
LOCK_NAMESPACE_COURSE = "course"


def advisory_lock_key(namespace: str, entity_id: UUID) -> int:
    """
    Map (namespace, id) onto the signed 64-bit key space of pg_advisory_xact_lock.

    Stable across processes and Python versions (no use of hash()).
    """
    digest = hashlib.blake2b(f"{namespace}:{entity_id}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


async def _advisory_xact_lock(db: AsyncSession, namespace: str, entity_id: UUID) -> None:
    await db.execute(select(func.pg_advisory_xact_lock(advisory_lock_key(namespace, entity_id))))


async def lock_student(db: AsyncSession, student_id: UUID) -> None:
    """Serialize apply/withdraw/accept for one student until the transaction ends."""
    await _advisory_xact_lock(db, LOCK_NAMESPACE_STUDENT, student_id)


async def lock_course(db: AsyncSession, course_id: UUID) -> None:
    """
    Serialize promotion, publication and acceptance cascades on one course.

    Held until the transaction ends; taking it again in the same transaction
    does not block.
    """
    await _advisory_xact_lock(db, LOCK_NAMESPACE_COURSE, course_id)


# ============================================
# Status State Machine
# ============================================

# Valid status transitions - every status is a key, terminal states map to set()
VALID_STATUS_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.PENDING: {
        ApplicationStatus.ADMITTED,  # Institution decision
        ApplicationStatus.REJECTED,  # Institution decision or cascade decline
        ApplicationStatus.WAITLISTED,  # Institution decision
    },
    ApplicationStatus.ADMITTED: {
        ApplicationStatus.ACCEPTED,  # Student accepts the offer
        ApplicationStatus.REJECTED,  # Cascade decline
    },
    ApplicationStatus.WAITLISTED: {
        ApplicationStatus.ADMITTED,  # Promotion
        ApplicationStatus.REJECTED,  # Cascade decline
    },
    # Terminal states - no transitions allowed
    ApplicationStatus.ACCEPTED: set(),
    ApplicationStatus.REJECTED: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(
        self,
        current_status: ApplicationStatus,
        new_status: ApplicationStatus,
    ):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


async def update_status(
    db: AsyncSession,
    application: CourseApplication,
    status: ApplicationStatus,
    **kwargs,
) -> CourseApplication:
    """
    Move an application to a new status.

    The caller must hold the row (read via a ``*_for_update`` function).

    Args:
        db: Database session
        application: The application to update
        status: New status to set
        **kwargs: Additional fields to update (e.g., decided_by, accepted_at)

    Returns:
        The updated application (flushed, not committed)

    Raises:
        InvalidStatusTransitionError: If the state machine forbids the move
    """
    current_status = application.status
    if status not in VALID_STATUS_TRANSITIONS[current_status]:
        raise InvalidStatusTransitionError(current_status, status)

    application.status = status
    application.updated_at = datetime.now(UTC)

    for key, value in kwargs.items():
        if hasattr(application, key):
            setattr(application, key, value)

    await db.flush()
    return application


# ============================================
# Ledger Reads and Writes
# ============================================


async def create(
    db: AsyncSession,
    *,
    student_id: UUID,
    course: Course,
    subjects_snapshot: dict[str, str],
    eligible_at_apply: bool,
) -> CourseApplication:
    """Insert a new pending application for a course."""
    application = CourseApplication(
        student_id=student_id,
        course_id=course.id,
        institution_id=course.institution_id,
        subjects_snapshot=subjects_snapshot,
        eligible_at_apply=eligible_at_apply,
        status=ApplicationStatus.PENDING,
        admission_published=False,
        promoted_from_waitlist=False,
    )

    db.add(application)
    await db.flush()
    # Pull server-assigned applied_at / updated_at
    await db.refresh(application)

    return application


async def get_by_id_for_update(db: AsyncSession, id: UUID) -> CourseApplication | None:
    """Get application by ID, locking the row until the transaction ends."""
    result = await db.execute(
        select(CourseApplication)
        .where(CourseApplication.id == id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_active_for_student_course(
    db: AsyncSession, student_id: UUID, course_id: UUID
) -> CourseApplication | None:
    """Get the student's active application to a course, if any."""
    result = await db.execute(
        select(CourseApplication).where(
            CourseApplication.student_id == student_id,
            CourseApplication.course_id == course_id,
            CourseApplication.status.in_(ACTIVE_STATUSES),
        )
    )
    return result.scalars().first()


async def count_active_for_student_institution(
    db: AsyncSession, student_id: UUID, institution_id: UUID
) -> int:
    """Count the student's active applications at one institution (the cap counter)."""
    result = await db.execute(
        select(func.count())
        .select_from(CourseApplication)
        .where(
            CourseApplication.student_id == student_id,
            CourseApplication.institution_id == institution_id,
            CourseApplication.status.in_(ACTIVE_STATUSES),
        )
    )
    return result.scalar() or 0


async def delete(db: AsyncSession, application: CourseApplication) -> None:
    """Delete an application (student withdrawal)."""
    await db.delete(application)
    await db.flush()


async def get_for_student(db: AsyncSession, student_id: UUID) -> list[CourseApplication]:
    """All of a student's applications, newest first."""
    result = await db.execute(
        select(CourseApplication)
        .where(CourseApplication.student_id == student_id)
        .order_by(CourseApplication.applied_at.desc(), CourseApplication.id)
    )
    return list(result.scalars().all())


async def get_published_offers_for_student(
    db: AsyncSession, student_id: UUID
) -> list[CourseApplication]:
    """Admission offers the student can currently act on (admitted and published)."""
    result = await db.execute(
        select(CourseApplication)
        .where(
            CourseApplication.student_id == student_id,
            CourseApplication.status == ApplicationStatus.ADMITTED,
            CourseApplication.admission_published.is_(True),
        )
        .order_by(CourseApplication.updated_at.desc())
    )
    return list(result.scalars().all())


async def get_accepted_for_student(
    db: AsyncSession, student_id: UUID
) -> CourseApplication | None:
    """The student's accepted application, if they have already taken a place."""
    result = await db.execute(
        select(CourseApplication).where(
            CourseApplication.student_id == student_id,
            CourseApplication.status == ApplicationStatus.ACCEPTED,
        )
    )
    return result.scalars().first()


async def get_for_institution(
    db: AsyncSession,
    institution_id: UUID,
    *,
    course_id: UUID | None = None,
    status: ApplicationStatus | None = None,
) -> list[CourseApplication]:
    """An institution's applications, optionally filtered, oldest first."""
    query = select(CourseApplication).where(CourseApplication.institution_id == institution_id)

    if course_id:
        query = query.where(CourseApplication.course_id == course_id)

    if status:
        query = query.where(CourseApplication.status == status)

    result = await db.execute(
        query.order_by(CourseApplication.applied_at.asc(), CourseApplication.id.asc())
    )
    return list(result.scalars().all())


# ============================================
# Acceptance Cascade
# ============================================


async def get_cascade_course_ids(
    db: AsyncSession, student_id: UUID, exclude_id: UUID
) -> list[UUID]:
    """
    Courses of the student's other open applications, in lock order.

    Read without row locks so the caller can take the course locks first;
    publication locks the course before its rows, and so must acceptance.
    """
    result = await db.execute(
        select(CourseApplication.course_id)
        .where(
            CourseApplication.student_id == student_id,
            CourseApplication.id != exclude_id,
            CourseApplication.status.in_(CASCADE_DECLINE_STATUSES),
        )
        .distinct()
    )
    return sorted(result.scalars().all(), key=str)


async def get_cascade_candidates_for_update(
    db: AsyncSession, student_id: UUID, exclude_id: UUID
) -> list[CourseApplication]:
    """
    Lock and return the student's other open applications.

    Locking every row before any is written means a concurrent promotion of
    one of these rows either finishes first (and we see it as admitted) or
    waits for this transaction (and then sees it as rejected).
    Rows are locked in id order.
    """
    result = await db.execute(
        select(CourseApplication)
        .where(
            CourseApplication.student_id == student_id,
            CourseApplication.id != exclude_id,
            CourseApplication.status.in_(CASCADE_DECLINE_STATUSES),
        )
        .order_by(CourseApplication.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


# ============================================
# Waitlist
# ============================================


def _waitlist_query(course_id: UUID):
    return (
        select(CourseApplication)
        .where(
            CourseApplication.course_id == course_id,
            CourseApplication.status == ApplicationStatus.WAITLISTED,
        )
        .order_by(CourseApplication.applied_at.asc(), CourseApplication.id.asc())
    )


async def get_waitlist(db: AsyncSession, course_id: UUID) -> list[CourseApplication]:
    """A course's waitlist in promotion order (applied_at, then id)."""
    result = await db.execute(_waitlist_query(course_id))
    return list(result.scalars().all())


async def get_next_waitlisted_for_update(
    db: AsyncSession, course_id: UUID
) -> CourseApplication | None:
    """
    Lock and return the head of a course's waitlist.

    Under READ COMMITTED a row that stopped matching while we waited for its
    lock is dropped from the result, so None here does not prove the waitlist
    is empty. Callers check ``has_waitlisted`` before giving up.
    """
    result = await db.execute(
        _waitlist_query(course_id)
        .limit(1)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def has_waitlisted(db: AsyncSession, course_id: UUID) -> bool:
    """Whether any waitlisted application remains on the course."""
    result = await db.execute(
        select(
            exists().where(
                CourseApplication.course_id == course_id,
                CourseApplication.status == ApplicationStatus.WAITLISTED,
            )
        )
    )
    return bool(result.scalar())


# ============================================
# Publication
# ============================================


async def publish_decided_for_course(db: AsyncSession, course_id: UUID) -> int:
    """
    Set admission_published on every decided, not yet published application.

    Pending applications are never touched and the flag is only ever set to
    True, so repeating the call is harmless.

    Returns:
        Number of applications newly published
    """
    result = await db.execute(
        update(CourseApplication)
        .where(
            CourseApplication.course_id == course_id,
            CourseApplication.status.in_(DECISION_STATUSES),
            CourseApplication.admission_published.is_(False),
        )
        .values(admission_published=True, updated_at=datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return result.rowcount or 0


# ============================================
# Admission Event Outbox
# ============================================


async def add_event(
    db: AsyncSession,
    event_type: AdmissionEventType,
    application: CourseApplication,
    payload: dict | None = None,
) -> AdmissionEvent:
    """Record an admission event in the same transaction as the change it describes."""
    event = AdmissionEvent(
        event_type=event_type,
        application_id=application.id,
        student_id=application.student_id,
        course_id=application.course_id,
        payload=payload or {},
    )
    db.add(event)
    await db.flush()
    return event


async def get_undispatched_events(
    db: AsyncSession, limit: int, max_attempts: int
) -> list[AdmissionEvent]:
    """
    Claim a batch of undispatched events.

    Events that never failed come first, then by age, so events that keep
    failing cannot hold the head of the batch. Events that reached
    ``max_attempts`` are dead-lettered and no longer selected.

    SKIP LOCKED lets two relay workers run side by side without sending the
    same event twice.
    """
    result = await db.execute(
        select(AdmissionEvent)
        .where(
            AdmissionEvent.dispatched_at.is_(None),
            AdmissionEvent.attempts < max_attempts,
        )
        .order_by(
            AdmissionEvent.attempts.asc(),
            AdmissionEvent.created_at.asc(),
            AdmissionEvent.id.asc(),
        )
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    return list(result.scalars().all())


async def mark_event_dispatched(
    db: AsyncSession,
    event: AdmissionEvent,
    dispatched_at: datetime | None = None,
) -> AdmissionEvent:
    """Stamp an event as relayed so it is not selected again."""
    event.dispatched_at = dispatched_at or datetime.now(UTC)
    await db.flush()
    return event


async def record_event_failure(db: AsyncSession, event: AdmissionEvent, error: str) -> int:
    """
    Count a failed delivery and keep its error.

    Returns:
        The event's attempt count after this failure
    """
    event.attempts = (event.attempts or 0) + 1
    event.last_error = error[:1000]
    await db.flush()
    return event.attempts
