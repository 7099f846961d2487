"""
Admissions Service Layer

Business logic for course applications, from submission to acceptance.
Orchestrates repository operations inside one database transaction per
operation and records admission events for the notification relay.

This module implements:
1. Application Ledger:
   - Apply to a course (per-institution cap, duplicate check, subject snapshot)
   - Institution decisions (admit / reject / waitlist)
   - Withdrawal of pending applications

2. Publication:
   - Per-course, idempotent release of decided applications to students

3. Offer Acceptance:
   - Accept one published offer
   - Decline every other open application of the student in the same transaction
   - Promote from the waitlist of each course whose admitted seat was released

4. Waitlist Promotion:
   - Earliest waitlisted applicant first (applied_at, then id)

Concurrency:
- apply / withdraw / accept run under a per-student advisory lock
- publication and promotion run under a per-course advisory lock; acceptance
  takes the same course locks before locking the rows it cascades into
- rows about to change are read with SELECT ... FOR UPDATE
- partial unique indexes back the per-course and single-acceptance invariants
- unique violations, serialization failures and deadlocks surface as
  ConcurrentConflictError; apply and accept retry once before giving up
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TypeVar
from uuid import UUID

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from admission_api.core.config import settings
from admission_api.modules.admissions import repository
from admission_api.modules.admissions.eligibility import (
    CourseRequirement,
    evaluate,
    unmet_requirements,
)
from admission_api.modules.admissions.models import (
    DECISION_STATUSES,
    AdmissionEventType,
    ApplicationStatus,
    CourseApplication,
    DecisionSource,
)
from admission_api.modules.courses.models import Course
from admission_api.modules.courses.repository import CourseRepository
from admission_api.modules.students.repository import StudentRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Constants
CASCADE_DECLINE_REASON = "Accepted another offer"
MAX_PROMOTION_ATTEMPTS = 3

# PostgreSQL SQLSTATEs treated as a lost race
UNIQUE_VIOLATION = "23505"
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
CONFLICT_SQLSTATES = frozenset({UNIQUE_VIOLATION, SERIALIZATION_FAILURE, DEADLOCK_DETECTED})


# ============================================
# Errors
# ============================================


class AdmissionServiceError(Exception):
    """Base exception for admission service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class StudentNotFoundError(AdmissionServiceError):
    """Raised when a student profile does not exist."""

    def __init__(self, student_id: UUID | None = None):
        message = f"Student {student_id} not found" if student_id else "Student not found"
        super().__init__(message=message, error_code="STUDENT_NOT_FOUND", status_code=404)


class CourseNotFoundError(AdmissionServiceError):
    """Raised when a course does not exist."""

    def __init__(self, course_id: UUID | None = None):
        message = f"Course {course_id} not found" if course_id else "Course not found"
        super().__init__(message=message, error_code="COURSE_NOT_FOUND", status_code=404)


class ApplicationNotFoundError(AdmissionServiceError):
    """Raised when an application does not exist."""

    def __init__(self, application_id: UUID | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(message=message, error_code="APPLICATION_NOT_FOUND", status_code=404)


class NotOwnerError(AdmissionServiceError):
    """Raised when the caller does not own the application or course."""

    def __init__(self, message: str = "You do not have access to this resource."):
        super().__init__(message=message, error_code="NOT_OWNER", status_code=403)


class IncompleteProfileError(AdmissionServiceError):
    """Raised when the student has no subjects recorded."""

    def __init__(self):
        super().__init__(
            message="Add your subjects and grades to your profile before applying.",
            error_code="INCOMPLETE_PROFILE",
            status_code=422,
        )


class DuplicateApplicationError(AdmissionServiceError):
    """Raised when the student already has an active application to the course."""

    def __init__(self, course_name: str):
        super().__init__(
            message=f"You already have an active application for {course_name}.",
            error_code="DUPLICATE_APPLICATION",
            status_code=409,
        )


class InstitutionCapExceededError(AdmissionServiceError):
    """Raised when the student already holds the maximum applications at an institution."""

    def __init__(self, cap: int):
        super().__init__(
            message=f"You can hold at most {cap} active applications per institution.",
            error_code="INSTITUTION_CAP_EXCEEDED",
            status_code=409,
        )


class ApplicationDeadlinePassedError(AdmissionServiceError):
    """Raised when applying after the course's application deadline."""

    def __init__(self, course_name: str):
        super().__init__(
            message=f"The application deadline for {course_name} has passed.",
            error_code="APPLICATION_DEADLINE_PASSED",
            status_code=400,
        )


class IneligibleApplicantError(AdmissionServiceError):
    """Raised when eligibility is enforced on apply and the student does not qualify."""

    def __init__(self, unmet: list[str]):
        self.unmet = unmet
        super().__init__(
            message=f"Entry requirements not met for: {', '.join(unmet)}",
            error_code="INELIGIBLE_APPLICANT",
            status_code=400,
        )


class CourseRequirementsInvalidError(AdmissionServiceError):
    """Raised when a course's stored entry requirements cannot be read."""

    def __init__(self, course_name: str):
        super().__init__(
            message=(
                f"{course_name} is not accepting applications: "
                "its entry requirements are invalid."
            ),
            error_code="COURSE_REQUIREMENTS_INVALID",
            status_code=409,
        )


class InvalidTransitionError(AdmissionServiceError):
    """Raised when an application cannot move to the requested status."""

    def __init__(self, message: str, error_code: str = "INVALID_TRANSITION"):
        super().__init__(message=message, error_code=error_code, status_code=409)


class AlreadyDecidedError(InvalidTransitionError):
    """Raised when accepting an application that is not an open offer."""

    def __init__(self, current_status: ApplicationStatus):
        self.current_status = current_status
        super().__init__(
            message=f"This application is {current_status.value} and cannot be accepted.",
            error_code="ALREADY_DECIDED",
        )


class NotYetPublishedError(AdmissionServiceError):
    """Raised when accepting an offer the institution has not published yet."""

    def __init__(self):
        super().__init__(
            message="Admission decisions for this course have not been published yet.",
            error_code="NOT_YET_PUBLISHED",
            status_code=409,
        )


class OfferAlreadyAcceptedError(AdmissionServiceError):
    """Raised when the student has already accepted a different offer."""

    def __init__(self):
        super().__init__(
            message="You have already accepted an admission offer.",
            error_code="OFFER_ALREADY_ACCEPTED",
            status_code=409,
        )


class ConcurrentConflictError(AdmissionServiceError):
    """Raised when a concurrent operation won a race for the same data."""

    def __init__(self, operation: str):
        super().__init__(
            message=f"Another request changed this data while {operation} was running. "
            "Please try again.",
            error_code="CONCURRENT_CONFLICT",
            status_code=409,
        )


# ============================================
# Results
# ============================================


@dataclass
class AcceptanceResult:
    """Everything an acceptance changed."""

    accepted: CourseApplication
    declined: list[CourseApplication] = field(default_factory=list)
    promoted: list[CourseApplication] = field(default_factory=list)


@dataclass
class EligibleCourse:
    """A course a subject/grade record qualifies for."""

    course: Course
    requirements: dict[str, str]


# ============================================
# Transactions
# ============================================


def _is_concurrent_conflict(exc: DBAPIError) -> bool:
    """Unique violations, serialization failures and deadlocks mean we lost a race."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate is None:
        return isinstance(exc, IntegrityError)
    return sqlstate in CONFLICT_SQLSTATES


async def _run_in_transaction(
    db: AsyncSession,
    operation: str,
    work: Callable[[], Awaitable[T]],
    *,
    retries: int = 0,
) -> T:
    """
    Run ``work`` as one transaction and commit it.

    Any exception rolls the transaction back. Database-level races become
    ConcurrentConflictError; with ``retries`` the whole unit is re-run from a
    fresh read that many times first. Business errors are never retried.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            result = await work()
            await db.commit()
            return result
        except DBAPIError as e:
            await db.rollback()
            if not _is_concurrent_conflict(e):
                raise
            if attempt > retries:
                logger.warning(f"Concurrent conflict in {operation}, giving up: {type(e).__name__}")
                raise ConcurrentConflictError(operation) from e
            logger.info(f"Concurrent conflict in {operation}, retrying (attempt {attempt + 1})")
        except ConcurrentConflictError:
            await db.rollback()
            if attempt > retries:
                raise
            logger.info(f"Concurrent conflict in {operation}, retrying (attempt {attempt + 1})")
        except Exception:
            await db.rollback()
            raise


async def _record_event(
    db: AsyncSession,
    event_type: AdmissionEventType,
    application: CourseApplication,
    **payload,
) -> None:
    await repository.add_event(db, event_type, application, payload)


# ============================================
# Application Ledger
# ============================================


async def apply_to_course(
    db: AsyncSession,
    student_id: UUID,
    course_id: UUID,
) -> CourseApplication:
    """
    Submit a student's application to a course.

    Snapshots the student's subjects, records whether they met the course
    requirements at this moment, and creates a pending application.
    The cap check and the insert run under the student's lock, so two
    concurrent applies can never both pass a cap of N with N - 1 held.

    Args:
        db: Database session
        student_id: Applying student
        course_id: Target course

    Returns:
        The new pending application

    Raises:
        StudentNotFoundError: If the student does not exist
        CourseNotFoundError: If the course does not exist
        ApplicationDeadlinePassedError: If the course deadline is in the past
        CourseRequirementsInvalidError: If the course's stored requirements are malformed
        IncompleteProfileError: If the student has no subjects recorded
        DuplicateApplicationError: If an active application to the course exists
        InstitutionCapExceededError: If the institution cap is already reached
        IneligibleApplicantError: If eligibility is enforced and not met
        ConcurrentConflictError: If a concurrent request won twice in a row
    """
    logger.info(f"Processing application: student={student_id}, course={course_id}")

    async def _apply() -> CourseApplication:
        await repository.lock_student(db, student_id)

        course = await CourseRepository.get_by_id(db, course_id)
        if not course:
            logger.warning(f"Apply rejected, course not found: {course_id}")
            raise CourseNotFoundError(course_id)

        subjects = await StudentRepository.get_subjects_snapshot(db, student_id)
        if subjects is None:
            logger.warning(f"Apply rejected, student not found: {student_id}")
            raise StudentNotFoundError(student_id)

        if course.application_deadline and course.application_deadline < datetime.now(UTC):
            logger.warning(f"Apply rejected, deadline passed: course={course_id}")
            raise ApplicationDeadlinePassedError(course.name)

        if not subjects:
            logger.warning(f"Apply rejected, incomplete profile: student={student_id}")
            raise IncompleteProfileError()

        existing = await repository.get_active_for_student_course(db, student_id, course_id)
        if existing:
            logger.warning(
                f"Duplicate application attempt: student={student_id}, course={course_id}, "
                f"existing={existing.id}"
            )
            raise DuplicateApplicationError(course.name)

        cap = settings.institution_application_cap
        active = await repository.count_active_for_student_institution(
            db, student_id, course.institution_id
        )
        if active >= cap:
            logger.warning(
                f"Institution cap reached: student={student_id}, "
                f"institution={course.institution_id}, active={active}"
            )
            raise InstitutionCapExceededError(cap)

        try:
            requirement = CourseRequirement.from_mapping(course.requirements)
        except ValueError as e:
            logger.error(f"Course {course_id} has invalid requirements: {e}")
            raise CourseRequirementsInvalidError(course.name) from e

        unmet = unmet_requirements(subjects, requirement)
        if unmet and settings.enforce_eligibility_on_apply:
            logger.warning(f"Apply rejected, ineligible: student={student_id}, course={course_id}")
            raise IneligibleApplicantError(unmet)

        application = await repository.create(
            db,
            student_id=student_id,
            course=course,
            subjects_snapshot=subjects,
            eligible_at_apply=not unmet,
        )
        await _record_event(
            db,
            AdmissionEventType.APPLICATION_SUBMITTED,
            application,
            course_name=course.name,
        )
        return application

    application = await _run_in_transaction(db, "apply", _apply, retries=1)
    logger.info(
        f"Created application {application.id}: student={student_id}, course={course_id}, "
        f"eligible={application.eligible_at_apply}"
    )
    return application


async def decide_application(
    db: AsyncSession,
    institution_id: UUID,
    application_id: UUID,
    new_status: ApplicationStatus,
    notes: str | None = None,
) -> CourseApplication:
    """
    Record an institution's decision on a pending application.

    The decision stays invisible to the student until the course is
    published; admission_published is not touched here.

    Raises:
        ApplicationNotFoundError: If the application does not exist
        NotOwnerError: If the application is at another institution
        InvalidTransitionError: If the application is not pending, or
            new_status is not a decision
    """
    if new_status not in DECISION_STATUSES:
        raise InvalidTransitionError(
            f"'{new_status.value}' is not a decision. "
            f"Use one of: {sorted(s.value for s in DECISION_STATUSES)}"
        )

    logger.info(
        f"Institution {institution_id} deciding application {application_id}: {new_status.value}"
    )

    async def _decide() -> CourseApplication:
        application = await repository.get_by_id_for_update(db, application_id)
        if not application:
            logger.warning(f"Application not found: {application_id}")
            raise ApplicationNotFoundError(application_id)

        if application.institution_id != institution_id:
            logger.warning(
                f"Institution {institution_id} tried to decide foreign application {application_id}"
            )
            raise NotOwnerError("This application was not made to your institution.")

        if application.status != ApplicationStatus.PENDING:
            logger.warning(
                f"Cannot decide application {application_id}: status={application.status.value}"
            )
            raise InvalidTransitionError(
                f"Application is already {application.status.value}; only pending "
                "applications can be decided."
            )

        try:
            await repository.update_status(
                db,
                application,
                new_status,
                decided_by=DecisionSource.INSTITUTION,
                decision_notes=notes,
            )
        except repository.InvalidStatusTransitionError as e:
            logger.error(f"Status transition error: {e}")
            raise InvalidTransitionError(str(e)) from e

        await _record_event(
            db,
            AdmissionEventType.APPLICATION_DECIDED,
            application,
            status=new_status.value,
        )
        return application

    application = await _run_in_transaction(db, "decide", _decide)
    logger.info(f"Application {application_id} decided: {new_status.value}")
    return application


async def withdraw_application(
    db: AsyncSession,
    student_id: UUID,
    application_id: UUID,
) -> None:
    """
    Withdraw a pending application.

    The row is deleted, so the institution slot it held is free as soon as
    the transaction commits.

    Raises:
        ApplicationNotFoundError: If the application does not exist
        NotOwnerError: If the application belongs to another student
        InvalidTransitionError: If the application is no longer pending
    """
    logger.info(f"Student {student_id} withdrawing application {application_id}")

    async def _withdraw() -> None:
        await repository.lock_student(db, student_id)

        application = await repository.get_by_id_for_update(db, application_id)
        if not application:
            raise ApplicationNotFoundError(application_id)

        if application.student_id != student_id:
            logger.warning(
                f"Student {student_id} tried to withdraw foreign application {application_id}"
            )
            raise NotOwnerError("This application does not belong to you.")

        if application.status != ApplicationStatus.PENDING:
            logger.warning(
                f"Cannot withdraw application {application_id}: status={application.status.value}"
            )
            raise InvalidTransitionError(
                f"Application is {application.status.value}; only pending applications "
                "can be withdrawn."
            )

        await repository.delete(db, application)

    await _run_in_transaction(db, "withdraw", _withdraw)
    logger.info(f"Application {application_id} withdrawn")


# ============================================
# Publication
# ============================================


async def publish_course_admissions(
    db: AsyncSession,
    institution_id: UUID,
    course_id: UUID,
) -> int:
    """
    Publish the admission decisions of one course.

    Marks the course published and makes every decided application of the
    course visible to its student. Pending applications stay unpublished.
    Safe to call repeatedly: nothing is ever unpublished and no status changes.

    Returns:
        Number of applications newly published (0 for an empty course or a repeat)

    Raises:
        CourseNotFoundError: If the course does not exist
        NotOwnerError: If the course belongs to another institution
    """
    logger.info(f"Institution {institution_id} publishing admissions for course {course_id}")

    async def _publish() -> int:
        await repository.lock_course(db, course_id)

        course = await CourseRepository.get_by_id(db, course_id)
        if not course:
            raise CourseNotFoundError(course_id)

        if course.institution_id != institution_id:
            logger.warning(
                f"Institution {institution_id} tried to publish foreign course {course_id}"
            )
            raise NotOwnerError("This course is not offered by your institution.")

        await CourseRepository.mark_published(db, course)
        return await repository.publish_decided_for_course(db, course_id)

    count = await _run_in_transaction(db, "publish", _publish)
    logger.info(f"Published {count} application(s) for course {course_id}")
    return count


# ============================================
# Waitlist Promotion
# ============================================


async def _promote_next(db: AsyncSession, course_id: UUID) -> CourseApplication | None:
    """
    Admit the earliest waitlisted applicant of a course, inside the caller's transaction.

    The head row is re-selected when it stopped being waitlisted while we
    waited for its lock (e.g. a concurrent cascade declined it).
    """
    await repository.lock_course(db, course_id)

    course = await CourseRepository.get_by_id(db, course_id)
    if not course:
        raise CourseNotFoundError(course_id)

    for _ in range(MAX_PROMOTION_ATTEMPTS):
        candidate = await repository.get_next_waitlisted_for_update(db, course_id)

        if candidate is None:
            if await repository.has_waitlisted(db, course_id):
                continue
            logger.info(f"No waitlisted applicants to promote for course {course_id}")
            return None

        await repository.update_status(
            db,
            candidate,
            ApplicationStatus.ADMITTED,
            decided_by=DecisionSource.SYSTEM,
            promoted_from_waitlist=True,
            promoted_at=datetime.now(UTC),
            admission_published=candidate.admission_published or course.admissions_published,
        )
        await _record_event(
            db,
            AdmissionEventType.WAITLIST_PROMOTED,
            candidate,
            course_name=course.name,
        )
        logger.info(f"Promoted application {candidate.id} from waitlist of course {course_id}")
        return candidate

    logger.warning(f"Waitlist of course {course_id} kept changing during promotion")
    raise ConcurrentConflictError("waitlist promotion")


async def on_seat_freed(db: AsyncSession, course_id: UUID) -> CourseApplication | None:
    """
    Fill a released admitted seat from the course waitlist.

    Only called when an admitted application stops holding its seat;
    a plain rejection never triggers a promotion.

    Returns:
        The promoted application, or None if the waitlist is empty
    """
    return await _run_in_transaction(db, "waitlist promotion", lambda: _promote_next(db, course_id))


async def promote_from_waitlist(
    db: AsyncSession,
    institution_id: UUID,
    course_id: UUID,
) -> CourseApplication | None:
    """
    Fill a seat the institution has freed with the head of the course waitlist.

    Promotion order is the same as for a seat freed by an acceptance cascade.

    Returns:
        The promoted application, or None if the waitlist is empty

    Raises:
        CourseNotFoundError: If the course does not exist
        NotOwnerError: If the course belongs to another institution
    """
    logger.info(f"Institution {institution_id} promoting from waitlist of course {course_id}")

    async def _promote() -> CourseApplication | None:
        course = await CourseRepository.get_by_id(db, course_id)
        if not course:
            raise CourseNotFoundError(course_id)

        if course.institution_id != institution_id:
            logger.warning(
                f"Institution {institution_id} tried to promote on foreign course {course_id}"
            )
            raise NotOwnerError("This course is not offered by your institution.")

        return await _promote_next(db, course_id)

    return await _run_in_transaction(db, "waitlist promotion", _promote)


# ============================================
# Offer Acceptance
# ============================================


async def accept_offer(
    db: AsyncSession,
    student_id: UUID,
    application_id: UUID,
) -> AcceptanceResult:
    """
    Accept a published admission offer.

    In one transaction:
    1. The offer becomes accepted
    2. Every other pending, admitted or waitlisted application of the
       student is declined by the system
    3. Each course whose admitted seat was declined promotes its earliest
       waitlisted applicant

    The courses of every declined application are locked in course-id order
    before any of their rows, matching publish_course_admissions.

    Raises:
        ApplicationNotFoundError: If the application does not exist
        NotOwnerError: If the application belongs to another student
        AlreadyDecidedError: If the application is not an open admitted offer
        NotYetPublishedError: If the offer has not been published
        OfferAlreadyAcceptedError: If the student accepted another offer earlier
        ConcurrentConflictError: If a concurrent request won twice in a row
    """
    logger.info(f"Student {student_id} accepting offer {application_id}")

    async def _accept() -> AcceptanceResult:
        await repository.lock_student(db, student_id)

        application = await repository.get_by_id_for_update(db, application_id)
        if not application:
            raise ApplicationNotFoundError(application_id)

        if application.student_id != student_id:
            logger.warning(
                f"Student {student_id} tried to accept foreign application {application_id}"
            )
            raise NotOwnerError("This application does not belong to you.")

        if application.status != ApplicationStatus.ADMITTED:
            logger.warning(
                f"Cannot accept application {application_id}: status={application.status.value}"
            )
            raise AlreadyDecidedError(application.status)

        if not application.admission_published:
            logger.warning(f"Cannot accept unpublished offer {application_id}")
            raise NotYetPublishedError()

        if await repository.get_accepted_for_student(db, student_id):
            logger.warning(f"Student {student_id} already holds an accepted offer")
            raise OfferAlreadyAcceptedError()

        await repository.update_status(
            db,
            application,
            ApplicationStatus.ACCEPTED,
            accepted_at=datetime.now(UTC),
        )
        await _record_event(db, AdmissionEventType.OFFER_ACCEPTED, application)

        result = AcceptanceResult(accepted=application)
        freed_courses: list[UUID] = []

        # Course locks before row locks, the order publication uses
        for course_id in await repository.get_cascade_course_ids(
            db, student_id, exclude_id=application.id
        ):
            await repository.lock_course(db, course_id)

        others = await repository.get_cascade_candidates_for_update(
            db, student_id, exclude_id=application.id
        )
        for other in others:
            previous_status = other.status
            await repository.update_status(
                db,
                other,
                ApplicationStatus.REJECTED,
                decided_by=DecisionSource.SYSTEM,
                decision_reason=CASCADE_DECLINE_REASON,
            )
            await _record_event(
                db,
                AdmissionEventType.OFFER_CASCADE_DECLINED,
                other,
                previous_status=previous_status.value,
                accepted_application_id=str(application.id),
            )
            result.declined.append(other)

            if previous_status == ApplicationStatus.ADMITTED:
                freed_courses.append(other.course_id)

        for course_id in sorted(freed_courses, key=str):
            promoted = await _promote_next(db, course_id)
            if promoted:
                result.promoted.append(promoted)

        return result

    result = await _run_in_transaction(db, "accept", _accept, retries=1)
    logger.info(
        f"Offer {application_id} accepted: declined={len(result.declined)}, "
        f"promoted={len(result.promoted)}"
    )
    return result


# ============================================
# Reads
# ============================================


async def list_student_applications(db: AsyncSession, student_id: UUID) -> list[CourseApplication]:
    """All of the student's applications, newest first."""
    return await repository.get_for_student(db, student_id)


async def list_student_offers(db: AsyncSession, student_id: UUID) -> list[CourseApplication]:
    """Published admission offers the student can accept."""
    return await repository.get_published_offers_for_student(db, student_id)


async def list_institution_applications(
    db: AsyncSession,
    institution_id: UUID,
    course_id: UUID | None = None,
    status: ApplicationStatus | None = None,
) -> list[CourseApplication]:
    """Applications made to the institution, optionally filtered by course and status."""
    logger.info(
        f"Listing applications: institution={institution_id}, course={course_id}, status={status}"
    )
    return await repository.get_for_institution(
        db, institution_id, course_id=course_id, status=status
    )


async def get_course_waitlist(
    db: AsyncSession,
    institution_id: UUID,
    course_id: UUID,
) -> list[CourseApplication]:
    """
    A course's waitlist in promotion order.

    Raises:
        CourseNotFoundError: If the course does not exist
        NotOwnerError: If the course belongs to another institution
    """
    course = await CourseRepository.get_by_id(db, course_id)
    if not course:
        raise CourseNotFoundError(course_id)
    if course.institution_id != institution_id:
        raise NotOwnerError("This course is not offered by your institution.")

    return await repository.get_waitlist(db, course_id)


async def find_eligible_courses(
    db: AsyncSession,
    subjects: dict[str, str],
) -> list[EligibleCourse]:
    """
    List every course a subject/grade record qualifies for.

    Courses whose stored requirements cannot be parsed are skipped and logged.
    """
    eligible = []
    for course in await CourseRepository.list_all(db):
        try:
            requirement = CourseRequirement.from_mapping(course.requirements)
        except ValueError as e:
            logger.error(f"Course {course.id} has invalid requirements: {e}")
            continue

        if evaluate(subjects, requirement):
            eligible.append(EligibleCourse(course=course, requirements=dict(course.requirements)))

    logger.info(f"Eligibility check matched {len(eligible)} course(s)")
    return eligible
