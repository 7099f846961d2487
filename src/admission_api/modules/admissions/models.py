"""
Admissions Models

Database models for course applications and the admission event outbox.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from admission_api.core.database import Base


class ApplicationStatus(str, enum.Enum):
    """Status of a course application."""

    PENDING = "pending"
    ADMITTED = "admitted"
    REJECTED = "rejected"
    WAITLISTED = "waitlisted"
    ACCEPTED = "accepted"


class DecisionSource(str, enum.Enum):
    """Who moved an application out of ``pending`` (or promoted/declined it)."""

    INSTITUTION = "institution"
    SYSTEM = "system"


class AdmissionEventType(str, enum.Enum):
    """Logical events emitted for the notification service."""

    APPLICATION_SUBMITTED = "application_submitted"
    APPLICATION_DECIDED = "application_decided"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_CASCADE_DECLINED = "offer_cascade_declined"
    WAITLIST_PROMOTED = "waitlist_promoted"


# Statuses that occupy one of the student's per-institution slots
ACTIVE_STATUSES: frozenset[ApplicationStatus] = frozenset(
    {
        ApplicationStatus.PENDING,
        ApplicationStatus.ADMITTED,
        ApplicationStatus.WAITLISTED,
        ApplicationStatus.ACCEPTED,
    }
)

# Statuses an institution may set on a pending application
DECISION_STATUSES: frozenset[ApplicationStatus] = frozenset(
    {
        ApplicationStatus.ADMITTED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.WAITLISTED,
    }
)

# Statuses declined automatically when the student accepts another offer
CASCADE_DECLINE_STATUSES: frozenset[ApplicationStatus] = frozenset(
    {
        ApplicationStatus.PENDING,
        ApplicationStatus.ADMITTED,
        ApplicationStatus.WAITLISTED,
    }
)


class CourseApplication(Base):
    """
    A student's application to one course at one institution.

    ``institution_id`` is denormalized from the course so the per-institution
    cap can be counted without a join. ``subjects_snapshot`` is the student's
    subject/grade map frozen at apply time and is never refreshed.
    """

    __tablename__ = "course_applications"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
    )
    institution_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    # Snapshot taken at apply time
    subjects_snapshot: Mapped[dict] = mapped_column(JSONB, nullable=False)
    eligible_at_apply: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Status tracking
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="course_application_status"),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )
    decided_by: Mapped[DecisionSource | None] = mapped_column(
        Enum(DecisionSource, name="decision_source"), nullable=True
    )
    decision_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    decision_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    admission_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    promoted_from_waitlist: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    promoted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "NOT admission_published OR status <> 'PENDING'",
            name="ck_course_applications_published_not_pending",
        ),
        Index("ix_course_applications_student_institution", "student_id", "institution_id"),
        Index("ix_course_applications_course_status", "course_id", "status"),
        # Waitlist scan: earliest applied first, id as tie-break
        Index(
            "ix_course_applications_waitlist_order",
            "course_id",
            "applied_at",
            "id",
            postgresql_where=text("status = 'WAITLISTED'"),
        ),
        # At most one active application per (student, course)
        Index(
            "uq_course_applications_active_per_course",
            "student_id",
            "course_id",
            unique=True,
            postgresql_where=text("status IN ('PENDING', 'ADMITTED', 'WAITLISTED', 'ACCEPTED')"),
        ),
        # At most one accepted offer per student
        Index(
            "uq_course_applications_one_accepted",
            "student_id",
            unique=True,
            postgresql_where=text("status = 'ACCEPTED'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<CourseApplication(id={self.id}, status={self.status.value})>"


class AdmissionEvent(Base):
    """
    Outbox row for a logical admission event.

    Written in the same transaction as the state change it describes and
    relayed to the notification service by a background job.
    """

    __tablename__ = "admission_events"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    event_type: Mapped[AdmissionEventType] = mapped_column(
        Enum(AdmissionEventType, name="admission_event_type"), nullable=False
    )
    # No FK: withdrawn applications are deleted but their events are kept
    application_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    student_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Failed deliveries; the relay stops picking an event up at EVENT_DISPATCH_MAX_ATTEMPTS
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index(
            "ix_admission_events_undispatched",
            "attempts",
            "created_at",
            postgresql_where=text("dispatched_at IS NULL"),
        ),
    )
