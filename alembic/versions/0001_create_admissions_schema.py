"""create admissions schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration:
1. Creates the enum types for application status, decision source and
   admission event type (values are the Python enum member names)
2. Creates the students and courses tables
3. Creates course_applications with the partial unique indexes that back
   "one active application per course" and "one accepted offer per student"
4. Creates the admission_events outbox table
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

APPLICATION_STATUS_VALUES = ("PENDING", "ADMITTED", "REJECTED", "WAITLISTED", "ACCEPTED")
DECISION_SOURCE_VALUES = ("INSTITUTION", "SYSTEM")
EVENT_TYPE_VALUES = (
    "APPLICATION_SUBMITTED",
    "APPLICATION_DECIDED",
    "OFFER_ACCEPTED",
    "OFFER_CASCADE_DECLINED",
    "WAITLIST_PROMOTED",
)


def upgrade() -> None:
    """Create the admissions tables, enums and indexes."""
    bind = op.get_bind()

    application_status = postgresql.ENUM(
        *APPLICATION_STATUS_VALUES, name="course_application_status", create_type=False
    )
    decision_source = postgresql.ENUM(
        *DECISION_SOURCE_VALUES, name="decision_source", create_type=False
    )
    event_type = postgresql.ENUM(*EVENT_TYPE_VALUES, name="admission_event_type", create_type=False)

    application_status.create(bind, checkfirst=True)
    decision_source.create(bind, checkfirst=True)
    event_type.create(bind, checkfirst=True)

    # ============================================
    # students
    # ============================================
    op.create_table(
        "students",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column(
            "subjects",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    # ============================================
    # courses
    # ============================================
    op.create_table(
        "courses",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("institution_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("institution_name", sa.String(length=200), nullable=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column(
            "requirements",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("application_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "admissions_published", sa.Boolean(), server_default=sa.false(), nullable=False
        ),
        sa.Column("admissions_published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_courses_institution_id", "courses", ["institution_id"])

    # ============================================
    # course_applications
    # ============================================
    op.create_table(
        "course_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("course_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("institution_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("subjects_snapshot", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("eligible_at_apply", sa.Boolean(), nullable=False),
        sa.Column("status", application_status, nullable=False),
        sa.Column("decided_by", decision_source, nullable=True),
        sa.Column("decision_reason", sa.String(length=255), nullable=True),
        sa.Column("decision_notes", sa.Text(), nullable=True),
        sa.Column("admission_published", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column(
            "promoted_from_waitlist", sa.Boolean(), server_default=sa.false(), nullable=False
        ),
        sa.Column("promoted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "applied_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        # Published is only meaningful once decided
        sa.CheckConstraint(
            "NOT admission_published OR status <> 'PENDING'",
            name="ck_course_applications_published_not_pending",
        ),
    )
    op.create_index(
        "ix_course_applications_student_institution",
        "course_applications",
        ["student_id", "institution_id"],
    )
    op.create_index(
        "ix_course_applications_course_status",
        "course_applications",
        ["course_id", "status"],
    )
    op.create_index(
        "ix_course_applications_waitlist_order",
        "course_applications",
        ["course_id", "applied_at", "id"],
        postgresql_where=sa.text("status = 'WAITLISTED'"),
    )
    op.create_index(
        "uq_course_applications_active_per_course",
        "course_applications",
        ["student_id", "course_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('PENDING', 'ADMITTED', 'WAITLISTED', 'ACCEPTED')"),
    )
    op.create_index(
        "uq_course_applications_one_accepted",
        "course_applications",
        ["student_id"],
        unique=True,
        postgresql_where=sa.text("status = 'ACCEPTED'"),
    )

    # ============================================
    # admission_events (notification outbox)
    # ============================================
    op.create_table(
        "admission_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", event_type, nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("course_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "payload",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False
        ),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_admission_events_undispatched",
        "admission_events",
        ["created_at"],
        postgresql_where=sa.text("dispatched_at IS NULL"),
    )


def downgrade() -> None:
    """Drop the admissions tables and enums."""
    op.drop_index("ix_admission_events_undispatched", table_name="admission_events")
    op.drop_table("admission_events")

    op.drop_index("uq_course_applications_one_accepted", table_name="course_applications")
    op.drop_index("uq_course_applications_active_per_course", table_name="course_applications")
    op.drop_index("ix_course_applications_waitlist_order", table_name="course_applications")
    op.drop_index("ix_course_applications_course_status", table_name="course_applications")
    op.drop_index("ix_course_applications_student_institution", table_name="course_applications")
    op.drop_table("course_applications")

    op.drop_index("ix_courses_institution_id", table_name="courses")
    op.drop_table("courses")
    op.drop_table("students")

    bind = op.get_bind()
    postgresql.ENUM(name="admission_event_type").drop(bind, checkfirst=True)
    postgresql.ENUM(name="decision_source").drop(bind, checkfirst=True)
    postgresql.ENUM(name="course_application_status").drop(bind, checkfirst=True)
