"""
Course Models

A course belongs to exactly one institution and carries its entry
requirements. Whether the course's admission decisions have been published
is a course-level fact recorded here.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from admission_api.core.database import Base


class Course(Base):
    """
    Course offered by an institution.

    ``requirements`` maps each required subject to its minimum letter grade,
    e.g. ``{"Mathematics": "B"}``. The required subject set is the key set,
    so every required subject always has a minimum grade.
    """

    __tablename__ = "courses"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Owning institution (identity issued by the auth service, no FK)
    institution_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    institution_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    requirements: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    application_deadline: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Publication is one-way: once published it is never reset
    admissions_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    admissions_published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (Index("ix_courses_institution_id", "institution_id"),)

    def __repr__(self) -> str:
        return f"<Course(id={self.id}, name={self.name})>"
