"""
Course Repository

Database operations for courses.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from admission_api.modules.courses.models import Course

logger = logging.getLogger(__name__)


class CourseRepository:
    """Repository for course database operations."""

    @staticmethod
    async def get_by_id(db: AsyncSession, course_id: UUID) -> Course | None:
        """
        Get a course by ID.

        Args:
            db: Database session
            course_id: Course UUID

        Returns:
            Course instance or None if not found
        """
        return await db.get(Course, course_id)

    @staticmethod
    async def list_all(db: AsyncSession) -> list[Course]:
        """List every course, ordered by name."""
        result = await db.execute(select(Course).order_by(Course.name, Course.id))
        return list(result.scalars().all())

    @staticmethod
    async def mark_published(db: AsyncSession, course: Course) -> Course:
        """
        Record that the course's admission decisions are published.

        Only ever moves the flag from False to True; the original
        publication timestamp is kept on repeat calls.

        Args:
            db: Database session
            course: Course to mark

        Returns:
            The updated course (flushed, not committed)
        """
        if not course.admissions_published:
            course.admissions_published = True
            course.admissions_published_at = datetime.now(UTC)
            await db.flush()
            logger.info(f"Course {course.id} admissions marked as published")

        return course

    @staticmethod
    async def get_many(db: AsyncSession, course_ids: list[UUID]) -> dict[UUID, Course]:
        """Get several courses at once, keyed by ID."""
        if not course_ids:
            return {}

        result = await db.execute(select(Course).where(Course.id.in_(course_ids)))
        return {course.id: course for course in result.scalars().all()}
