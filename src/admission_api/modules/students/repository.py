"""
Student Repository

Read-only database operations for student profiles.
"""

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from admission_api.modules.students.models import Student

logger = logging.getLogger(__name__)


class StudentRepository:
    """Repository for student profile reads."""

    @staticmethod
    async def get_by_id(db: AsyncSession, student_id: UUID) -> Student | None:
        """
        Get a student by ID.

        Args:
            db: Database session
            student_id: Student UUID

        Returns:
            Student instance or None if not found
        """
        return await db.get(Student, student_id)

    @staticmethod
    async def get_many(db: AsyncSession, student_ids: list[UUID]) -> dict[UUID, Student]:
        """
        Get several students at once, keyed by ID.

        Used by the notification relay to resolve recipients in one query.
        """
        if not student_ids:
            return {}

        result = await db.execute(select(Student).where(Student.id.in_(student_ids)))
        return {student.id: student for student in result.scalars().all()}

    @staticmethod
    async def get_subjects_snapshot(db: AsyncSession, student_id: UUID) -> dict[str, str] | None:
        """
        Read the student's current subject/grade map.

        Returns a copy so later profile edits can never leak into a stored
        snapshot through a shared reference.

        Returns:
            Subject -> grade mapping, or None if the student does not exist
        """
        student = await StudentRepository.get_by_id(db, student_id)
        if student is None:
            return None
        return dict(student.subjects or {})
