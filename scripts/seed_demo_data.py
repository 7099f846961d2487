"""
Seed Demo Data

Creates a demo institution with two courses and two students, then prints
development tokens for trying the API by hand.
Safe to run repeatedly: existing rows (matched by email / course name) are kept.

Usage:
    pip install -e .
    python scripts/seed_demo_data.py
"""

import asyncio
import uuid
from datetime import timedelta

from sqlalchemy import select

from admission_api.core.database import async_session_maker, engine
from admission_api.core.security import create_access_token
from admission_api.modules.courses.models import Course
from admission_api.modules.students.models import Student

DEMO_INSTITUTION_ID = uuid.UUID("00000000-0000-0000-0000-0000000000a1")
DEMO_INSTITUTION_NAME = "Demo University"

TOKEN_LIFETIME = timedelta(hours=24)

DEMO_COURSES = [
    ("Computer Science", {"Mathematics": "B", "Physics": "C"}),
    ("Medicine", {"Biology": "A", "Chemistry": "A"}),
]

DEMO_STUDENTS = [
    ("ada@example.com", "Ada Student", {"Mathematics": "A", "Physics": "B", "English": "C"}),
    ("ben@example.com", "Ben Student", {"Biology": "A*", "Chemistry": "A", "Mathematics": "C"}),
]


async def seed_demo_data() -> None:
    """Insert the demo institution's courses and the demo students if missing."""
    async with async_session_maker() as db:
        for name, requirements in DEMO_COURSES:
            result = await db.execute(
                select(Course).where(
                    Course.institution_id == DEMO_INSTITUTION_ID, Course.name == name
                )
            )
            course = result.scalar_one_or_none()
            if course:
                print(f"Course already exists: {name} ({course.id})")
                continue

            course = Course(
                institution_id=DEMO_INSTITUTION_ID,
                institution_name=DEMO_INSTITUTION_NAME,
                name=name,
                requirements=requirements,
            )
            db.add(course)
            await db.flush()
            print(f"Created course: {name} ({course.id})")

        student_ids = []
        for email, full_name, subjects in DEMO_STUDENTS:
            result = await db.execute(select(Student).where(Student.email == email))
            student = result.scalar_one_or_none()
            if student:
                print(f"Student already exists: {email} ({student.id})")
            else:
                student = Student(email=email, full_name=full_name, subjects=subjects)
                db.add(student)
                await db.flush()
                print(f"Created student: {email} ({student.id})")
            student_ids.append(student.id)

        await db.commit()

    print("\nAccess tokens (valid 24 hours):")
    institution_token = create_access_token(str(DEMO_INSTITUTION_ID), "institution", TOKEN_LIFETIME)
    print(f"  institution: {institution_token}")
    for student_id in student_ids:
        student_token = create_access_token(str(student_id), "student", TOKEN_LIFETIME)
        print(f"  student {student_id}: {student_token}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
