"""
Students module - Read-only access to student profiles (subjects and grades).
"""

from admission_api.modules.students.models import Student
from admission_api.modules.students.repository import StudentRepository

__all__ = ["Student", "StudentRepository"]
