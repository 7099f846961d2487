"""
Courses module - Courses offered by institutions and their entry requirements.
"""

from admission_api.modules.courses.models import Course
from admission_api.modules.courses.repository import CourseRepository

__all__ = ["Course", "CourseRepository"]
