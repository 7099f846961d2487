"""
Course Eligibility

Pure functions that decide whether a subject/grade record satisfies a
course's entry requirements. No I/O and no state: the same inputs always give
the same answer.

Every eligibility computation in the system goes through ``GRADE_POINTS``.
"""

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field


class Grade(str, enum.Enum):
    """Letter grades, best first."""

    A_STAR = "A*"
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"
    F = "F"


GRADE_POINTS: dict[Grade, int] = {
    Grade.A_STAR: 100,
    Grade.A: 90,
    Grade.B: 80,
    Grade.C: 70,
    Grade.D: 60,
    Grade.E: 50,
    Grade.F: 0,
}


def normalize_subject(name: str) -> str:
    """Subject names compare case-insensitively and ignore surrounding spaces."""
    return name.strip().casefold()


def parse_grade(value: str | Grade) -> Grade | None:
    """
    Parse a letter grade.

    Returns:
        The Grade, or None when the value is not a known grade
    """
    if isinstance(value, Grade):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Grade(value.strip().upper())
    except ValueError:
        return None


def grade_points(value: str | Grade) -> int | None:
    """Point value of a grade, or None for an unknown grade."""
    grade = parse_grade(value)
    return GRADE_POINTS[grade] if grade is not None else None


@dataclass(frozen=True)
class CourseRequirement:
    """
    Entry requirement of a course.

    ``subjects`` is the set of required subjects and ``min_grades`` the
    minimum grade for each. Every required subject must have a minimum grade.
    """

    subjects: frozenset[str] = frozenset()
    min_grades: Mapping[str, Grade] = field(default_factory=dict)

    def __post_init__(self) -> None:
        missing = [subject for subject in self.subjects if subject not in self.min_grades]
        if missing:
            raise ValueError(f"No minimum grade for required subject(s): {sorted(missing)}")

        unknown = [
            subject for subject, grade in self.min_grades.items() if parse_grade(grade) is None
        ]
        if unknown:
            raise ValueError(f"Unknown minimum grade for subject(s): {sorted(unknown)}")

    @classmethod
    def from_mapping(cls, requirements: Mapping[str, str] | None) -> "CourseRequirement":
        """Build from the stored ``{subject: min_grade}`` form."""
        requirements = requirements or {}
        return cls(
            subjects=frozenset(requirements),
            min_grades={
                subject: parse_grade(grade) or grade for subject, grade in requirements.items()
            },
        )


def unmet_requirements(
    student_subjects: Mapping[str, str],
    requirement: CourseRequirement,
) -> list[str]:
    """
    List the required subjects the student does not satisfy.

    A subject is unmet when the student has no grade recorded for it, the
    recorded grade is not a known grade, or its points are below the minimum.

    Returns:
        Unmet subject names (as named in the requirement), sorted
    """
    recorded = {
        normalize_subject(subject): grade for subject, grade in student_subjects.items()
    }

    unmet = []
    for subject in requirement.subjects:
        student_points = None
        student_grade = recorded.get(normalize_subject(subject))
        if student_grade is not None:
            student_points = grade_points(student_grade)

        if student_points is None or student_points < grade_points(requirement.min_grades[subject]):
            unmet.append(subject)

    return sorted(unmet)


def evaluate(student_subjects: Mapping[str, str], requirement: CourseRequirement) -> bool:
    """
    Check whether a subject/grade record meets a course requirement.

    An empty requirement is always met. A missing subject is never met,
    regardless of the student's other grades.
    """
    return not unmet_requirements(student_subjects, requirement)
