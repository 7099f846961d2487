"""
Unit tests for the course eligibility evaluator.

These are pure functions, so every case runs without a database.
"""

import pytest

from admission_api.modules.admissions.eligibility import (
    GRADE_POINTS,
    CourseRequirement,
    Grade,
    evaluate,
    grade_points,
    normalize_subject,
    parse_grade,
    unmet_requirements,
)


def requirement(**min_grades: str) -> CourseRequirement:
    return CourseRequirement.from_mapping(min_grades)


class TestGradePoints:
    """Tests for the shared grade scale."""

    def test_scale_values(self):
        assert GRADE_POINTS[Grade.A_STAR] == 100
        assert GRADE_POINTS[Grade.A] == 90
        assert GRADE_POINTS[Grade.B] == 80
        assert GRADE_POINTS[Grade.C] == 70
        assert GRADE_POINTS[Grade.D] == 60
        assert GRADE_POINTS[Grade.E] == 50
        assert GRADE_POINTS[Grade.F] == 0

    def test_every_grade_has_points(self):
        for grade in Grade:
            assert grade in GRADE_POINTS

    def test_scale_is_strictly_descending(self):
        points = [GRADE_POINTS[grade] for grade in Grade]
        assert points == sorted(points, reverse=True)
        assert len(set(points)) == len(points)

    @pytest.mark.parametrize("raw", ["a", " A ", "A"])
    def test_parse_grade_is_lenient_about_case_and_space(self, raw):
        assert parse_grade(raw) == Grade.A

    def test_parse_grade_a_star(self):
        assert parse_grade("a*") == Grade.A_STAR

    @pytest.mark.parametrize("raw", ["G", "", "A+", "90", None, 5])
    def test_parse_grade_unknown_returns_none(self, raw):
        assert parse_grade(raw) is None

    def test_grade_points_unknown_is_none(self):
        assert grade_points("Z") is None


class TestCourseRequirement:
    """Tests for CourseRequirement construction."""

    def test_from_mapping(self):
        req = requirement(Mathematics="B", Physics="C")
        assert req.subjects == frozenset({"Mathematics", "Physics"})
        assert req.min_grades["Mathematics"] == Grade.B

    def test_from_none_is_empty(self):
        req = CourseRequirement.from_mapping(None)
        assert req.subjects == frozenset()

    def test_subject_without_minimum_grade_is_rejected(self):
        with pytest.raises(ValueError, match="No minimum grade"):
            CourseRequirement(subjects=frozenset({"Mathematics"}), min_grades={})

    def test_unknown_minimum_grade_is_rejected(self):
        with pytest.raises(ValueError, match="Unknown minimum grade"):
            requirement(Mathematics="Q")


class TestEvaluate:
    """Tests for evaluate() and unmet_requirements()."""

    def test_grade_above_minimum_is_eligible(self):
        assert evaluate({"Math": "A", "English": "B"}, requirement(Math="B")) is True

    def test_grade_equal_to_minimum_is_eligible(self):
        assert evaluate({"Math": "B"}, requirement(Math="B")) is True

    def test_grade_below_minimum_is_ineligible(self):
        assert evaluate({"Math": "C"}, requirement(Math="B")) is False

    def test_empty_requirement_is_always_eligible(self):
        assert evaluate({}, requirement()) is True
        assert evaluate({"Math": "F"}, requirement()) is True

    def test_missing_subject_is_ineligible_regardless_of_other_grades(self):
        subjects = {"English": "A*", "Physics": "A*", "Chemistry": "A*"}
        assert evaluate(subjects, requirement(Math="F")) is False

    def test_every_required_subject_must_be_met(self):
        subjects = {"Math": "A", "Physics": "D"}
        assert evaluate(subjects, requirement(Math="B", Physics="C")) is False
        assert unmet_requirements(subjects, requirement(Math="B", Physics="C")) == ["Physics"]

    def test_subject_names_match_case_insensitively(self):
        assert evaluate({" mathematics ": "A"}, requirement(Mathematics="B")) is True

    def test_unknown_student_grade_is_not_met(self):
        assert evaluate({"Math": "excellent"}, requirement(Math="F")) is False

    def test_a_star_beats_a(self):
        assert evaluate({"Math": "A*"}, requirement(Math="A")) is True
        assert evaluate({"Math": "A"}, requirement(Math="A*")) is False

    def test_unmet_requirements_sorted(self):
        unmet = unmet_requirements({}, requirement(Zoology="C", Art="C", Math="C"))
        assert unmet == ["Art", "Math", "Zoology"]

    def test_evaluate_is_deterministic(self):
        subjects = {"Math": "B", "English": "C"}
        req = requirement(Math="B", English="D")
        results = {evaluate(subjects, req) for _ in range(10)}
        assert results == {True}

    def test_evaluate_does_not_mutate_inputs(self):
        subjects = {"Math": "B"}
        evaluate(subjects, requirement(Math="B"))
        assert subjects == {"Math": "B"}

    @pytest.mark.parametrize(
        ("student_grade", "min_grade", "expected"),
        [
            (student, minimum, GRADE_POINTS[student] >= GRADE_POINTS[minimum])
            for student in Grade
            for minimum in Grade
        ],
    )
    def test_all_grade_pairs_follow_point_order(self, student_grade, min_grade, expected):
        req = requirement(Math=min_grade.value)
        assert evaluate({"Math": student_grade.value}, req) is expected


def test_normalize_subject():
    assert normalize_subject("  English Language ") == "english language"
