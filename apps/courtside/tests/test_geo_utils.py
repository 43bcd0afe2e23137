"""
Tests for distance and compatibility scoring.
"""

import pytest

from courtside.utils.geo_utils import (
    calculate_distance_km,
    compatibility_score,
    distance_km,
    skill_in_range,
    skill_index,
)


class TestDistance:
    def test_same_point_is_zero(self):
        assert calculate_distance_km(33.77, -118.19, 33.77, -118.19) == 0.0

    def test_known_distance_los_angeles_to_san_diego(self):
        # LAX to SAN is roughly 175 km great-circle
        d = calculate_distance_km(33.9416, -118.4085, 32.7338, -117.1933)
        assert 170 < d < 180

    def test_symmetric(self):
        a = (40.7128, -74.0060)
        b = (51.5074, -0.1278)
        assert distance_km(a, b) == pytest.approx(distance_km(b, a))

    def test_antipodal_points_do_not_fail(self):
        d = calculate_distance_km(0.0, 0.0, 0.0, 180.0)
        assert d == pytest.approx(3.141592653589793 * 6371.0, rel=1e-9)

    def test_never_negative(self):
        assert calculate_distance_km(-45.0, 170.0, 45.0, -170.0) > 0


class TestSkillIndex:
    def test_ordinal_positions(self):
        assert skill_index("beginner") == 0
        assert skill_index("pro") == 4

    def test_missing_or_unknown_is_lowest(self):
        assert skill_index(None) == 0
        assert skill_index("wizard") == 0

    def test_case_insensitive(self):
        assert skill_index("Advanced") == 2

    def test_skill_in_range_open_bounds(self):
        assert skill_in_range("expert", None, None)
        assert skill_in_range("beginner", None, "intermediate")
        assert not skill_in_range("pro", "beginner", "advanced")
        assert not skill_in_range("beginner", "intermediate", None)


class TestCompatibilityScore:
    def test_identical_players_score_100(self):
        a = {"rating": 1500, "skill_level": "advanced"}
        assert compatibility_score(a, dict(a), 0.0) == 100.0

    def test_worked_example(self):
        """Ratings 1500/1540, same skill bucket, 5 km apart -> 93.5."""
        a = {"rating": 1500, "skill_level": "intermediate"}
        b = {"rating": 1540, "skill_level": "intermediate"}
        assert compatibility_score(a, b, 5.0) == pytest.approx(93.5)

    def test_symmetric(self):
        a = {"rating": 1320, "skill_level": "beginner"}
        b = {"rating": 1780, "skill_level": "expert"}
        assert compatibility_score(a, b, 12.3) == compatibility_score(b, a, 12.3)

    def test_penalties_are_capped(self):
        a = {"rating": 0, "skill_level": "beginner"}
        b = {"rating": 5000, "skill_level": "beginner"}
        # Rating penalty caps at 30, distance penalty caps at 20
        assert compatibility_score(a, b, 10_000.0) == pytest.approx(50.0)

    def test_worst_case_with_default_caps(self):
        a = {"rating": 0, "skill_level": "beginner"}
        b = {"rating": 5000, "skill_level": "pro"}
        # 30 (rating) + 40 (four skill steps) + 20 (distance)
        assert compatibility_score(a, b, 10_000.0) == pytest.approx(10.0)

    def test_floored_at_zero(self):
        a = {"rating": 0, "skill_level": "beginner"}
        b = {"rating": 5000, "skill_level": "pro"}
        score = compatibility_score(a, b, 10_000.0, rating_cap=60.0, distance_cap=40.0)
        assert score == 0.0

    def test_unknown_distance_is_not_penalized(self):
        a = {"rating": 1500, "skill_level": "advanced"}
        assert compatibility_score(a, dict(a), None) == 100.0

    def test_missing_rating_defaults_to_midpoint(self):
        a = {"rating": None, "skill_level": "advanced"}
        b = {"rating": 1600, "skill_level": "advanced"}
        assert compatibility_score(a, b) == pytest.approx(90.0)

    def test_missing_skill_defaults_to_lowest(self):
        a = {"rating": 1500}
        b = {"rating": 1500, "skill_level": "intermediate"}
        assert compatibility_score(a, b) == pytest.approx(90.0)

    def test_accepts_objects(self):
        class U:
            rating = 1500.0
            skill_level = "pro"

        assert compatibility_score(U(), U(), 2.0) == pytest.approx(99.0)

    def test_overrides(self):
        a = {"rating": 1500, "skill_level": "beginner"}
        b = {"rating": 1500, "skill_level": "intermediate"}
        assert compatibility_score(a, b, skill_penalty=5.0) == pytest.approx(95.0)
