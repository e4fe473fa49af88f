"""
Unit tests for stay window generation
"""

import pytest
from datetime import date
from pydantic import ValidationError
from refresh.windows import generate_windows
from schemas.refresh import Window


class TestGenerateWindows:
    """Test window generation"""

    def test_three_day_horizon(self):
        """Windows start tomorrow and each spans one night"""
        windows = generate_windows(3, today=date(2025, 1, 1))

        assert [w.as_tuple() for w in windows] == [
            (date(2025, 1, 2), date(2025, 1, 3)),
            (date(2025, 1, 3), date(2025, 1, 4)),
            (date(2025, 1, 4), date(2025, 1, 5)),
        ]

    def test_default_horizon_length(self):
        windows = generate_windows(14, today=date(2025, 1, 1))

        assert len(windows) == 14
        assert windows[0].check_in == date(2025, 1, 2)
        assert windows[-1].check_out == date(2025, 1, 16)

    def test_windows_cross_month_and_year(self):
        windows = generate_windows(2, today=date(2024, 12, 30))

        assert windows[0].as_tuple() == (date(2024, 12, 31), date(2025, 1, 1))
        assert windows[1].as_tuple() == (date(2025, 1, 1), date(2025, 1, 2))

    @pytest.mark.parametrize("horizon", [0, -1])
    def test_non_positive_horizon_yields_nothing(self, horizon):
        assert generate_windows(horizon, today=date(2025, 1, 1)) == []

    def test_generation_is_repeatable(self):
        """Same inputs give the same windows"""
        first = generate_windows(5, today=date(2025, 6, 1))
        second = generate_windows(5, today=date(2025, 6, 1))

        assert first == second


class TestWindow:
    """Test the Window value type"""

    def test_window_is_hashable(self):
        a = Window(check_in=date(2025, 1, 2), check_out=date(2025, 1, 3))
        b = Window(check_in=date(2025, 1, 2), check_out=date(2025, 1, 3))

        assert a == b
        assert len({a, b}) == 1

    def test_check_out_must_follow_check_in(self):
        with pytest.raises(ValidationError):
            Window(check_in=date(2025, 1, 3), check_out=date(2025, 1, 3))

    def test_string_form(self):
        window = Window(check_in=date(2025, 1, 2), check_out=date(2025, 1, 3))

        assert str(window) == "2025-01-02..2025-01-03"
