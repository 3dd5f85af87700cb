"""
Unit tests for picker page math

Coverage:
- max_page for empty, exact and partial pages
- page_window slices and navigation flags
- step_page never leaves [0, max_page]
- is_valid_index bounds
"""
import pytest

from core.pagination import (
    PAGE_SIZE,
    Direction,
    clamp_page,
    is_valid_index,
    max_page,
    page_window,
    step_page,
)


class TestMaxPage:
    """Highest valid page"""

    @pytest.mark.parametrize("total,expected", [
        (0, 0),
        (1, 0),
        (25, 0),
        (26, 1),
        (30, 1),
        (50, 1),
        (51, 2),
    ])
    def test_max_page(self, total, expected):
        assert max_page(total, PAGE_SIZE) == expected

    def test_negative_total_is_treated_as_empty(self):
        assert max_page(-5) == 0

    def test_clamp_page(self):
        assert clamp_page(-1, 30) == 0
        assert clamp_page(7, 30) == 1
        assert clamp_page(1, 30) == 1


class TestPageWindow:
    """Visible slice per page"""

    def test_first_of_two_pages(self):
        window = page_window(30, 0)
        assert (window.start, window.end) == (0, 25)
        assert len(window) == 25
        assert window.has_previous is False
        assert window.has_next is True
        assert window.total_pages == 2

    def test_last_partial_page(self):
        window = page_window(30, 1)
        assert (window.start, window.end) == (25, 30)
        assert len(window) == 5
        assert window.has_previous is True
        assert window.has_next is False

    def test_empty_list_has_one_empty_page(self):
        window = page_window(0, 0)
        assert len(window) == 0
        assert window.total_pages == 1
        assert not window.has_previous and not window.has_next

    def test_out_of_range_page_is_clamped(self):
        assert page_window(30, 9).page == 1


class TestStepPage:
    """Navigation at and between the edges"""

    @pytest.mark.parametrize("total", [0, 1, 24, 25, 26, 30, 100])
    def test_edges_are_no_ops(self, total):
        last = max_page(total)
        assert step_page(0, Direction.PREVIOUS, total) == 0
        assert step_page(last, Direction.NEXT, total) == last

    def test_steps_one_page(self):
        assert step_page(0, Direction.NEXT, 100) == 1
        assert step_page(3, Direction.PREVIOUS, 100) == 2

    def test_plain_strings_work(self):
        assert step_page(0, "next", 30) == 1

    def test_unknown_direction_raises(self):
        with pytest.raises(ValueError):
            step_page(0, "sideways", 30)


def test_is_valid_index():
    assert is_valid_index(0, 30)
    assert is_valid_index(29, 30)
    assert not is_valid_index(30, 30)
    assert not is_valid_index(-1, 30)
    assert not is_valid_index(0, 0)
