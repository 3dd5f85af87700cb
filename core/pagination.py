# Copyright (C) 2026 grodz
#
# This file is part of Crate.
#
# Crate is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""Page math for the sound picker.

Discord select menus hold at most 25 options, so the picker shows the library
in pages of PAGE_SIZE. Everything here is pure and stateless.
"""

from dataclasses import dataclass
from enum import Enum

# Discord's select menu option ceiling
PAGE_SIZE = 25


class Direction(str, Enum):
    """Page navigation direction. Compares equal to its plain string value."""
    PREVIOUS = "previous"
    NEXT = "next"


@dataclass(frozen=True, slots=True)
class PageWindow:
    """Visible slice of a list for one page.

    ``start``/``end`` form a half-open range into the full list.
    """

    page: int
    max_page: int
    start: int
    end: int
    has_previous: bool
    has_next: bool

    @property
    def total_pages(self) -> int:
        return self.max_page + 1

    def __len__(self) -> int:
        return self.end - self.start


def max_page(total: int, page_size: int = PAGE_SIZE) -> int:
    """Highest valid zero-based page. An empty list still has page 0."""
    if total <= 0:
        return 0
    return (total - 1) // page_size


def clamp_page(page: int, total: int, page_size: int = PAGE_SIZE) -> int:
    """Clamp page into [0, max_page]."""
    return max(0, min(page, max_page(total, page_size)))


def page_window(total: int, page: int, page_size: int = PAGE_SIZE) -> PageWindow:
    """Compute the visible window for a page (clamped).

    Args:
        total: Number of items in the full list
        page: Requested zero-based page
        page_size: Items per page

    Returns:
        PageWindow with the half-open range and navigation flags
    """
    last = max_page(total, page_size)
    page = clamp_page(page, total, page_size)
    start = min(page * page_size, max(total, 0))
    end = min(max(total, 0), start + page_size)
    return PageWindow(
        page=page,
        max_page=last,
        start=start,
        end=end,
        has_previous=page > 0,
        has_next=page < last,
    )


def step_page(page: int, direction: str, total: int, page_size: int = PAGE_SIZE) -> int:
    """Move one page in ``direction`` ("previous" or "next"), stopping at the edges."""
    if direction == Direction.PREVIOUS:
        return clamp_page(page - 1, total, page_size)
    if direction == Direction.NEXT:
        return clamp_page(page + 1, total, page_size)
    raise ValueError(f"unknown direction: {direction!r}")


def is_valid_index(index: int, total: int) -> bool:
    """Check an option index against the full list."""
    return 0 <= index < total
