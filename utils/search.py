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

"""Fuzzy filtering of library entries using RapidFuzz.

Used by `/sounds filter:` to narrow the picker. Unlike a ranked search, the
result keeps library order, so paging through a filtered list feels the same
as paging through the full one.
"""

from rapidfuzz import fuzz
from rapidfuzz.utils import default_process

from utils.library import display_name


def score_entry(query: str, entry: str) -> float:
    """Best match score (0-100) of a query against one library entry.

    Strategies, best wins:
    1. WRatio on the full display name ("fx/airhorn")
    2. WRatio on the file name alone ("airhorn")
    3. partial_ratio on the file name, for substrings ("horn" -> "airhorn")
    """
    name = display_name(entry)
    base = name.rsplit('/', 1)[-1]

    score_full = fuzz.WRatio(query, name, processor=default_process)
    score_base = fuzz.WRatio(query, base, processor=default_process)
    score_partial = fuzz.partial_ratio(query, base, processor=default_process)

    return max(score_full, score_base, score_partial)


def filter_entries(query: str | None, entries: list[str], threshold: float = 61) -> list[str]:
    """Keep entries matching ``query`` at or above ``threshold``.

    An empty query (or one that normalizes to nothing) returns the entries
    unchanged.
    """
    if not query:
        return list(entries)

    # No file name is 100+ chars worth searching for
    query = query[:100]
    if not default_process(query):
        return list(entries)

    return [entry for entry in entries if score_entry(query, entry) >= threshold]
