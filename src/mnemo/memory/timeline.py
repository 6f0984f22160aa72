"""Group memories by UTC calendar day."""

from __future__ import annotations

from typing import Iterable

from mnemo.models import Memory


def group_by_day(memories: Iterable[Memory]) -> dict[str, list[Memory]]:
    """Sparse mapping of ``YYYY-MM-DD`` -> memories created that day.

    Memories are ordered newest first before grouping, so both the date keys
    and each day's list come out in descending time order.
    """
    ordered = sorted(memories, key=lambda m: m.created_at, reverse=True)
    grouped: dict[str, list[Memory]] = {}
    for memory in ordered:
        grouped.setdefault(memory.created_date, []).append(memory)
    return grouped
