from __future__ import annotations

from typing import Iterable

from .models import SupportLevel


def next_level(current_sort_order: int, levels: Iterable[SupportLevel]) -> SupportLevel | None:
    """Return the active level directly above ``current_sort_order``.

    Sort orders need not be contiguous. ``None`` means the ticket already sits
    at the highest active level.
    """

    candidates = [
        level for level in levels if level.is_active and level.sort_order > current_sort_order
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda level: level.sort_order)
