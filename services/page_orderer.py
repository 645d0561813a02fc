"""
Vertical ordering of snippets and bubbles within one screenshot.

Bounding boxes use a bottom-left origin, so a box with a larger ``y`` is
visually higher. Both directions share one key function; "bottom to top"
is the same key sorted in reverse, never a second hand-written comparator.
"""
from enum import Enum
from typing import List, Sequence, TypeVar

T = TypeVar("T")


class SortDirection(Enum):
    TOP_TO_BOTTOM = "top_to_bottom"
    BOTTOM_TO_TOP = "bottom_to_top"


def _screen_depth(item) -> float:
    # Distance from the top edge of the screen
    return 1.0 - item.bounding_box.y


def sort_snippets(items: Sequence[T], direction: SortDirection = SortDirection.TOP_TO_BOTTOM) -> List[T]:
    """Sort anything carrying a ``bounding_box`` vertically.

    The sort is stable in both directions: items at the same height keep
    their input order.
    """
    if direction is SortDirection.TOP_TO_BOTTOM:
        return sorted(items, key=_screen_depth)
    return sorted(items, key=lambda item: -_screen_depth(item))


def sort_top_to_bottom(items: Sequence[T]) -> List[T]:
    return sort_snippets(items, SortDirection.TOP_TO_BOTTOM)


def top_snippets(items: Sequence[T], count: int = 3) -> List[T]:
    return sort_snippets(items, SortDirection.TOP_TO_BOTTOM)[:max(0, count)]


def bottom_snippets(items: Sequence[T], count: int = 3) -> List[T]:
    return sort_snippets(items, SortDirection.BOTTOM_TO_TOP)[:max(0, count)]
