"""
Pairwise overlap detection between screenshot summaries.

Two screenshots "overlap" when their edges share content (the tail of one
reappears at the head of the other) or when their timestamps place one
strictly before the other. The content test is the permissive
containment match from the normalizer, so short common phrases such as
"ok" can produce false positives.
"""
from dataclasses import replace
from typing import Iterable, List

from models.data_models import ScreenshotSummary, Snippet
from services.text_normalizer import texts_match


def any_text_match(first: Iterable[Snippet], second: Iterable[Snippet]) -> bool:
    second = list(second)
    return any(texts_match(a.text, b.text) for a in first for b in second)


def timestamps_precede(a: ScreenshotSummary, b: ScreenshotSummary) -> bool:
    """True when ``a`` ends strictly before ``b`` starts."""
    if a.latest_timestamp is None or b.earliest_timestamp is None:
        return False
    return a.latest_timestamp < b.earliest_timestamp


def overlaps(a: ScreenshotSummary, b: ScreenshotSummary) -> bool:
    if timestamps_precede(a, b):
        return True
    if any_text_match(a.bottom_snippets, b.top_snippets):
        return True
    return any_text_match(a.top_snippets, b.bottom_snippets)


def detect_overlaps(summaries: List[ScreenshotSummary]) -> List[ScreenshotSummary]:
    """Return new summaries whose ``overlaps_with`` lists every related page.

    ``j`` lands in ``summaries[i].overlaps_with`` for each ordered pair
    ``(i, j)`` with ``overlaps(i, j)``. Indices refer to ``page_index``.
    """
    result: List[ScreenshotSummary] = []
    for a in summaries:
        related = frozenset(
            b.page_index for b in summaries
            if b.page_index != a.page_index and overlaps(a, b)
        )
        result.append(replace(a, overlaps_with=related))
    return result
