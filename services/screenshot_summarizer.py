"""
Per-screenshot summaries used as overlap fingerprints.
"""
from typing import Dict, List, Sequence

from models.data_models import ScreenshotSummary, Snippet
from services import text_normalizer
from services.page_orderer import bottom_snippets, top_snippets

EDGE_SNIPPET_COUNT = 3


def summarize(page_index: int, snippets: Sequence[Snippet], edge_count: int = EDGE_SNIPPET_COUNT) -> ScreenshotSummary:
    """Summarize one screenshot.

    Timestamps come from running the normalizer on every snippet; the
    earliest and latest parsed values bound the page. Pages without a
    parseable timestamp get None for both.
    """
    timestamps = []
    for snippet in snippets:
        _, metadata = text_normalizer.clean(snippet.text)
        if metadata.timestamp is not None:
            timestamps.append(metadata.timestamp)

    return ScreenshotSummary(
        page_index=page_index,
        earliest_timestamp=min(timestamps) if timestamps else None,
        latest_timestamp=max(timestamps) if timestamps else None,
        top_snippets=tuple(top_snippets(snippets, edge_count)),
        bottom_snippets=tuple(bottom_snippets(snippets, edge_count)),
    )


def empty_summary(page_index: int) -> ScreenshotSummary:
    """Placeholder for a page that failed or produced no snippets."""
    return ScreenshotSummary(page_index=page_index)


def summarize_pages(
    pages: Dict[int, Sequence[Snippet]],
    page_count: int,
    edge_count: int = EDGE_SNIPPET_COUNT,
) -> List[ScreenshotSummary]:
    """One summary per index in ``0..page_count-1``, keeping positional gaps."""
    summaries: List[ScreenshotSummary] = []
    for page_index in range(page_count):
        snippets = pages.get(page_index)
        if snippets:
            summaries.append(summarize(page_index, snippets, edge_count))
        else:
            summaries.append(empty_summary(page_index))
    return summaries
