"""
Chronological ranking of screenshots.

Each ordered pair of screenshots casts "i precedes j" votes: a vote moves
``i`` one step earlier and ``j`` one step later. Ranks are computed as a
fresh list from immutable summaries; sorting is stable so capture order
decides ties.
"""
import logging
from dataclasses import replace
from typing import List

from models.data_models import ScreenshotSummary
from services.overlap_detector import any_text_match, timestamps_precede

logger = logging.getLogger(__name__)


def precedes(a: ScreenshotSummary, b: ScreenshotSummary) -> bool:
    """Decide whether screenshot ``a`` comes before ``b``.

    Timestamps win when both are present; otherwise the tail of ``a``
    reappearing at the head of ``b`` says so; capture order is the last
    resort.
    """
    if a.latest_timestamp is not None and b.earliest_timestamp is not None:
        return timestamps_precede(a, b)
    if any_text_match(a.bottom_snippets, b.top_snippets):
        return True
    return a.page_index < b.page_index


def compute_ranks(summaries: List[ScreenshotSummary]) -> List[int]:
    """Return one rank per summary, in input order. Lower means earlier."""
    ranks = [0] * len(summaries)
    position = {s.page_index: idx for idx, s in enumerate(summaries)}

    # 第一轮：时间戳投票
    for i, a in enumerate(summaries):
        for j, b in enumerate(summaries):
            if i != j and timestamps_precede(a, b):
                ranks[i] -= 1
                ranks[j] += 1

    # 第二轮：重叠关系投票
    for i, a in enumerate(summaries):
        for page_index in sorted(a.overlaps_with):
            j = position.get(page_index)
            if j is None or j == i:
                continue
            if precedes(a, summaries[j]):
                ranks[i] -= 1
                ranks[j] += 1

    return ranks


def rank_screenshots(summaries: List[ScreenshotSummary]) -> List[ScreenshotSummary]:
    """Return new summaries carrying their rank, sorted by ascending rank."""
    ranks = compute_ranks(summaries)
    ranked = [replace(s, rank=r) for s, r in zip(summaries, ranks)]
    ordered = sorted(ranked, key=lambda s: s.rank)
    logger.debug("Screenshot order: %s", [(s.page_index, s.rank) for s in ordered])
    return ordered
