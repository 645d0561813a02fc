"""
Unit tests for chronological ranking of screenshots.
"""
import pytest

from conftest import make_page
from services.chronological_ranker import compute_ranks, precedes, rank_screenshots
from services.overlap_detector import detect_overlaps
from services.screenshot_summarizer import empty_summary, summarize

pytestmark = pytest.mark.unit


def _summary(page_index, lines):
    return summarize(page_index, make_page(lines, page_index=page_index))


def _order(summaries):
    return [s.page_index for s in rank_screenshots(detect_overlaps(summaries))]


def test_precedes_by_shared_content():
    a = _summary(0, ["Are we still on?", "yes", "great", "where", "see you then"])
    b = _summary(1, ["See you then!", "Running late", "Parking outside", "Found a table"])
    assert precedes(a, b)


def test_precedes_timestamps_decide_when_both_present():
    early = _summary(1, ["9:00 AM", "Morning"])
    late = _summary(0, ["11:00 AM", "Lunch plans"])
    assert precedes(early, late)
    assert not precedes(late, early)


def test_precedes_falls_back_to_capture_order():
    a = _summary(0, ["Lunch?"])
    b = _summary(1, ["Movie tonight"])
    assert precedes(a, b)
    assert not precedes(b, a)


def test_overlapping_pages_keep_capture_order():
    a = _summary(0, ["Are we still on?", "yes", "great", "where", "see you then"])
    b = _summary(1, ["See you then!", "Running late", "Parking outside", "Found a table"])
    assert _order([a, b]) == [0, 1]


def test_timestamps_reorder_screenshots_captured_out_of_order():
    late = _summary(0, ["10:30 AM", "Running late", "Parking outside"])
    early = _summary(1, ["10:00 AM", "Are we still on?", "yes"])
    assert _order([late, early]) == [1, 0]


def test_three_pages_by_timestamp():
    pages = [
        _summary(0, ["2:00 PM", "afternoon"]),
        _summary(1, ["9:00 AM", "morning"]),
        _summary(2, ["11:00 AM", "midday"]),
    ]
    assert _order(pages) == [1, 2, 0]


def test_ties_preserve_capture_order():
    blanks = [empty_summary(i) for i in range(3)]
    assert compute_ranks(blanks) == [0, 0, 0]
    assert _order(blanks) == [0, 1, 2]


def test_compute_ranks_is_pure():
    summaries = detect_overlaps([
        _summary(0, ["11:00 AM", "Lunch plans"]),
        _summary(1, ["9:00 AM", "Morning"]),
    ])
    ranks = compute_ranks(summaries)
    assert ranks[1] < ranks[0]
    assert [s.rank for s in summaries] == [0, 0]


def test_rank_screenshots_carries_rank():
    ordered = rank_screenshots(detect_overlaps([
        _summary(0, ["11:00 AM", "Lunch plans"]),
        _summary(1, ["9:00 AM", "Morning"]),
    ]))
    assert [s.page_index for s in ordered] == [1, 0]
    assert ordered[0].rank < ordered[1].rank
