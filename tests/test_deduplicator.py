import pytest

from models.data_models import BoundingBox, Message
from services.deduplicator import dedupe

pytestmark = pytest.mark.unit


def _mk_msg(text, index, page=0, from_user=False):
    return Message(
        id=f"m{index}",
        text=text,
        is_from_user=from_user,
        source_page_index=page,
        source_bounding_box=BoundingBox(0.1, 0.5, 0.2, 0.05),
        chronological_index=index,
    )


def test_keeps_first_occurrence_in_order():
    msgs = [_mk_msg("Hey", 0), _mk_msg("How are you", 1), _mk_msg("How are you", 2, page=1), _mk_msg("Good", 3, page=1)]
    out = dedupe(msgs)
    assert [m.text for m in out] == ["Hey", "How are you", "Good"]
    assert out[1].source_page_index == 0
    assert out[1].id == "m1"


def test_key_ignores_case_and_outer_whitespace():
    out = dedupe([_mk_msg("Hello", 0), _mk_msg("  hello ", 1), _mk_msg("HELLO", 2)])
    assert len(out) == 1


def test_empty_text_is_dropped():
    out = dedupe([_mk_msg("", 0), _mk_msg("   ", 1), _mk_msg("hi", 2)])
    assert [m.text for m in out] == ["hi"]


def test_indices_are_renumbered_densely():
    out = dedupe([_mk_msg("a", 0), _mk_msg("a", 1), _mk_msg("b", 2), _mk_msg("", 3), _mk_msg("c", 4)])
    assert [m.chronological_index for m in out] == [0, 1, 2]


def test_inputs_are_not_mutated():
    msgs = [_mk_msg("a", 0), _mk_msg("a", 1), _mk_msg("b", 2)]
    dedupe(msgs)
    assert [m.chronological_index for m in msgs] == [0, 1, 2]


def test_empty_input():
    assert dedupe([]) == []
