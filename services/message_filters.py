"""
Utilities to filter stitched Message objects by sender, page, content and kind.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from models.data_models import Message


def filter_messages(
    messages: Iterable[Message],
    from_user: Optional[bool] = None,
    contains: Optional[str] = None,
    pages: Optional[Sequence[int]] = None,
    exclude_system: bool = False,
) -> List[Message]:
    """Filter messages by criteria.

    - from_user: True keeps the user's messages, False the other party's
    - contains: case-insensitive substring match in Message.text
    - pages: allowed source page indices
    - exclude_system: drop messages whose metadata marks them as app chrome

    Order and chronological indices are left untouched.
    """
    contains_q = contains.lower() if contains else None
    page_set = set(pages) if pages is not None else None

    out: List[Message] = []
    for m in messages:
        if from_user is not None and m.is_from_user != from_user:
            continue
        if contains_q and (m.text or "").lower().find(contains_q) == -1:
            continue
        if page_set is not None and m.source_page_index not in page_set:
            continue
        if exclude_system and m.metadata.is_system_message:
            continue
        out.append(m)
    return out
