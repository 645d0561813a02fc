"""
Sender classification for chat bubbles.

Bubbles are bucketed by the horizontal center of their bounding box: the
other party's bubbles hug the left edge, the user's hug the right edge.
Center-aligned text falls back to a first-person wording heuristic, which
can misclassify ambiguous system lines.
"""
import logging
from typing import Iterable, List

from models.data_models import BoundingBox, BubblePosition, ClassifiedBubble, Snippet
from services import text_normalizer

logger = logging.getLogger(__name__)

LEFT_THRESHOLD = 0.35
RIGHT_THRESHOLD = 0.65
MIN_SYSTEM_TEXT_LENGTH = 3

FIRST_PERSON_INDICATORS = ("i ", "i'm ", "i'll ", "i've ", "i'd ", "me ", "my ", "mine ", "myself ")


def bubble_position(
    box: BoundingBox,
    left_threshold: float = LEFT_THRESHOLD,
    right_threshold: float = RIGHT_THRESHOLD,
) -> BubblePosition:
    mid_x = box.mid_x
    if mid_x < left_threshold:
        return BubblePosition.LEFT
    if mid_x > right_threshold:
        return BubblePosition.RIGHT
    return BubblePosition.CENTER


def looks_first_person(text: str) -> bool:
    lowered = (text or "").lower()
    return any(indicator in lowered for indicator in FIRST_PERSON_INDICATORS)


def is_from_user(position: BubblePosition, cleaned_text: str) -> bool:
    if position is BubblePosition.RIGHT:
        return True
    if position is BubblePosition.LEFT:
        return False
    return looks_first_person(cleaned_text)


def classify_bubbles(
    snippets: Iterable[Snippet],
    left_threshold: float = LEFT_THRESHOLD,
    right_threshold: float = RIGHT_THRESHOLD,
    min_system_text_length: int = MIN_SYSTEM_TEXT_LENGTH,
) -> List[ClassifiedBubble]:
    """Clean and classify snippets, dropping empty and short chrome-only lines.

    函数级注释：
    - 清洗后文本为空的片段直接丢弃；
    - 被判定为系统消息且清洗后少于 min_system_text_length 个字符的片段视为残留的界面元素，丢弃；
    - 输出顺序与输入一致，页内排序由 page_orderer 负责。
    """
    bubbles: List[ClassifiedBubble] = []
    for snippet in snippets:
        cleaned, metadata = text_normalizer.clean(snippet.text)
        if not cleaned:
            continue
        if metadata.is_system_message and len(cleaned) < min_system_text_length:
            logger.debug(f"Dropping short system snippet on page {snippet.page_index}: {snippet.text!r}")
            continue

        position = bubble_position(snippet.bounding_box, left_threshold, right_threshold)
        bubbles.append(
            ClassifiedBubble(
                text=cleaned,
                bounding_box=snippet.bounding_box,
                page_index=snippet.page_index,
                position=position,
                is_from_user=is_from_user(position, cleaned),
                metadata=metadata,
            )
        )
    return bubbles
