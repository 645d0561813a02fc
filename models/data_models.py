"""
Core data models for ChatStitcher.
"""
from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple


class BubblePosition(Enum):
    """Horizontal bucket of a chat bubble."""
    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"


@dataclass(frozen=True)
class BoundingBox:
    """Normalized rectangle in [0, 1] x [0, 1].

    The origin is the bottom-left corner of the screenshot, so a larger ``y``
    means the box sits higher on screen.
    """
    x: float
    y: float
    width: float
    height: float

    @property
    def mid_x(self) -> float:
        return self.x + self.width / 2.0

    @property
    def mid_y(self) -> float:
        return self.y + self.height / 2.0

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height


@dataclass(frozen=True)
class Snippet:
    """One recognized line of text on one screenshot."""
    text: str
    bounding_box: BoundingBox
    confidence: float
    page_index: int


@dataclass
class MessageMetadata:
    """Structured information pulled out of a snippet's raw text."""
    timestamp: Optional[time] = None
    # 原始时间文本：即使解析失败也保留，便于追溯
    timestamp_raw: Optional[str] = None
    is_system_message: bool = False
    artifacts_removed: List[str] = field(default_factory=list)


@dataclass
class ClassifiedBubble:
    """A snippet after cleaning and sender classification."""
    text: str
    bounding_box: BoundingBox
    page_index: int
    position: BubblePosition
    is_from_user: bool
    metadata: MessageMetadata


@dataclass(frozen=True)
class ScreenshotSummary:
    """Per-screenshot fingerprint used for overlap detection and ranking."""
    page_index: int
    earliest_timestamp: Optional[time] = None
    latest_timestamp: Optional[time] = None
    top_snippets: Tuple[Snippet, ...] = ()
    bottom_snippets: Tuple[Snippet, ...] = ()
    overlaps_with: FrozenSet[int] = frozenset()
    rank: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.top_snippets and not self.bottom_snippets


@dataclass
class Message:
    """Final transcript unit."""
    id: str
    text: str
    is_from_user: bool
    source_page_index: int
    source_bounding_box: BoundingBox
    chronological_index: int
    metadata: MessageMetadata = field(default_factory=MessageMetadata)

    @property
    def sender(self) -> str:
        return "me" if self.is_from_user else "other"


@dataclass
class PageFailure:
    """A screenshot the OCR collaborator could not read."""
    page_index: int
    error: BaseException

    @property
    def reason(self) -> str:
        return str(self.error) or self.error.__class__.__name__


@dataclass
class StitchReport:
    """Result of a stitching run, including pages that were dropped."""
    messages: List[Message] = field(default_factory=list)
    failed_pages: List[PageFailure] = field(default_factory=list)
    # 截图的最终时间顺序（按 page_index 表示）
    page_order: List[int] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.failed_pages)
