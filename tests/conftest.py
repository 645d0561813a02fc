"""
Pytest configuration and shared fixtures for ChatStitcher tests.
"""
import logging
import os
import sys
from dataclasses import replace
from logging.handlers import RotatingFileHandler

import pytest

"""
将项目根目录加入 Python 导入路径，确保在以 tests 目录为起点执行时，
可以正常导入位于项目根目录下的内部模块（如 services/*）。
"""
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from models.data_models import BoundingBox, Snippet


def make_snippet(text, mid_x=0.2, y=0.5, page_index=0, width=0.2, height=0.03, confidence=0.9):
    """Build a snippet whose box is centered horizontally on ``mid_x``."""
    return Snippet(
        text=text,
        bounding_box=BoundingBox(x=mid_x - width / 2.0, y=y, width=width, height=height),
        confidence=confidence,
        page_index=page_index,
    )


def make_page(lines, page_index=0, top=0.9, step=0.1):
    """Lay ``lines`` out top to bottom.

    Each line is either a text (left aligned) or a ``(text, mid_x)`` pair.
    """
    snippets = []
    for i, line in enumerate(lines):
        text, mid_x = (line, 0.2) if isinstance(line, str) else line
        snippets.append(make_snippet(text, mid_x=mid_x, y=top - i * step, page_index=page_index))
    return snippets


class FakeOCR:
    """OCR collaborator that replays scripted pages.

    The "image" handed to ``recognize`` is the script itself: a list of
    snippets to return, or an exception instance to raise.
    """

    def __init__(self):
        self.calls = []

    def recognize(self, image, page_index):
        self.calls.append(page_index)
        if isinstance(image, BaseException):
            raise image
        return [replace(s, page_index=page_index) for s in image]


@pytest.fixture
def fake_ocr():
    return FakeOCR()


@pytest.fixture
def restore_root_logging():
    """LoggingManager.setup installs root handlers; remove and close them afterwards."""
    root = logging.getLogger()
    before = root.handlers[:]
    level = root.level
    yield root
    for h in root.handlers[:]:
        # pytest 的日志捕获 handler 均为子类，这里只清理 LoggingManager 创建的两类
        if h not in before and type(h) in (logging.StreamHandler, RotatingFileHandler):
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
