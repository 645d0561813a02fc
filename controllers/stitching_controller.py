"""
Stitching controller: fans screenshots out to the OCR collaborator, joins on
completion, and runs the single-threaded ordering pipeline on the results.
"""
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from models.config import StitchConfig
from models.data_models import Message, PageFailure, ScreenshotSummary, Snippet, StitchReport
from services.bubble_classifier import classify_bubbles
from services.chronological_ranker import rank_screenshots
from services.deduplicator import dedupe
from services.ocr_processor import OCRProcessor, RecognitionTimeout
from services.overlap_detector import detect_overlaps
from services.page_orderer import sort_top_to_bottom
from services.screenshot_summarizer import summarize_pages
from ui.progress import ProgressReporter


class StitchingController:
    """Coordinates OCR fan-out and the stitching pipeline.

    ``ocr`` is any object exposing ``recognize(image, page_index)`` that
    returns a list of Snippets and raises on failure.
    """

    def __init__(
        self,
        ocr=None,
        config: Optional[StitchConfig] = None,
        reporter: Optional[ProgressReporter] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.config = config or StitchConfig()
        self.ocr = ocr if ocr is not None else OCRProcessor()
        self.reporter = reporter

    def stitch(self, images: Sequence) -> List[Message]:
        """Return the ordered, de-duplicated transcript for ``images``.

        Raises the error of the lowest failing page when no page could be
        recognized at all.
        """
        return self.stitch_with_report(images).messages

    def stitch_with_report(self, images: Sequence) -> StitchReport:
        """Like stitch(), but also reports dropped pages and the page order."""
        images = list(images)
        if not images:
            self.logger.info("没有输入截图，返回空会话。")
            return StitchReport()

        if self.reporter is not None:
            self.reporter.start(len(images))

        pages, failures = self._recognize_all(images)

        if not pages and failures:
            first = failures[0]
            self.logger.error(f"全部 {len(images)} 张截图识别失败，首个错误（页面 {first.page_index}）：{first.reason}")
            if self.reporter is not None:
                self.reporter.finish(success=False)
            raise first.error

        for failure in failures:
            self.logger.warning(f"页面 {failure.page_index} 识别失败，已从本次拼接中移除：{failure.reason}")

        summaries = summarize_pages(pages, len(images), self.config.edge_snippet_count)
        summaries = detect_overlaps(summaries)
        ordered = rank_screenshots(summaries)
        messages = dedupe(self._sequence_messages(pages, ordered))

        self.logger.info(
            f"拼接完成：{len(images)} 张截图，{len(failures)} 张失败，输出 {len(messages)} 条消息，"
            f"页面顺序 {[s.page_index for s in ordered]}"
        )
        if self.reporter is not None:
            self.reporter.update(messages_parsed_delta=len(messages), status="拼接完成")
            self.reporter.finish(success=True)

        return StitchReport(
            messages=messages,
            failed_pages=failures,
            page_order=[s.page_index for s in ordered],
        )

    def _recognize_page(self, image, page_index: int) -> List[Snippet]:
        started = time.monotonic()
        snippets = self.ocr.recognize(image, page_index)
        elapsed = time.monotonic() - started
        timeout = self.config.page_timeout_seconds
        if timeout and elapsed > timeout:
            raise RecognitionTimeout(
                f"Page {page_index}: recognition took {elapsed:.2f}s (limit {timeout:.2f}s)", page_index
            )
        # 统一页码，避免识别器返回的 page_index 与输入位置不一致
        return [s if s.page_index == page_index else replace(s, page_index=page_index) for s in (snippets or [])]

    def _recognize_all(self, images: List) -> Tuple[Dict[int, List[Snippet]], List[PageFailure]]:
        """Fan out one OCR task per image and wait for every one of them.

        函数级注释：
        - 每张截图一个任务、一个工作线程，page_index 即输入位置，任务之间互不阻塞；
        - max_workers 为正数时才限制线程数（显式选择），此时排队的页面也计入 deadline；
        - 汇合点之前不做任何排序决策，结果按 page_index 收集，与完成顺序无关；
        - deadline_seconds 为整体截止时间，到期未完成的页面记为超时失败并尝试取消；
        - 线程池关闭时不等待仍在运行的识别任务，避免被卡死的 OCR 调用阻塞调用方。
        """
        pages: Dict[int, List[Snippet]] = {}
        failures: List[PageFailure] = []
        deadline = self.config.deadline_seconds or None
        workers = len(images)
        if self.config.max_workers > 0:
            workers = min(self.config.max_workers, workers)

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ocr-page")
        try:
            futures = {
                executor.submit(self._recognize_page, image, page_index): page_index
                for page_index, image in enumerate(images)
            }
            try:
                for future in as_completed(futures, timeout=deadline):
                    page_index = futures[future]
                    try:
                        pages[page_index] = future.result()
                    except Exception as e:
                        failures.append(PageFailure(page_index=page_index, error=e))
                        self._report_page(failed=True, error=f"page {page_index}: {e}")
                    else:
                        self.logger.debug(f"页面 {page_index} 识别完成，片段数：{len(pages[page_index])}")
                        self._report_page(failed=False)
            except FuturesTimeoutError:
                for future, page_index in futures.items():
                    if future.done():
                        continue
                    future.cancel()
                    error = RecognitionTimeout(f"Page {page_index}: not recognized within {deadline:.2f}s", page_index)
                    failures.append(PageFailure(page_index=page_index, error=error))
                    self._report_page(failed=True, error=str(error))
                # 截止时刻已完成但尚未被迭代到的页面仍然有效
                for future, page_index in futures.items():
                    if not future.done() or future.cancelled() or page_index in pages:
                        continue
                    if any(f.page_index == page_index for f in failures):
                        continue
                    try:
                        pages[page_index] = future.result()
                        self._report_page(failed=False)
                    except Exception as e:
                        failures.append(PageFailure(page_index=page_index, error=e))
                        self._report_page(failed=True, error=f"page {page_index}: {e}")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        failures.sort(key=lambda f: f.page_index)
        return pages, failures

    def _report_page(self, failed: bool, error: Optional[str] = None) -> None:
        if self.reporter is None:
            return
        if failed:
            self.reporter.update(pages_failed_delta=1, error=error)
        else:
            self.reporter.update(pages_done_delta=1)

    def _sequence_messages(self, pages: Dict[int, List[Snippet]], ordered: List[ScreenshotSummary]) -> List[Message]:
        """Classify and order each page in ranked order, numbering messages run-wide."""
        messages: List[Message] = []
        index = 0
        for summary in ordered:
            snippets = pages.get(summary.page_index)
            if not snippets:
                continue
            bubbles = classify_bubbles(
                snippets,
                left_threshold=self.config.left_threshold,
                right_threshold=self.config.right_threshold,
                min_system_text_length=self.config.min_system_text_length,
            )
            for bubble in sort_top_to_bottom(bubbles):
                messages.append(
                    Message(
                        id=uuid.uuid4().hex,
                        text=bubble.text,
                        is_from_user=bubble.is_from_user,
                        source_page_index=bubble.page_index,
                        source_bounding_box=bubble.bounding_box,
                        chronological_index=index,
                        metadata=bubble.metadata,
                    )
                )
                index += 1
        return messages
