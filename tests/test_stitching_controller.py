"""
Tests for the stitching controller: OCR fan-out, failure handling and the
end-to-end ordering pipeline, driven through scripted OCR collaborators.
"""
import threading
import time

import pytest

from conftest import FakeOCR, make_page, make_snippet
from controllers.stitching_controller import StitchingController
from models.config import StitchConfig
from services.ocr_processor import OCRProcessor, RecognitionError, RecognitionTimeout
from ui.progress import ProgressReporter

pytestmark = pytest.mark.unit


def _texts(messages):
    return [m.text for m in messages]


def test_empty_input_returns_empty_transcript(fake_ocr):
    controller = StitchingController(ocr=fake_ocr)
    assert controller.stitch([]) == []
    assert fake_ocr.calls == []


def test_default_ocr_is_paddle_adapter():
    assert isinstance(StitchingController().ocr, OCRProcessor)


def test_two_overlapping_screenshots(fake_ocr):
    page_a = make_page([("Hey", 0.2), ("How are you", 0.2)])
    page_b = make_page([("How are you", 0.2), ("I'm good thanks", 0.8)])

    messages = StitchingController(ocr=fake_ocr).stitch([page_a, page_b])

    assert _texts(messages) == ["Hey", "How are you", "I'm good thanks"]
    assert [m.sender for m in messages] == ["other", "other", "me"]
    assert [m.chronological_index for m in messages] == [0, 1, 2]
    assert [m.source_page_index for m in messages] == [0, 0, 1]
    assert len({m.id for m in messages}) == 3
    assert sorted(fake_ocr.calls) == [0, 1]


def test_messages_follow_visual_order_within_page(fake_ocr):
    page = [
        make_snippet("third", y=0.2),
        make_snippet("first", y=0.8),
        make_snippet("second", y=0.5, mid_x=0.8),
    ]
    messages = StitchingController(ocr=fake_ocr).stitch([page])
    assert _texts(messages) == ["first", "second", "third"]
    assert messages[1].is_from_user is True


def test_chrome_only_lines_do_not_become_messages(fake_ocr):
    page = make_page([("Today 9:41 AM", 0.5), "Hey", ("Delivered", 0.8)])
    messages = StitchingController(ocr=fake_ocr).stitch([page])
    assert _texts(messages) == ["Hey"]


def test_out_of_order_capture_is_reordered_by_timestamps(fake_ocr):
    late = make_page(["10:30 AM", "Running late", ("Parking outside", 0.8)])
    early = make_page(["10:00 AM", "Are we still on?", ("yes", 0.8)])

    report = StitchingController(ocr=fake_ocr).stitch_with_report([late, early])

    assert report.page_order == [1, 0]
    assert _texts(report.messages) == ["Are we still on?", "yes", "Running late", "Parking outside"]
    assert report.messages[0].metadata.timestamp is None


def test_all_pages_failing_raises_lowest_page_error(fake_ocr):
    images = [RecognitionError("page zero broke", 0), RecognitionError("page one broke", 1)]
    with pytest.raises(RecognitionError, match="page zero broke"):
        StitchingController(ocr=fake_ocr).stitch(images)


def test_partial_failure_keeps_surviving_pages(fake_ocr):
    images = [RuntimeError("unreadable"), make_page(["Hello there"])]

    report = StitchingController(ocr=fake_ocr).stitch_with_report(images)

    assert _texts(report.messages) == ["Hello there"]
    assert report.is_partial
    assert [f.page_index for f in report.failed_pages] == [0]
    assert report.failed_pages[0].reason == "unreadable"


def test_page_with_no_text_still_counts_as_success(fake_ocr):
    report = StitchingController(ocr=fake_ocr).stitch_with_report([[], RuntimeError("boom")])
    assert report.messages == []
    assert [f.page_index for f in report.failed_pages] == [1]


def test_page_index_is_restamped_from_input_position():
    class WrongIndexOCR:
        def recognize(self, image, page_index):
            return [make_snippet("Hi", page_index=99)]

    messages = StitchingController(ocr=WrongIndexOCR()).stitch(["img"])
    assert messages[0].source_page_index == 0


def test_pages_are_recognized_concurrently():
    barrier = threading.Barrier(2, timeout=5)

    class RendezvousOCR(FakeOCR):
        def recognize(self, image, page_index):
            barrier.wait()
            return super().recognize(image, page_index)

    config = StitchConfig(max_workers=2)
    messages = StitchingController(ocr=RendezvousOCR(), config=config).stitch(
        [make_page(["Hey"]), make_page(["Bye"])]
    )
    assert _texts(messages) == ["Hey", "Bye"]


def test_every_page_gets_its_own_worker_by_default():
    pages = [make_page([f"Line {i}"]) for i in range(6)]
    barrier = threading.Barrier(len(pages), timeout=5)

    class RendezvousOCR(FakeOCR):
        def recognize(self, image, page_index):
            barrier.wait()
            return super().recognize(image, page_index)

    messages = StitchingController(ocr=RendezvousOCR()).stitch(pages)
    assert _texts(messages) == [f"Line {i}" for i in range(6)]


def test_deadline_is_not_spent_queueing_behind_other_pages():
    class SlowOCR(FakeOCR):
        def recognize(self, image, page_index):
            time.sleep(0.3)
            return super().recognize(image, page_index)

    pages = [make_page([f"Line {i}"]) for i in range(6)]
    report = StitchingController(ocr=SlowOCR(), config=StitchConfig(deadline_seconds=0.5)).stitch_with_report(pages)

    assert report.failed_pages == []
    assert len(report.messages) == 6


def test_explicit_worker_cap_limits_parallel_calls():
    lock = threading.Lock()
    in_flight = [0]
    peak = [0]

    class CountingOCR(FakeOCR):
        def recognize(self, image, page_index):
            with lock:
                in_flight[0] += 1
                peak[0] = max(peak[0], in_flight[0])
            time.sleep(0.02)
            with lock:
                in_flight[0] -= 1
            return super().recognize(image, page_index)

    pages = [make_page([f"Line {i}"]) for i in range(5)]
    messages = StitchingController(ocr=CountingOCR(), config=StitchConfig(max_workers=1)).stitch(pages)

    assert len(messages) == 5
    assert peak[0] == 1


def test_deadline_drops_pages_still_running():
    release = threading.Event()

    class StuckOCR(FakeOCR):
        def recognize(self, image, page_index):
            if page_index == 1:
                release.wait(5)
            return super().recognize(image, page_index)

    config = StitchConfig(max_workers=2, deadline_seconds=0.2)
    controller = StitchingController(ocr=StuckOCR(), config=config)
    try:
        report = controller.stitch_with_report([make_page(["Hey"]), make_page(["Bye"])])
    finally:
        release.set()

    assert _texts(report.messages) == ["Hey"]
    assert [f.page_index for f in report.failed_pages] == [1]
    assert isinstance(report.failed_pages[0].error, RecognitionTimeout)


def test_slow_pages_exceed_page_timeout():
    class SlowOCR(FakeOCR):
        def recognize(self, image, page_index):
            time.sleep(0.05)
            return super().recognize(image, page_index)

    config = StitchConfig(page_timeout_seconds=0.01)
    with pytest.raises(RecognitionTimeout):
        StitchingController(ocr=SlowOCR(), config=config).stitch([make_page(["Hey"])])


def test_progress_reporter_tracks_pages(fake_ocr):
    reporter = ProgressReporter()
    controller = StitchingController(ocr=fake_ocr, reporter=reporter)

    controller.stitch([make_page(["Hey"]), RuntimeError("boom"), make_page(["Bye"])])

    state = reporter.state
    assert state.pages_total == 3
    assert state.pages_done == 2
    assert state.pages_failed == 1
    assert state.messages_parsed == 2
    assert state.status == "success"
    assert reporter.fraction_done == 1.0


def test_progress_reporter_marks_failed_run(fake_ocr):
    reporter = ProgressReporter()
    with pytest.raises(RuntimeError):
        StitchingController(ocr=fake_ocr, reporter=reporter).stitch([RuntimeError("boom")])
    assert reporter.state.status == "failed"
    assert reporter.state.last_error == "page 0: boom"
