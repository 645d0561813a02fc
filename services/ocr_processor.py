"""
OCR processing module for ChatStitcher.
Wraps PaddleOCR as the text-recognition collaborator of the stitching
pipeline: one screenshot in, a list of normalized Snippets out.
"""
import inspect
import logging
import os
import threading
from typing import List, Optional, Tuple

import cv2
import numpy as np
from PIL import Image

# 模块级占位符：PaddleOCR
# - 单元测试通过 patch('services.ocr_processor.PaddleOCR') 注入替身；
# - 运行时采用延迟导入，避免在模块导入阶段加载推理框架。
PaddleOCR = None

# Fix for OpenMP runtime conflict on macOS (common in PaddleOCR/PyTorch)
os.environ.setdefault("KMP_DUPLICATE_LIB_OK", "TRUE")

from models.config import OCRConfig
from models.data_models import BoundingBox, Snippet


class RecognitionError(RuntimeError):
    """Raised when a screenshot cannot be recognized."""

    def __init__(self, message: str, page_index: Optional[int] = None):
        super().__init__(message)
        self.page_index = page_index


class RecognitionTimeout(RecognitionError):
    """Raised when recognition of a screenshot exceeds its time limit."""


class OCRProcessor:
    """
    OCR processor using PaddleOCR engine for text recognition.

    One PaddleOCR instance is not safe to call from several threads at once.
    By default the processor owns a single engine and concurrent page tasks
    take turns on it, so inference runs serially even though the pages are
    fanned out in parallel. With ``OCRConfig.engine_per_thread`` every worker
    thread lazily builds its own engine and inference runs in parallel.
    """

    def __init__(self, config: Optional[OCRConfig] = None):
        """
        Initialize OCR processor.

        Args:
            config: OCR configuration. If None, uses default settings.
        """
        self.config = config or OCRConfig()
        self.ocr_engine: Optional[object] = None
        self.logger = logging.getLogger(__name__)
        # PaddleOCR 推理实例不保证线程安全：共享模式下串行化引擎调用与初始化；
        # engine_per_thread 模式下只串行化引擎构建（语言回退会改写 config.language）
        self._engine_lock = threading.Lock()
        self._local = threading.local()

    def initialize_engine(self, config: Optional[OCRConfig] = None) -> bool:
        """
        Initialize PaddleOCR engine with configuration.

        Args:
            config: OCR configuration to use. If None, uses instance config.

        Returns:
            bool: True if initialization successful, False otherwise
        """
        if config:
            self.config = config

        engine = self._create_engine()
        if engine is None:
            return False
        self.ocr_engine = engine
        return True

    def _create_engine(self) -> Optional[object]:
        """Build a PaddleOCR instance, falling back to English; None on failure."""
        requested_lang = (self.config.language or "en").strip()
        lang_attempts = [requested_lang] + ([] if requested_lang == "en" else ["en"])

        try:
            _PaddleOCR = PaddleOCR
            if _PaddleOCR is None:
                from paddleocr import PaddleOCR as _PaddleOCR
        except Exception as imp_err:
            self.logger.error(f"Failed to import PaddleOCR: {imp_err}")
            return None

        last_error: Optional[Exception] = None
        for lang in lang_attempts:
            try:
                self.logger.info(f"Initializing PaddleOCR with language: {lang}")
                kwargs = self._engine_kwargs(_PaddleOCR, lang)
                self.logger.debug(f"PaddleOCR kwargs: {sorted(kwargs)}")
                engine = _PaddleOCR(**kwargs)
                if self.config.language != lang:
                    self.logger.info(f"OCR language set to '{lang}' (was '{self.config.language}')")
                    self.config.language = lang
                self.logger.info("PaddleOCR engine initialized successfully")
                return engine
            except Exception as init_err:
                last_error = init_err
                self.logger.info(f"PaddleOCR init failed for lang='{lang}': {init_err}. Trying next fallback if available...")

        self.logger.error(f"Failed to initialize OCR engine after {len(lang_attempts)} attempts: {last_error}")
        return None

    def _engine_kwargs(self, engine_cls, lang: str) -> dict:
        """Only pass constructor arguments the installed PaddleOCR accepts.

        函数级注释：
        - 不同版本的 PaddleOCR 构造参数差异较大（use_gpu/show_log 在 3.x 中已移除）；
        - 通过签名自省仅传递显式声明的参数，lang 作为核心参数总是传递；
        - 签名无法解析时（例如测试替身）传递完整参数集合。
        """
        full_kwargs = {
            "lang": lang,
            "use_angle_cls": bool(self.config.use_angle_cls),
            "use_gpu": bool(self.config.use_gpu),
            "show_log": False,
        }
        try:
            params = inspect.signature(engine_cls.__init__).parameters
        except (TypeError, ValueError):
            return full_kwargs
        named = {name for name, p in params.items() if p.kind is not inspect.Parameter.VAR_KEYWORD}
        if named <= {"self", "args"}:
            return full_kwargs
        return {k: v for k, v in full_kwargs.items() if k == "lang" or k in named}

    def is_engine_ready(self) -> bool:
        if self.config.engine_per_thread:
            return getattr(self._local, "engine", None) is not None
        return self.ocr_engine is not None

    def _thread_engine(self, page_index: int):
        """Return the calling thread's own engine, building it on first use."""
        engine = getattr(self._local, "engine", None)
        if engine is None:
            with self._engine_lock:
                engine = self._create_engine()
            if engine is None:
                raise RecognitionError(f"Page {page_index}: OCR engine could not be initialized", page_index)
            self._local.engine = engine
        return engine

    def recognize(self, image, page_index: int) -> List[Snippet]:
        """Recognize one screenshot.

        Args:
            image: PIL Image or numpy array (H x W [x C])
            page_index: Position of the screenshot in the input list

        Returns:
            List[Snippet]: Recognized lines with normalized bottom-left-origin boxes

        Raises:
            RecognitionError: If the engine is unavailable or inference fails
        """
        image_array = self._to_rgb_array(image, page_index)
        height, width = image_array.shape[:2]
        if width == 0 or height == 0:
            raise RecognitionError(f"Page {page_index}: image has no pixels", page_index)

        if self.config.engine_per_thread:
            raw = self._run_engine(self._thread_engine(page_index), image_array, page_index)
        else:
            with self._engine_lock:
                if not self.is_engine_ready() and not self.initialize_engine():
                    raise RecognitionError(f"Page {page_index}: OCR engine could not be initialized", page_index)
                raw = self._run_engine(self.ocr_engine, image_array, page_index)

        lines = self._normalize_ocr_output(raw)
        snippets = self._build_snippets(lines, page_index, width, height)
        self.logger.debug(f"Page {page_index}: recognized {len(snippets)} snippets")
        return snippets

    def _run_engine(self, engine, image_array: np.ndarray, page_index: int):
        try:
            return self._safe_ocr_call(image_array, engine)
        except Exception as e:
            raise RecognitionError(f"Page {page_index}: OCR failed: {e}", page_index) from e

    def _to_rgb_array(self, image, page_index: int) -> np.ndarray:
        """Convert PIL/numpy input to a 3-channel uint8 RGB array."""
        if isinstance(image, Image.Image):
            if image.mode != "RGB":
                image = image.convert("RGB")
            return np.array(image)
        if isinstance(image, np.ndarray):
            arr = image
            if arr.dtype != np.uint8:
                arr = np.clip(arr, 0, 255).astype(np.uint8)
            if arr.ndim == 2:
                return cv2.cvtColor(arr, cv2.COLOR_GRAY2RGB)
            if arr.ndim == 3 and arr.shape[2] == 4:
                return cv2.cvtColor(arr, cv2.COLOR_RGBA2RGB)
            if arr.ndim == 3 and arr.shape[2] == 3:
                return arr
        raise RecognitionError(f"Page {page_index}: unsupported image input {type(image).__name__}", page_index)

    def _safe_ocr_call(self, img_input, engine=None):
        """
        安全调用 PaddleOCR，不同版本兼容策略：
        1) 优先尝试 engine.ocr(img, cls=...)（2.x 接口）；
        2) 若签名不接受 cls，则回退为 engine.ocr(img)；
        3) 若 ocr 不可用或仍失败，再回退为 engine.predict(img)（3.x 接口）。
        """
        if engine is None:
            engine = self.ocr_engine
        ocr = getattr(engine, "ocr", None)
        first_error: Optional[Exception] = None
        if ocr is not None:
            try:
                return ocr(img_input, cls=bool(self.config.use_angle_cls))
            except TypeError:
                try:
                    return ocr(img_input)
                except Exception as e:
                    first_error = e
            except Exception as e:
                first_error = e

        pred = getattr(engine, "predict", None)
        if pred is not None:
            self.logger.debug("OCR: using engine.predict() as fallback")
            return pred(img_input)
        raise RuntimeError(f"OCR invocation failed via both ocr() and predict(): {first_error}")

    def _normalize_ocr_output(self, ocr_results) -> list:
        """
        统一标准化 PaddleOCR 的原始输出为 [bbox, [text, confidence]] 行列表。

        说明：
        - 支持字典/对象格式（rec_texts/rec_scores/rec_polys 或 rec_boxes，3.x 的 predict 输出）；
        - 支持列表格式（2.x 的 ocr 输出：外层按图片包裹一层行列表）；
        - 无法识别的结构返回空列表。
        """
        if not ocr_results:
            return []

        if isinstance(ocr_results, dict) or hasattr(ocr_results, "rec_texts"):
            return self._lines_from_result(ocr_results)

        if not isinstance(ocr_results, (list, tuple)):
            return []

        candidate = ocr_results[0]
        if isinstance(candidate, dict) or hasattr(candidate, "rec_texts"):
            lines: list = []
            for item in ocr_results:
                lines.extend(self._lines_from_result(item))
            return lines
        if candidate is None:
            return []
        # 2.x: [[ [poly, (text, score)], ... ]]
        if isinstance(candidate, (list, tuple)) and candidate and self._is_line(candidate[0]):
            return list(candidate)
        if self._is_line(candidate):
            return list(ocr_results)
        return []

    @staticmethod
    def _is_line(obj) -> bool:
        return (
            isinstance(obj, (list, tuple))
            and len(obj) >= 2
            and isinstance(obj[1], (list, tuple))
            and len(obj[1]) >= 2
            and isinstance(obj[1][0], str)
        )

    @staticmethod
    def _lines_from_result(result) -> list:
        def _get(key):
            if isinstance(result, dict):
                return result.get(key)
            return getattr(result, key, None)

        texts = _get("rec_texts") or []
        scores = _get("rec_scores")
        if scores is None:
            scores = []
        bboxes = _get("rec_polys")
        if bboxes is None:
            bboxes = _get("rec_boxes")
        if bboxes is None:
            bboxes = []
        lines = []
        for i, (text, score) in enumerate(zip(texts, scores)):
            if text and score is not None:
                bbox = bboxes[i] if i < len(bboxes) else None
                lines.append([bbox, [text, float(score)]])
        return lines

    @staticmethod
    def _pixel_extent(bbox) -> Optional[Tuple[float, float, float, float]]:
        """Return (min_x, min_y, max_x, max_y) in pixels from a polygon or xyxy box."""
        if bbox is None:
            return None
        arr = np.asarray(bbox, dtype=float)
        if arr.ndim == 2 and arr.shape[1] >= 2 and arr.shape[0] >= 1:
            xs, ys = arr[:, 0], arr[:, 1]
            return float(xs.min()), float(ys.min()), float(xs.max()), float(ys.max())
        if arr.ndim == 1 and arr.shape[0] == 4:
            x1, y1, x2, y2 = arr.tolist()
            return min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2)
        return None

    def _build_snippets(self, lines: list, page_index: int, width: int, height: int) -> List[Snippet]:
        """
        根据标准行列表构建 Snippet 列表，并执行置信度过滤与坐标归一化。

        说明：
        - PaddleOCR 的像素坐标原点在左上角，这里换算为 [0,1] 区间、原点在左下角的归一化矩形；
        - 自动跳过低置信度条目（受 config.confidence_threshold 控制）与空白文本；
        - 没有边界框的条目无法参与排序与左右判定，直接跳过。
        """
        snippets: List[Snippet] = []
        for line in lines:
            try:
                bbox, (text, confidence) = line[0], line[1][:2]
            except (TypeError, ValueError, IndexError):
                continue
            text = str(text or "").strip()
            confidence = float(confidence or 0.0)
            if not text:
                continue
            if confidence < self.config.confidence_threshold:
                continue
            try:
                extent = self._pixel_extent(bbox)
            except (TypeError, ValueError):
                extent = None
            if extent is None:
                self.logger.debug(f"Page {page_index}: skipping line without bounding box: {text!r}")
                continue

            min_x, min_y, max_x, max_y = extent
            left = _clamp(min_x / width)
            right = _clamp(max_x / width)
            top = _clamp(min_y / height)
            bottom = _clamp(max_y / height)
            box = BoundingBox(x=left, y=1.0 - bottom, width=right - left, height=bottom - top)
            snippets.append(Snippet(text=text, bounding_box=box, confidence=confidence, page_index=page_index))
        return snippets

    def cleanup(self) -> None:
        self.ocr_engine = None
        self._local = threading.local()


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))
