"""
Configuration data models for ChatStitcher.
"""
from dataclasses import dataclass, field
from typing import Dict, Any, List


@dataclass
class OCRConfig:
    """OCR engine configuration."""
    language: str = "en"
    confidence_threshold: float = 0.5
    use_gpu: bool = False
    # 是否启用角度分类（PaddleOCR 的 cls 分支）。
    # 聊天截图的文本布局规整，默认关闭以降低开销；截图存在旋转时可开启。
    use_angle_cls: bool = False
    # 为每个识别线程创建独立的 PaddleOCR 实例：页面推理并行执行，代价是每个线程各占一份模型内存。
    # 关闭时（默认）所有线程共享一个实例，推理逐次执行。
    engine_per_thread: bool = False


@dataclass
class StitchConfig:
    """Stitching pipeline configuration."""
    # midX below left_threshold is the other party, above right_threshold is the user
    left_threshold: float = 0.35
    right_threshold: float = 0.65
    # Number of snippets kept at each screenshot edge as an overlap fingerprint
    edge_snippet_count: int = 3
    # System snippets shorter than this (after cleaning) are dropped
    min_system_text_length: int = 3
    # 0 runs one worker per screenshot; a positive value caps the pool
    max_workers: int = 0
    # 0 disables the timeout / deadline
    page_timeout_seconds: float = 0.0
    deadline_seconds: float = 0.0


@dataclass
class OutputConfig:
    """Output configuration."""
    format: str = "json"  # json, csv, txt, md
    directory: str = "./output"
    # 同时导出多种格式（若非空则优先生效），例如 ["json", "md"]
    formats: List[str] = field(default_factory=list)
    # 需要从导出中排除的字段，例如 ["bounding_box", "artifacts_removed"]
    exclude_fields: List[str] = field(default_factory=list)
    exclude_system_messages: bool = False


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: str = "./logs/stitcher.log"
    max_size: str = "10MB"
    backup_count: int = 3
    # 第三方库日志（PaddleOCR 推理过程输出较多）统一压到 WARNING
    quiet_loggers: List[str] = field(default_factory=lambda: ["ppocr", "paddle", "paddlex", "PIL"])


SUPPORTED_FORMATS = ("json", "csv", "txt", "md")


@dataclass
class AppConfig:
    """Main application configuration."""
    ocr: OCRConfig = field(default_factory=OCRConfig)
    stitch: StitchConfig = field(default_factory=StitchConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> bool:
        """Validate configuration parameters."""
        errors = []

        if self.ocr.confidence_threshold < 0.0 or self.ocr.confidence_threshold > 1.0:
            errors.append("ocr.confidence_threshold must be between 0.0 and 1.0")

        st = self.stitch
        if not (0.0 <= st.left_threshold <= st.right_threshold <= 1.0):
            errors.append("stitch thresholds must satisfy 0 <= left_threshold <= right_threshold <= 1")
        if st.edge_snippet_count < 1:
            errors.append("stitch.edge_snippet_count must be at least 1")
        if st.min_system_text_length < 0:
            errors.append("stitch.min_system_text_length must not be negative")
        if st.max_workers < 0 or st.max_workers > 64:
            errors.append("stitch.max_workers must be between 0 (one per screenshot) and 64")
        if st.page_timeout_seconds < 0 or st.deadline_seconds < 0:
            errors.append("stitch timeouts must not be negative")

        if self.logging.backup_count < 0:
            errors.append("logging.backup_count must not be negative")

        # 保持兼容单格式，同时支持多格式
        if self.output.format not in SUPPORTED_FORMATS:
            errors.append("output.format must be one of: json, csv, txt, md")
        invalid = [f for f in self.output.formats if f not in SUPPORTED_FORMATS]
        if invalid:
            errors.append(f"output.formats contains unsupported: {','.join(invalid)}")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "ocr": {
                "language": self.ocr.language,
                "confidence_threshold": self.ocr.confidence_threshold,
                "use_gpu": self.ocr.use_gpu,
                "use_angle_cls": self.ocr.use_angle_cls,
                "engine_per_thread": self.ocr.engine_per_thread,
            },
            "stitch": {
                "left_threshold": self.stitch.left_threshold,
                "right_threshold": self.stitch.right_threshold,
                "edge_snippet_count": self.stitch.edge_snippet_count,
                "min_system_text_length": self.stitch.min_system_text_length,
                "max_workers": self.stitch.max_workers,
                "page_timeout_seconds": self.stitch.page_timeout_seconds,
                "deadline_seconds": self.stitch.deadline_seconds,
            },
            "output": {
                "format": self.output.format,
                "directory": self.output.directory,
                "formats": list(self.output.formats),
                "exclude_fields": list(self.output.exclude_fields),
                "exclude_system_messages": self.output.exclude_system_messages,
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file,
                "max_size": self.logging.max_size,
                "backup_count": self.logging.backup_count,
                "quiet_loggers": list(self.logging.quiet_loggers),
            },
        }
