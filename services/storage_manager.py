"""
Storage manager for exporting stitched transcripts to files.
Supports JSON, CSV, TXT and Markdown formats.
"""
import json
import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from models.config import OutputConfig, SUPPORTED_FORMATS
from models.data_models import Message

CSV_FIELDS = [
    "id", "chronological_index", "sender", "is_from_user", "text",
    "source_page_index", "timestamp", "timestamp_raw", "is_system_message",
]


class StorageManager:
    """
    Handles persistence of Message objects to disk.
    """

    def __init__(self, output_config: Optional[OutputConfig] = None):
        self.logger = logging.getLogger(__name__)
        self.config = output_config or OutputConfig()
        self._ensure_output_dir()

    def _ensure_output_dir(self) -> None:
        """Create output directory if it does not exist."""
        try:
            out_dir = Path(self.config.directory)
            out_dir.mkdir(parents=True, exist_ok=True)
            self.logger.debug(f"Output directory ready: {out_dir}")
        except OSError as e:
            self.logger.error(f"Failed to create output directory: {e}")
            raise

    def _generate_filename(self, prefix: str, ext: str) -> Path:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"{prefix}_{ts}.{ext}"
        return Path(self.config.directory) / filename

    def _message_to_dict(self, msg: Message) -> dict:
        """Serialize Message to a JSON-friendly dict.

        函数级注释：
        - 基础字段覆盖消息文本、发送方、来源页面与最终时间序号；
        - 时间戳以 HH:MM 字符串导出，原始时间文本与清洗记录保留以便追溯；
        - 支持通过 OutputConfig.exclude_fields 排除顶层字段（CSV/JSON 共用）。
        """
        box = msg.source_bounding_box
        meta = msg.metadata
        base = {
            "id": msg.id,
            "chronological_index": msg.chronological_index,
            "sender": msg.sender,
            "is_from_user": msg.is_from_user,
            "text": msg.text,
            "source_page_index": msg.source_page_index,
            "bounding_box": {"x": box.x, "y": box.y, "width": box.width, "height": box.height},
            "timestamp": meta.timestamp.strftime("%H:%M") if meta.timestamp else None,
            "timestamp_raw": meta.timestamp_raw,
            "is_system_message": meta.is_system_message,
            "artifacts_removed": list(meta.artifacts_removed),
        }
        for k in set(self.config.exclude_fields or []):
            base.pop(k, None)
        return base

    def _prepare(self, messages: List[Message]) -> List[Message]:
        # 过滤不重新编号：导出的 chronological_index 仍指向完整对话中的位置，可能出现间隔
        if self.config.exclude_system_messages:
            messages = [m for m in messages if not m.metadata.is_system_message]
        return messages

    def _write_messages(self, messages: List[Message], fmt: str, filename_prefix: str) -> Path:
        """Write messages to a single file in the given format.

        返回: 写入文件的路径
        """
        fmt = (fmt or "json").lower()
        if fmt not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported output format: {fmt}")

        path = self._generate_filename(filename_prefix, fmt)

        if fmt == "json":
            data = [self._message_to_dict(m) for m in messages]
            with path.open("w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
        elif fmt == "csv":
            exclude = set(self.config.exclude_fields or [])
            fieldnames = [f for f in CSV_FIELDS if f not in exclude]
            with path.open("w", encoding="utf-8", newline="") as f:
                writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
                writer.writeheader()
                for m in messages:
                    writer.writerow(self._message_to_dict(m))
        elif fmt == "txt":
            with path.open("w", encoding="utf-8") as f:
                for m in messages:
                    f.write(self._format_txt_message(m) + "\n")
        else:
            with path.open("w", encoding="utf-8") as f:
                f.write("# Chat Transcript\n\n")
                for m in messages:
                    f.write(self._format_markdown_message(m) + "\n")

        self.logger.info(f"Saved {len(messages)} messages to {path}")
        return path

    def save_messages(self, messages: List[Message], filename_prefix: str = "transcript") -> Path:
        """Save messages to disk according to configured format.

        Returns the path of the written file.
        """
        fmt = (self.config.format or "json").lower()
        return self._write_messages(self._prepare(messages), fmt, filename_prefix)

    def save_messages_multiple(self, messages: List[Message], filename_prefix: str, formats: List[str]) -> List[Path]:
        """Save messages to multiple formats in one pass.

        参数:
        - formats: 输出格式列表（如 ["json", "csv", "txt", "md"]），保留用户传入顺序并去重
        """
        norm_formats: List[str] = []
        for f in (formats or []):
            lf = (f or "").lower()
            if lf and lf not in norm_formats:
                norm_formats.append(lf)
        if not norm_formats:
            # 回退到单一格式配置
            norm_formats = [(self.config.format or "json").lower()]

        invalid = [f for f in norm_formats if f not in SUPPORTED_FORMATS]
        if invalid:
            raise ValueError(f"Unsupported output formats: {', '.join(invalid)}")

        messages = self._prepare(messages)
        return [self._write_messages(messages, fmt, filename_prefix) for fmt in norm_formats]

    @staticmethod
    def _time_prefix(m: Message) -> str:
        if m.metadata.timestamp:
            return f"[{m.metadata.timestamp.strftime('%H:%M')}] "
        return ""

    def _format_txt_message(self, m: Message) -> str:
        """Format a single message as "[#idx] [HH:MM] sender: text"."""
        return f"[#{m.chronological_index}] {self._time_prefix(m)}{m.sender}: {m.text}"

    def _format_markdown_message(self, m: Message) -> str:
        """Format a single message into Markdown.

        用户自己的消息右对齐习惯无法在 Markdown 中表达，这里用加粗的发送方标签区分。
        """
        suffix = f" _(page {m.source_page_index})_"
        return f"- {self._time_prefix(m)}**{m.sender}**: {m.text}{suffix}"
