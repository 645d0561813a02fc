"""
Logging manager to configure Python logging according to AppConfig.logging.
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import List

from models.config import AppConfig, LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class LoggingManager:
    def __init__(self):
        self._configured = False

    def setup(self, cfg: AppConfig, console_only: bool = False) -> None:
        """Configure the root logger once from ``cfg.logging``.

        函数级注释：
        - 控制台 handler 总是启用；console_only=True（--dry-run）时不写日志文件；
        - 文件 handler 按 max_size 轮转，保留 backup_count 份历史；
        - quiet_loggers 中的第三方 logger 被限制在 WARNING，避免 OCR 推理日志淹没拼接日志。
        """
        if self._configured:
            return

        log_cfg: LoggingConfig = cfg.logging
        level = getattr(logging, log_cfg.level.upper(), logging.INFO)
        formatter = logging.Formatter(LOG_FORMAT)

        handlers: List[logging.Handler] = [logging.StreamHandler()]
        if not console_only and log_cfg.file:
            log_dir = os.path.dirname(log_cfg.file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(
                RotatingFileHandler(
                    log_cfg.file,
                    maxBytes=self._parse_size(log_cfg.max_size),
                    backupCount=log_cfg.backup_count,
                    encoding="utf-8",
                )
            )

        root_logger = logging.getLogger()
        root_logger.setLevel(level)
        root_logger.handlers.clear()
        for handler in handlers:
            handler.setLevel(level)
            handler.setFormatter(formatter)
            root_logger.addHandler(handler)

        for name in log_cfg.quiet_loggers or []:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

        self._configured = True

    @staticmethod
    def _parse_size(size_str: str) -> int:
        """Parse a human-readable size such as ``10MB`` into bytes."""
        s = (size_str or "").strip().upper()
        units = (("GB", 1024 ** 3), ("MB", 1024 ** 2), ("KB", 1024))
        try:
            for suffix, factor in units:
                if s.endswith(suffix):
                    return int(float(s[:-len(suffix)]) * factor)
            return int(s)
        except ValueError:
            return DEFAULT_MAX_BYTES
