"""
Simple progress reporter for CLI/console UI.
Provides start/update/finish hooks for a stitching run.

函数级注释：
- ProgressReporter 提供基础的开始/更新/结束接口；
- 页面级进度（已完成/失败）由编排器在汇合阶段上报，所有调用均发生在同一线程；
- finish 输出一次汇总日志，便于在 CLI 中确认耗时与结果数量。
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class ProgressState:
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    status: str = "idle"
    pages_total: int = 0
    pages_done: int = 0
    pages_failed: int = 0
    messages_parsed: int = 0
    last_error: Optional[str] = None


class ProgressReporter:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.state = ProgressState()

    def start(self, pages_total: int = 0) -> None:
        self.state = ProgressState(pages_total=max(0, pages_total))
        self.state.started_at = datetime.now()
        self.state.status = "running"
        self.logger.info(f"拼接任务已开始，截图数：{self.state.pages_total}")

    def update(
        self,
        pages_done_delta: int = 0,
        pages_failed_delta: int = 0,
        messages_parsed_delta: int = 0,
        status: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        self.state.pages_done += max(0, pages_done_delta)
        self.state.pages_failed += max(0, pages_failed_delta)
        self.state.messages_parsed += max(0, messages_parsed_delta)
        if status:
            self.state.status = status
        if error:
            self.state.last_error = error
            self.logger.warning(f"状态更新，错误：{error}")
        self.logger.debug(
            f"状态：{self.state.status}，页面：{self.state.pages_done}/{self.state.pages_total}"
            f"（失败 {self.state.pages_failed}），消息数：{self.state.messages_parsed}"
        )

    @property
    def fraction_done(self) -> float:
        if not self.state.pages_total:
            return 1.0
        return min(1.0, (self.state.pages_done + self.state.pages_failed) / self.state.pages_total)

    def finish(self, success: bool = True) -> None:
        self.state.finished_at = datetime.now()
        self.state.status = "success" if success else "failed"
        duration = (self.state.finished_at - self.state.started_at).total_seconds() if self.state.started_at else 0.0
        self.logger.info(
            f"拼接任务已结束，状态：{self.state.status}，耗时：{duration:.2f}s，"
            f"失败页面：{self.state.pages_failed}，共输出消息：{self.state.messages_parsed}"
        )
