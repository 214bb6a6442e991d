"""cli-watch 异常类。

按恢复策略划分：
- 单次运行内的错误（exec 失败、非零退出）直接写入输出，不抛出异常
- 结构性错误（读不到控制行、通知源中断）属于致命错误，程序退出
"""

from __future__ import annotations

__all__ = [
    "WatchError",
    "ControlLineError",
    "NotificationSourceError",
]


class WatchError(Exception):
    """cli-watch 基础异常（致命）。"""
    pass


class ControlLineError(WatchError):
    """无法读取控制行，无法确定要运行的命令。

    Attributes:
        source: 控制行来源描述（如文件路径）
    """

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"read control line {source}: {reason}")


class NotificationSourceError(WatchError):
    """通知源中断（如被监视的目录不可读）。"""
    pass
