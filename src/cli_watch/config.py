"""cli-watch 环境变量配置管理。

环境变量:
    CW_POLL_INTERVAL: 变化静默间隔（秒），无新变化超过此时间后上报一批变化
        - 默认 0.5 秒
        - 限制在 0.05-10 秒范围

    CW_CLEAR: 每次运行前是否清屏
        - true/1/yes = 清屏 (默认)
        - false/0/no = 不清屏，改为打印分隔线

    CW_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)

    CW_SIGINT_MODE: SIGINT (Ctrl+C) 处理模式
        - kill = 终止当前运行的命令（没有运行中的命令则退出）(默认)
        - exit = 直接退出进程
        - kill_then_exit = 先终止命令，第二次才退出

    CW_SIGINT_DOUBLE_TAP_WINDOW: 双击退出窗口时间（秒）
        - 默认 1.0 秒
        - 在此时间窗口内第二次 Ctrl+C 将强制退出

    PLAN9: rc 解释器的安装目录（见 runtime.process_runner.resolve_shell）
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config", "SigintMode"]


class SigintMode(Enum):
    """SIGINT 处理模式。

    - KILL: 终止当前运行（如果没有运行中的命令则退出）
    - EXIT: 直接退出进程
    - KILL_THEN_EXIT: 先终止当前运行，第二次 SIGINT 才退出
    """

    KILL = "kill"
    EXIT = "exit"
    KILL_THEN_EXIT = "kill_then_exit"

    @classmethod
    def from_string(cls, value: str) -> "SigintMode":
        """从字符串解析模式。

        Args:
            value: 模式字符串 (kill/exit/kill_then_exit)

        Returns:
            对应的 SigintMode 枚举值，无效值返回 KILL
        """
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.KILL


DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_DOUBLE_TAP_WINDOW = 1.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_seconds(
    value: str | None,
    default: float,
    lower: float,
    upper: float,
) -> float:
    """解析秒数环境变量，并限制在 [lower, upper] 范围内。

    Args:
        value: 环境变量值
        default: 未设置或无效时的默认值
        lower: 下限
        upper: 上限

    Returns:
        秒数
    """
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    return max(lower, min(seconds, upper))


def _parse_sigint_mode(value: str | None) -> SigintMode:
    """解析 SIGINT 模式环境变量。"""
    if not value:
        return SigintMode.KILL
    return SigintMode.from_string(value)


@dataclass
class Config:
    """cli-watch 配置。

    Attributes:
        poll_interval: 变化静默间隔（秒），传给 watchfiles 的 step
        clear_screen: 每次运行前是否清屏
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        sigint_mode: SIGINT 处理模式
        sigint_double_tap_window: 双击退出窗口时间（秒）
    """

    poll_interval: float = DEFAULT_POLL_INTERVAL
    clear_screen: bool = True
    log_debug: bool = False
    log_file: str | None = None
    sigint_mode: SigintMode = SigintMode.KILL
    sigint_double_tap_window: float = DEFAULT_DOUBLE_TAP_WINDOW

    def __repr__(self) -> str:
        return (
            f"Config(poll_interval={self.poll_interval}, "
            f"clear_screen={self.clear_screen}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"sigint_mode={self.sigint_mode.value}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "cli-watch"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"cw_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("CW_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        poll_interval=_parse_seconds(
            os.environ.get("CW_POLL_INTERVAL"),
            DEFAULT_POLL_INTERVAL,
            0.05,
            10.0,
        ),
        clear_screen=_parse_bool(os.environ.get("CW_CLEAR"), default=True),
        log_debug=log_debug,
        log_file=log_file,
        sigint_mode=_parse_sigint_mode(os.environ.get("CW_SIGINT_MODE")),
        sigint_double_tap_window=_parse_seconds(
            os.environ.get("CW_SIGINT_DOUBLE_TAP_WINDOW"),
            DEFAULT_DOUBLE_TAP_WINDOW,
            0.1,
            10.0,
        ),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
