"""cli-watch - 文件变化时重新运行命令。

环境变量:
    CW_POLL_INTERVAL: 目录扫描间隔 (默认 0.5s)
    CW_CLEAR: 每次运行前是否清屏 (默认 true)
    CW_LOG_DEBUG: 日志输出到临时文件 (默认 false)
    CW_SIGINT_MODE: SIGINT 处理模式 (kill/exit/kill_then_exit)
    PLAN9: rc 解释器安装目录

用法:
    cli-watch mk test
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
