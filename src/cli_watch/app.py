"""cli-watch 应用入口。

每当被监视目录中的文件发生变化时重新运行命令，并实时显示输出。

用法:
    cli-watch [--dir DIR] [--control-file FILE] cmd args...

命令和参数以空格连接，作为 rc(1) 的命令行执行。控制行形如
"Kill Quit % cmd"，修改 % 之后的文本即可改变下一次运行的命令。

标准输入中的每一行是一个动作：
    Kill: 终止正在运行的命令
    Quit: 向命令的进程组发送 SIGQUIT（Go 程序会打印 goroutine 栈后退出）
    Del:  退出 cli-watch
    % cmd: 替换命令文本并重新运行
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from pathlib import Path
from typing import IO, Any

from .config import Config, get_config
from .errors import WatchError
from .events import EventRouter, WatchEvent
from .interfaces import Sink, parse_control_line
from .signal_manager import SignalManager
from .sinks import TerminalSink
from .sources import (
    ActionReader,
    ControlFile,
    DirectoryWatcher,
    StaticControlLine,
    merge_sources,
)
from .supervisor import RunSupervisor

__all__ = ["build_parser", "run_watch", "main"]

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_FORCED = 130  # 128 + SIGINT(2)


def build_parser() -> argparse.ArgumentParser:
    """构建命令行参数解析器。"""
    parser = argparse.ArgumentParser(
        prog="cli-watch",
        usage="%(prog)s [--dir DIR] [--control-file FILE] cmd args...",
        description="Run a command each time any file in a directory is written.",
    )
    parser.add_argument(
        "--dir",
        type=Path,
        default=None,
        help="directory to watch and run in (default: current directory)",
    )
    parser.add_argument(
        "--control-file",
        type=Path,
        default=None,
        help="read the control line from this file before every run",
    )
    parser.add_argument("command", nargs=argparse.REMAINDER, help="command and arguments")
    return parser


def _make_passthrough(source: StaticControlLine | ControlFile, supervisor: RunSupervisor):
    """创建透传事件处理函数。

    以 % 开头的输入行替换命令文本（相当于编辑控制行），并触发一次运行。
    """

    def passthrough(event: WatchEvent) -> None:
        if event.kind == "input" and event.text.lstrip().startswith("%"):
            command = parse_control_line(event.text)
            source.set_command(command)
            logger.info(f"Command set: {command}")
            supervisor.notify()
            return
        logger.debug(f"Ignoring {event.kind} event: {event.text!r}")

    return passthrough


async def run_watch(
    command: str,
    root: Path,
    *,
    control_file: Path | None = None,
    config: Config | None = None,
    sink: Sink | None = None,
    actions: IO[Any] | None = None,
) -> int:
    """运行 watch 主循环。

    并发任务：
    - supervisor: 逐个消费触发信号，启动新一代运行
    - events: 读取通知源并分发（变化 -> 触发，Kill/Quit -> supervisor）
    - shutdown-watcher: 监听信号管理器的关闭事件

    任一任务结束即开始清理。

    Args:
        command: 初始命令文本
        root: 被监视（也是运行命令）的目录
        control_file: 控制行文件（可选，默认使用内存中的控制行）
        config: 配置（默认从环境变量读取）
        sink: 输出目标（默认为 stdout 终端）
        actions: 动作输入流（默认为 stdin）

    Returns:
        进程退出码
    """
    config = config or get_config()
    root = root.resolve()

    if sink is None:
        sink = TerminalSink(sys.stdout.buffer, clear=config.clear_screen)

    if control_file is not None:
        source: StaticControlLine | ControlFile = ControlFile(control_file)
        if not source.path.exists():
            source.set_command(command)
    else:
        source = StaticControlLine(command)

    supervisor = RunSupervisor(sink, source, cwd=root)
    signal_manager = SignalManager(supervisor)
    router = EventRouter(supervisor, passthrough=_make_passthrough(source, supervisor))
    notifications = merge_sources(
        DirectoryWatcher(root, config.poll_interval),
        ActionReader(actions if actions is not None else sys.stdin),
    )

    logger.info(f"Watching {root}/: Kill Quit % {command}")

    async def _route_events() -> None:
        async for event in notifications:
            if not await router.dispatch(event):
                return
        logger.info("Notification stream ended")

    exit_code = EXIT_OK
    tasks: list[asyncio.Task[Any]] = []

    try:
        await signal_manager.start()

        # 启动时先运行一次
        supervisor.notify()

        tasks = [
            asyncio.create_task(supervisor.serve(), name="supervisor"),
            asyncio.create_task(_route_events(), name="events"),
            asyncio.create_task(signal_manager.wait_for_shutdown(), name="shutdown-watcher"),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]

    except WatchError as e:
        logger.critical(f"{e}")
        exit_code = EXIT_FATAL

    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task

        await notifications.aclose()
        await supervisor.shutdown()
        await signal_manager.stop()
        logger.debug("run_watch: cleanup completed")

    if signal_manager.is_force_exit:
        logger.warning("Force exit requested, terminating with exit code 130")
        return EXIT_FORCED

    return exit_code


def configure_logging(config: Config) -> None:
    """配置日志输出。

    默认输出到 stderr (INFO)；CW_LOG_DEBUG 开启时输出到临时文件 (DEBUG)。
    """
    handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        handler: logging.Handler = logging.FileHandler(config.log_file, encoding="utf-8")
        log_level = logging.DEBUG
    else:
        handler = logging.StreamHandler(sys.stderr)
        log_level = logging.INFO

    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    handlers.append(handler)

    # 第三方库只输出 WARNING 以上
    logging.basicConfig(level=logging.WARNING, handlers=handlers)
    logging.getLogger("cli_watch").setLevel(log_level)


def main(argv: list[str] | None = None) -> None:
    """主入口点。"""
    args = build_parser().parse_args(argv)
    config = get_config()
    configure_logging(config)

    words = list(args.command)
    if words and words[0] == "--":
        words = words[1:]
    command = " ".join(words)
    root = args.dir if args.dir is not None else Path.cwd()

    exit_code = asyncio.run(
        run_watch(command, root, control_file=args.control_file, config=config)
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
