"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import shutil
import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 测试辅助脚本目录
FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"

# 测试中用 POSIX sh 代替 rc
SH = shutil.which("sh") or "/bin/sh"


@pytest.fixture
def fixtures_dir() -> Path:
    """测试辅助脚本目录。"""
    return FIXTURES_DIR


@pytest.fixture
def sh_resolver():
    """返回 sh 路径的解释器解析函数。"""
    return lambda: SH


@pytest.fixture
def plan9_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """伪造的 PLAN9 安装目录，bin/rc 指向 sh。"""
    root = tmp_path / "plan9"
    (root / "bin").mkdir(parents=True)
    (root / "bin" / "rc").symlink_to(SH)
    monkeypatch.setenv("PLAN9", str(root))
    return root
