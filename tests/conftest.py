"""
将项目根目录加入 sys.path，使所有测试文件可以直接 import 项目模块；
并提供各测试共用的 fixture。
"""
import os
import sys
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.events import ListSink  # noqa: E402


@pytest.fixture
def tmp_dir():
    """提供临时目录（realpath，避免 macOS /var → /private/var 的差异），测试结束后自动清理。"""
    with tempfile.TemporaryDirectory() as d:
        yield os.path.realpath(d)


@pytest.fixture
def sink():
    return ListSink()
