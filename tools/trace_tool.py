"""
tools/trace_tool.py
从错误输出 / 堆栈文本中提取 workspace 内的源文件路径。

堆栈格式（dialect）以数据表形式维护：名称 → (正则, 路径所在分组)。
新增一种运行时的堆栈格式只需要在 TRACE_DIALECTS 中加一行。
"""

import os
import re
from typing import List, NamedTuple, Pattern

from utils.logger_handler import logger
from utils.path_tool import is_within_root


class TraceDialect(NamedTuple):
    name:       str
    pattern:    Pattern
    path_group: int


TRACE_DIALECTS: List[TraceDialect] = [
    # Python:  File "/proj/app.py", line 10, in <module>
    TraceDialect("python", re.compile(r'File "([^"]+)", line \d+'), 1),
    # Node:    at handler (/proj/server.js:12:5)
    TraceDialect("node", re.compile(r"at .+ \(([^:]+):\d+:\d+\)"), 1),
]


def _match_line(line: str, dialects: List[TraceDialect]):
    """返回该行第一个命中的 (dialect 名, 路径)；一行最多对应一种格式。"""
    for dialect in dialects:
        m = dialect.pattern.search(line)
        if m:
            return dialect.name, m.group(dialect.path_group)
    return None


def extract_files(
    error_text: str,
    root: str,
    dialects: List[TraceDialect] = None,
) -> List[str]:
    """
    逐行匹配错误文本，返回涉及的 workspace 文件（绝对路径，去重，保持首次出现顺序）。

    只保留：绝对路径 + 位于 root 之内 + 匹配时文件确实存在。
    没有任何匹配时返回空列表（由调用方回退到入口文件）。

    :param error_text: 子进程 stderr（或 stdout）
    :param root:       workspace 根目录
    :param dialects:   堆栈格式表，默认 TRACE_DIALECTS
    """
    dialects = TRACE_DIALECTS if dialects is None else dialects
    files: List[str] = []

    for line in (error_text or "").splitlines():
        hit = _match_line(line, dialects)
        if not hit:
            continue
        dialect_name, raw_path = hit

        if not os.path.isabs(raw_path):
            continue
        if not is_within_root(raw_path, root) or not os.path.isfile(raw_path):
            logger.debug(f"[trace] 忽略 {dialect_name} 帧: {raw_path}")
            continue

        path = os.path.realpath(raw_path)
        if path not in files:
            files.append(path)

    logger.info(f"[trace] 从错误输出中提取到 {len(files)} 个文件")
    return files
