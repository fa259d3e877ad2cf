"""
tools/repo_tool.py
工作目录扫描工具：定位 workspace 的入口文件，解析用户指定的文件路径。

遍历顺序（所有函数一致）：
  深度优先、先序；同一目录内按名称排序依次处理，
  遇到文件立即判断，遇到目录立即递归，因此排在前面的子目录中的命中
  会先于排在后面的同级文件。
  以 "." 开头的目录以及 exclude_dirs 中的目录一律跳过。
"""

import os
from typing import Iterator, List, Optional, Sequence

from utils.logger_handler import logger
from utils.path_tool import is_within_root


# 常见入口文件名，按优先级排列；列表中靠前的名字只要在任意深度存在即胜出
ENTRY_FILENAMES = [
    "app.py",
    "main.py",
    "index.js",
    "server.js",
    "manage.py",
    "run.py",
    "application.py",
]

# 内容特征：出现任意一个即视为可运行的服务 / 应用入口
ENTRY_MARKERS = [
    "FastAPI(",
    "Flask(",
    "app.run(",
    "uvicorn.run(",
]

DEFAULT_EXCLUDE_DIRS = ("__pycache__", "node_modules", "venv", "site-packages")


def _is_excluded(name: str, exclude_dirs: Sequence[str]) -> bool:
    return name.startswith(".") or name in exclude_dirs


def iter_files(root: str, exclude_dirs: Sequence[str] = DEFAULT_EXCLUDE_DIRS) -> Iterator[str]:
    """
    按模块说明中的遍历顺序逐个产出文件的绝对路径。

    指向 root 之外的文件链接不会产出，调用方拿到的路径解析后都在 root 之内。

    :param root:         起始目录
    :param exclude_dirs: 额外排除的目录名
    """
    yield from _walk(root, root, exclude_dirs)


def _walk(directory: str, root: str, exclude_dirs: Sequence[str]) -> Iterator[str]:
    try:
        entries = sorted(os.scandir(directory), key=lambda e: e.name)
    except OSError as e:
        logger.warning(f"[repo] 无法读取目录: {directory} → {e}")
        return

    for entry in entries:
        if entry.is_file():
            if entry.is_symlink() and not is_within_root(entry.path, root):
                logger.debug(f"[repo] 跳过指向 workspace 之外的链接: {entry.path}")
                continue
            yield entry.path
        elif entry.is_dir(follow_symlinks=False) and not _is_excluded(entry.name, exclude_dirs):
            yield from _walk(entry.path, root, exclude_dirs)


def find_file_recursive(
    filename: str,
    search_path: str,
    exclude_dirs: Sequence[str] = DEFAULT_EXCLUDE_DIRS,
) -> Optional[str]:
    """按文件名递归查找，返回第一个命中的绝对路径，未找到返回 None。"""
    for path in iter_files(search_path, exclude_dirs):
        if os.path.basename(path) == filename:
            return path
    return None


def list_source_files(
    root: str,
    extension: str = ".py",
    exclude_dirs: Sequence[str] = DEFAULT_EXCLUDE_DIRS,
) -> List[str]:
    """递归列出指定后缀的所有文件（遍历顺序见模块说明）。"""
    return [p for p in iter_files(root, exclude_dirs) if p.endswith(extension)]


def _read_text(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.read()
    except OSError as e:
        logger.warning(f"[repo] 读取失败，跳过: {path} → {e}")
        return ""


def find_entry_point(
    root: str,
    exclude_dirs: Sequence[str] = DEFAULT_EXCLUDE_DIRS,
) -> Optional[str]:
    """
    在 workspace 中查找最可能的入口文件。

    查找策略（先命中者胜出）：
      1. 按 ENTRY_FILENAMES 的顺序逐个递归查找文件名
      2. 扫描所有 .py 文件内容，包含 ENTRY_MARKERS 任一特征即返回
      3. 都没有则返回 None（由调用方作为终止条件处理）

    :param root:         workspace 根目录
    :param exclude_dirs: 额外排除的目录名
    :return:             入口文件绝对路径，或 None
    """
    if not os.path.isdir(root):
        logger.error(f"[repo] 工作目录不存在: {root}")
        return None

    # ── 策略 1：常见文件名 ─────────────────────────────────────────────────
    for name in ENTRY_FILENAMES:
        found = find_file_recursive(name, root, exclude_dirs)
        if found:
            logger.info(f"[repo] 入口文件（按文件名）: {found}")
            return found

    # ── 策略 2：框架特征 ───────────────────────────────────────────────────
    for path in list_source_files(root, ".py", exclude_dirs):
        content = _read_text(path)
        if any(marker in content for marker in ENTRY_MARKERS):
            logger.info(f"[repo] 入口文件（按内容特征）: {path}")
            return path

    logger.warning(f"[repo] 工作目录 {root} 内找不到入口文件")
    return None


def resolve_file_path(
    user_path: str,
    root: str,
    exclude_dirs: Sequence[str] = DEFAULT_EXCLUDE_DIRS,
) -> Optional[str]:
    """
    将用户给出的文件路径解析为 workspace 内的绝对路径。

      - 绝对路径：必须位于 root 之内且存在
      - 相对路径：先按 root 拼接；不存在时按文件名递归查找
    """
    if not user_path:
        return None

    if os.path.isabs(user_path):
        if is_within_root(user_path, root) and os.path.isfile(user_path):
            return os.path.realpath(user_path)
        return None

    full_path = os.path.join(root, user_path)
    if os.path.isfile(full_path) and is_within_root(full_path, root):
        return os.path.realpath(full_path)

    found = find_file_recursive(os.path.basename(user_path), root, exclude_dirs)
    if found:
        logger.info(f"[repo] '{user_path}' 解析为: {found}")
    return found
