"""
utils/path_tool.py
路径工具：工程根目录解析 + workspace 根目录约束。

所有对 workspace 的文件操作都必须落在 workspace 根目录之内，
本模块提供统一的判断与转换函数。
"""

import os

from core.errors import NoWorkspaceError, WorkspaceEscapeError


# 工程根目录（utils/ 的上一级）
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def get_abs_path(relative_path: str) -> str:
    """
    将相对工程根目录的路径转为绝对路径。

    :param relative_path: 如 "config/config.yaml"
    :return:              绝对路径
    """
    return os.path.join(PROJECT_ROOT, relative_path)


def resolve_workspace_root(path: str) -> str:
    """
    规范化 workspace 根目录（绝对路径 + 解析符号链接）。

    :raises NoWorkspaceError: 未提供路径或目录不存在
    """
    if not path:
        raise NoWorkspaceError("Please open a folder before debugging.")
    if not os.path.isabs(path):
        path = get_abs_path(path)
    root = os.path.realpath(path)
    if not os.path.isdir(root):
        raise NoWorkspaceError(f"Workspace folder does not exist: {root}")
    return root


def is_within_root(path: str, root: str) -> bool:
    """判断 path 是否位于 root 之内（按路径分段比较，/proj2 不属于 /proj）。"""
    if not path or not root:
        return False
    real_path = os.path.realpath(path)
    real_root = os.path.realpath(root)
    try:
        return os.path.commonpath([real_path, real_root]) == real_root
    except ValueError:
        # Windows 下不同盘符
        return False


def ensure_within_root(path: str, root: str) -> str:
    """
    返回 path 的真实绝对路径，若不在 root 之内则抛出异常。

    :raises WorkspaceEscapeError: 路径逃逸出 workspace
    """
    if not is_within_root(path, root):
        raise WorkspaceEscapeError(f"Path is outside the workspace: {path}")
    return os.path.realpath(path)


def to_relative(path: str, root: str) -> str:
    """workspace 内的绝对路径 → 相对路径（统一使用 / 分隔，供 fixer 接口使用）。"""
    rel = os.path.relpath(os.path.realpath(path), os.path.realpath(root))
    return rel.replace(os.sep, "/")
