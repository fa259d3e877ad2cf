"""
tools/file_tool.py
workspace 文件读写：FixDispatcher 读取源码、原地写回修复内容，folder_tool 创建新文件。

传入 root 时路径必须落在 root 之内，越界的读写直接拒绝（返回 None / False），
不抛异常，由调用方把失败转成事件。
"""

import os
from typing import Optional

from utils.logger_handler import logger
from utils.path_tool import is_within_root


def _outside(file_path: str, root: Optional[str], action: str) -> bool:
    if root and not is_within_root(file_path, root):
        logger.error(f"[file] 拒绝{action} workspace 之外的文件: {file_path}")
        return True
    return False


def read_file(file_path: str, root: str = None, encoding: str = "utf-8") -> Optional[str]:
    """
    :param file_path: 文件绝对路径
    :param root:      workspace 根目录，给出时校验路径范围
    :return:          文本内容（空文件为 ""）；越界、不存在、无法解码时为 None
    """
    if _outside(file_path, root, "读取") or not os.path.isfile(file_path):
        return None

    try:
        with open(file_path, "r", encoding=encoding) as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"[file] 无法读取 {file_path}: {e}")
        return None


def write_file(file_path: str, content: str, root: str = None, encoding: str = "utf-8") -> bool:
    """整体覆盖写入，缺失的父目录一并创建。越界或写入失败返回 False。"""
    if _outside(file_path, root, "写入"):
        return False

    try:
        os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)
        with open(file_path, "w", encoding=encoding) as f:
            f.write(content)
    except OSError as e:
        logger.error(f"[file] 无法写入 {file_path}: {e}")
        return False

    logger.debug(f"[file] 已写入 {file_path}  ({len(content)} chars)")
    return True
