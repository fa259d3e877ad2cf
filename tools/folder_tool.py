"""
tools/folder_tool.py
在 workspace 中批量创建文件夹 / 文件。

/chat 返回的 create_file / create_files / create_folder / create_project
统一转换为 FileOp 列表，由 apply_file_batch 按顺序逐个执行并汇总结果：
调用方拿到的是一个明确的成功 / 部分失败结论，而不是若干个无人等待的写入。
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from core.errors import WorkspaceEscapeError
from tools.file_tool import write_file
from utils.logger_handler import logger
from utils.path_tool import ensure_within_root


@dataclass
class FileOp:
    kind:    str                     # "folder" | "file"
    path:    str                     # 相对 workspace 的路径
    content: Optional[str] = None


@dataclass
class BatchResult:
    succeeded: List[str] = field(default_factory=list)
    failed:    List[str] = field(default_factory=list)
    errors:    List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _target(root: str, rel_path: str) -> str:
    """:raises WorkspaceEscapeError: rel_path 指向 workspace 之外"""
    return ensure_within_root(os.path.join(root, rel_path), root)


def create_folder(root: str, rel_path: str) -> bool:
    try:
        full_path = _target(root, rel_path)
        os.makedirs(full_path, exist_ok=True)
    except WorkspaceEscapeError:
        logger.error(f"[folder] 拒绝在 workspace 之外创建目录: {rel_path}")
        return False
    except OSError as e:
        logger.error(f"[folder] 创建目录失败: {rel_path} → {e}")
        return False
    logger.info(f"[folder] 目录已就绪: {full_path}")
    return True


def create_file(root: str, rel_path: str, content: str) -> bool:
    try:
        full_path = _target(root, rel_path)
    except WorkspaceEscapeError:
        logger.error(f"[folder] 拒绝在 workspace 之外创建文件: {rel_path}")
        return False
    return write_file(full_path, content or "", root=root)


def apply_file_batch(root: str, operations: List[FileOp]) -> BatchResult:
    """
    按顺序执行一批文件操作，每一步完成后再进行下一步。

    某一步失败不会中断后续步骤，失败项记录在 BatchResult.failed 中。

    :param root:       workspace 根目录
    :param operations: FileOp 列表
    :return:           汇总结果
    """
    result = BatchResult()
    for op in operations:
        if op.kind == "folder":
            ok = create_folder(root, op.path)
        elif op.kind == "file":
            ok = create_file(root, op.path, op.content)
        else:
            ok = False
            result.errors.append(f"Unknown operation '{op.kind}' for {op.path}")

        if ok:
            result.succeeded.append(op.path)
        else:
            result.failed.append(op.path)
            if op.kind in ("folder", "file"):
                result.errors.append(f"Failed to create {op.kind} {op.path}")

    logger.info(f"[folder] 批量操作完成: 成功 {len(result.succeeded)}，失败 {len(result.failed)}")
    return result
