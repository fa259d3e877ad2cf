"""
agent/patcher.py
FixDispatcher：把单个文件交给 fixer，拿到修复内容后原地覆盖。

fix_file          : 读当前内容 → fixer.fix(相对路径, 内容, 错误) → 写回；失败时不改动文件
make_fix_node     : [fix 节点] 按诊断顺序逐个修复，第一个失败即终止会话
debug_single_file : 不进入循环，直接修复一个指定文件（chat 中的 “fix xxx.py”）
"""

import os
import threading
from typing import Optional, Protocol

from agent.state import ABORT_CANCELLED, ABORT_PARTIAL_FIX_FAILURE, STATUS_ABORTED, DebugState
from core.errors import AutoDebugError
from core.events import EventSink
from tools.file_tool import read_file, write_file
from utils.logger_handler import logger
from utils.path_tool import to_relative


STATIC_ANALYSIS_MESSAGE = "No runtime error, performing static analysis."


class Fixer(Protocol):
    def fix(self, relative_path: str, content: str, error: str) -> str:
        """返回修复后的完整内容；失败抛出 FixTransportError / FixRejectedError。"""


def fix_file(file_path: str, error_text: str, root: str, fixer: Fixer, sink: EventSink) -> bool:
    """
    修复单个文件。

    每次调用都会重新读取磁盘上的当前内容（可能已被前面的修复改写过），
    不做 diff，也不验证修复是否真的消除了错误。

    :param file_path:  workspace 内的绝对路径
    :param error_text: 交给 fixer 的错误描述
    :param root:       workspace 根目录
    :return:           True = 已写回修复内容
    """
    relative_path = to_relative(file_path, root)

    content = read_file(file_path, root=root)
    if content is None:
        sink.error(f"Failed to fix {relative_path}: file could not be read")
        return False

    try:
        fixed_content = fixer.fix(relative_path, content, error_text)
    except AutoDebugError as e:
        logger.error(f"[patcher] 修复失败: {relative_path} → {e}")
        sink.error(f"Failed to fix {relative_path}: {e}")
        return False

    if not write_file(file_path, fixed_content, root=root):
        sink.error(f"Failed to fix {relative_path}: could not write file")
        return False

    sink.status(f"Fixed {relative_path}")
    return True


def make_fix_node(
    fixer: Fixer,
    sink: EventSink,
    cancel_event: Optional[threading.Event] = None,
):
    """
    工厂函数：返回 fix 节点函数，通过闭包注入 fixer / sink。

    文件按 affected_files 的顺序串行修复，已在 fixed_files 中的跳过。
    任一文件失败立即终止（PartialFixFailure），之前写回的文件不回滚。
    """

    def fix(state: DebugState) -> dict:
        root        = state["root"]
        error_text  = state.get("error_output", "")
        fixed_files = list(state.get("fixed_files", []))

        for file_path in state.get("affected_files", []):
            if file_path in fixed_files:
                continue

            if cancel_event is not None and cancel_event.is_set():
                sink.warning("Debug session cancelled.")
                return {
                    "fixed_files":  fixed_files,
                    "status":       STATUS_ABORTED,
                    "abort_reason": ABORT_CANCELLED,
                    "message":      "Debug session cancelled.",
                }

            relative_path = to_relative(file_path, root)
            logger.info(f"[patcher] 修复文件: {relative_path}")
            sink.status(f"Fixing {relative_path}...")

            if not fix_file(file_path, error_text, root, fixer, sink):
                message = "Some files could not be fixed. Aborting."
                sink.error(message)
                return {
                    "fixed_files":  fixed_files,
                    "status":       STATUS_ABORTED,
                    "abort_reason": ABORT_PARTIAL_FIX_FAILURE,
                    "message":      message,
                }

            fixed_files.append(file_path)

        return {"fixed_files": fixed_files}

    return fix


def debug_single_file(root: str, rel_path: str, error_text: str, fixer: Fixer, sink: EventSink) -> bool:
    """
    直接修复一个文件，不运行、不循环。

    :param rel_path:   相对 workspace 的路径
    :param error_text: 可选的错误描述（可为空字符串）
    """
    full_path = os.path.join(root, rel_path)
    if not os.path.isfile(full_path):
        sink.error(f"File not found: {rel_path}")
        return False

    if fix_file(full_path, error_text or "", root, fixer, sink):
        sink.response(f"Fixed issues in {rel_path}")
        return True

    sink.error("Failed to fix file.")
    return False
