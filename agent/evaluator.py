"""
agent/evaluator.py
[locate 节点] + [run 节点]

locate : 确定本次会话的入口文件（自动发现，失败时回退到用户指定文件）。
run    : 以固定超时运行入口文件，记录 RunResult 并判定本轮是否成功。
"""

import os
import threading
from typing import Optional, Sequence

from agent.state import (
    ABORT_CANCELLED,
    ABORT_NO_ENTRY_POINT,
    ABORT_SPAWN_ERROR,
    STATUS_ABORTED,
    DebugState,
)
from core.errors import SpawnError
from core.events import EventSink
from tools.exec_tool import InterpreterResolver, RunResult, run_file
from tools.repo_tool import DEFAULT_EXCLUDE_DIRS, find_entry_point, resolve_file_path
from utils.logger_handler import logger
from utils.path_tool import is_within_root


def is_clean_run(result: RunResult, timeout_is_success: bool = True) -> bool:
    """
    判定一次运行是否成功。

    - 超时：按 timeout_is_success 决定（默认视为成功，长时间运行的服务不算失败）
    - 否则：退出码为 0 且 stderr 为空白
    """
    if result.timed_out:
        return timeout_is_success
    return result.exit_code == 0 and not result.stderr.strip()


def _aborted(reason: str, message: str) -> dict:
    return {"status": STATUS_ABORTED, "abort_reason": reason, "message": message}


def make_locate_node(sink: EventSink, exclude_dirs: Sequence[str] = DEFAULT_EXCLUDE_DIRS):
    """
    工厂函数：返回 locate 节点函数。

    未指定文件：find_entry_point，找不到即终止（NoEntryPoint）。
    指定了文件：仍先找入口（为了拿到真实的运行时错误），找不到再直接运行指定文件。
    """

    def locate(state: DebugState) -> dict:
        root          = state["root"]
        specific_file = state.get("specific_file")

        specific_path = resolve_file_path(specific_file, root, exclude_dirs) if specific_file else None
        entry_point   = find_entry_point(root, exclude_dirs)

        if not entry_point:
            if not specific_file:
                message = "Could not determine entry point file to run."
                sink.error(message)
                return _aborted(ABORT_NO_ENTRY_POINT, message)

            sink.warning("Could not find main entry point; will run the specified file directly.")
            if not specific_path:
                message = f"File not found: {specific_file}"
                sink.error(message)
                return _aborted(ABORT_NO_ENTRY_POINT, message)
            entry_point = specific_path

        entry_point = os.path.realpath(entry_point)
        if not is_within_root(entry_point, root):
            message = f"Entry point is outside the workspace: {entry_point}"
            sink.error(message)
            return _aborted(ABORT_NO_ENTRY_POINT, message)

        logger.info(f"[evaluator] 入口文件: {entry_point}")
        sink.status(f"Debugging with entry point: {os.path.basename(entry_point)}")
        return {"entry_point": entry_point, "specific_path": specific_path}

    return locate


def make_run_node(
    sink: EventSink,
    resolver: InterpreterResolver,
    workspace_config: dict,
    cancel_event: Optional[threading.Event] = None,
):
    """
    工厂函数：返回 run 节点函数，通过闭包注入解释器解析器与 workspace 配置。

    :param workspace_config: config.yaml 中 workspace 节的字典
    """
    timeout            = float(workspace_config.get("timeout", 15))
    timeout_is_success = bool(workspace_config.get("timeout_is_success", True))

    def run(state: DebugState) -> dict:
        if cancel_event is not None and cancel_event.is_set():
            sink.warning("Debug session cancelled.")
            return _aborted(ABORT_CANCELLED, "Debug session cancelled.")

        iteration   = state["iteration"]
        entry_point = state["entry_point"]

        logger.info(f"[evaluator] 第 {iteration} 轮运行: {entry_point}")
        sink.status(f"Debugging iteration {iteration}...")

        try:
            result = run_file(entry_point, cwd=state["root"], resolver=resolver, timeout=timeout)
        except SpawnError as e:
            logger.error(f"[evaluator] 入口文件无法启动: {e}")
            message = f"Failed to run entry point: {e}"
            sink.error(message)
            return _aborted(ABORT_SPAWN_ERROR, message)

        run_ok = is_clean_run(result, timeout_is_success)
        if run_ok:
            logger.info("[evaluator] 运行成功" + ("（超时，视为服务正常）" if result.timed_out else ""))
        else:
            logger.warning(f"[evaluator] 运行失败  exit_code={result.exit_code}  stderr: {result.stderr[:300]}")

        return {"last_run": result, "run_ok": run_ok}

    return run
