"""
agent/planner.py
[diagnose 节点]

职责：把失败运行的输出转换成本轮要修复的文件列表 affected_files。
  1. 从错误输出中提取堆栈涉及的 workspace 文件（tools/trace_tool）
  2. 用户指定了文件且不在列表中 → 追加到末尾
  3. 仍为空 → 回退到入口文件本身
"""

from agent.state import DebugState
from core.events import EventSink
from tools.exec_tool import RunResult
from tools.trace_tool import extract_files
from utils.logger_handler import logger


def describe_failure(result: RunResult, timeout: float = None) -> str:
    """失败运行的错误文本：stderr 优先，其次 stdout；都为空时给出合成描述。"""
    if result.error_output:
        return result.error_output
    if result.timed_out:
        return f"Process did not exit within {timeout}s and was terminated."
    return f"Process exited with code {result.exit_code} and produced no output."


def make_diagnose_node(sink: EventSink, workspace_config: dict = None):
    """
    工厂函数：返回 diagnose 节点函数。

    :param workspace_config: config.yaml 中 workspace 节的字典（仅用于超时描述）
    """
    timeout = (workspace_config or {}).get("timeout", 15)

    def diagnose(state: DebugState) -> dict:
        root          = state["root"]
        entry_point   = state["entry_point"]
        specific_path = state.get("specific_path")

        error_output = describe_failure(state["last_run"], timeout)
        logger.info(f"[planner] 错误输出: {error_output[:200]}")
        sink.status(f"Error detected:\n{error_output[:300]}...")

        affected_files = extract_files(error_output, root)

        if specific_path and specific_path not in affected_files:
            affected_files.append(specific_path)

        if not affected_files:
            logger.info("[planner] 堆栈中没有 workspace 文件，回退到入口文件")
            affected_files = [entry_point]

        logger.info(f"[planner] 本轮待修复文件: {affected_files}")
        return {"error_output": error_output, "affected_files": affected_files}

    return diagnose
