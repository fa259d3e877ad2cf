"""
agent/solver.py
收敛判断与各节点之后的条件路由。

- success     : 运行成功后的收尾：对用户指定但尚未修复的文件做一次静态修复（尽力而为），输出完成报告
- solver      : 一轮修复全部成功后，判断是否还有运行预算；有则 iteration+1，无则终止
- *_route     : 节点之后的条件路由
"""

from agent.patcher import STATIC_ANALYSIS_MESSAGE, Fixer, fix_file
from agent.state import (
    ABORT_ITERATION_BUDGET,
    STATUS_ABORTED,
    STATUS_SUCCESS,
    DebugState,
)
from core.events import EventSink
from utils.logger_handler import logger


def make_success_node(fixer: Fixer, sink: EventSink):
    """
    工厂函数：返回 success 节点函数。

    静态修复的结果不影响会话结局：会话在这里总是以成功结束。
    """

    def success(state: DebugState) -> dict:
        iteration     = state["iteration"]
        specific_path = state.get("specific_path")

        if specific_path and specific_path not in state.get("fixed_files", []):
            logger.info(f"[solver] 无运行时错误，对指定文件做静态修复: {specific_path}")
            fix_file(specific_path, STATIC_ANALYSIS_MESSAGE, state["root"], fixer, sink)

        message = f"✅ No errors detected after {iteration} iteration(s)."
        logger.info(f"[solver] {message}")
        sink.response(message)
        return {"status": STATUS_SUCCESS, "abort_reason": None, "message": message}

    return success


def make_solver_node(sink: EventSink):
    """
    工厂函数：返回 solver 节点函数。

    iteration 达到 max_iterations 即终止（IterationBudgetExceeded），
    因此入口文件最多运行 max_iterations 次。
    """

    def solver(state: DebugState) -> dict:
        iteration      = state["iteration"]
        max_iterations = state["max_iterations"]

        if iteration >= max_iterations:
            message = f"Reached max iterations ({max_iterations}) without fixing all errors."
            logger.error(f"[solver] {message}")
            sink.error(message)
            return {
                "status":       STATUS_ABORTED,
                "abort_reason": ABORT_ITERATION_BUDGET,
                "message":      message,
            }

        logger.info(f"[solver] 修复已应用，进入第 {iteration + 1}/{max_iterations} 轮")
        return {"iteration": iteration + 1}

    return solver


# ── 条件路由 ───────────────────────────────────────────────────────────────

def _is_aborted(state: DebugState) -> bool:
    return state.get("status") == STATUS_ABORTED


def locate_route(state: DebugState) -> str:
    return "end" if _is_aborted(state) else "run"


def run_route(state: DebugState) -> str:
    """
    run 之后：
    - 启动失败 / 取消 → END
    - 运行成功（含超时）→ success
    - 否则 → diagnose
    """
    if _is_aborted(state):
        return "end"
    if state.get("run_ok"):
        return "success"
    return "diagnose"


def fix_route(state: DebugState) -> str:
    """fix 之后：有文件修复失败 → END；否则交给 solver 判断预算。"""
    return "end" if _is_aborted(state) else "solver"


def solver_route(state: DebugState) -> str:
    return "end" if _is_aborted(state) else "run"
