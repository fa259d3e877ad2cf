"""
agent/state.py
定义一次调试会话（DebugSession）的状态 DebugState。

LangGraph 中所有节点通过读写此 TypedDict 共享数据，
每个节点函数返回需要更新的字段子集，LangGraph 自动合并。
会话状态只在一次 run_debug_session 调用内存在，结束即丢弃，不做持久化。
"""

from typing import List, Optional, TypedDict

from tools.exec_tool import RunResult


# ── 会话状态 ───────────────────────────────────────────────────────────────
STATUS_RUNNING = "running"
STATUS_SUCCESS = "success"
STATUS_ABORTED = "aborted"

# ── 终止原因 ───────────────────────────────────────────────────────────────
ABORT_NO_WORKSPACE = "no_workspace"
ABORT_NO_ENTRY_POINT = "no_entry_point"
ABORT_SPAWN_ERROR = "spawn_error"
ABORT_PARTIAL_FIX_FAILURE = "partial_fix_failure"
ABORT_ITERATION_BUDGET = "iteration_budget_exceeded"
ABORT_CANCELLED = "cancelled"


class DebugState(TypedDict):
    # ── workspace & 入口 ──────────────────────────────────────────────────
    root:           str            # workspace 根目录（realpath）
    specific_file:  Optional[str]  # 用户指定的文件（原样），可为 None
    specific_path:  Optional[str]  # specific_file 解析后的绝对路径
    entry_point:    str            # 本次会话运行的入口文件

    # ── 循环控制 ───────────────────────────────────────────────────────────
    iteration:      int            # 当前第几轮运行，从 1 开始
    max_iterations: int            # 最大运行轮数
    fixed_files:    List[str]      # 本次会话已修复的文件（只增不减，保持顺序）

    # ── 运行 & 诊断结果 ────────────────────────────────────────────────────
    last_run:       Optional[RunResult]
    run_ok:         bool           # 本轮运行是否判定为成功（含超时）
    error_output:   str           # 用于诊断 / 修复的错误文本
    affected_files: List[str]      # 本轮需要修复的文件（诊断顺序）

    # ── 结局 ───────────────────────────────────────────────────────────────
    status:         str            # running | success | aborted
    abort_reason:   Optional[str]  # 见上方 ABORT_* 常量
    message:        str            # 最终报告文本
