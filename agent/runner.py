"""
agent/runner.py
调试循环的核心编排模块（DebugOrchestrator）。

职责：
  1. 加载 config/config.yaml
  2. 构造 fixer、解释器解析器及各节点函数
  3. 用 LangGraph StateGraph 构建 定位 → 运行 → 诊断 → 修复 → 运行 … 的循环
  4. 提供 run_debug_session() 入口，执行 graph.invoke()

Graph 拓扑：

  locate ──(无入口)──► END
     │
     ▼
    run ──(启动失败)──► END
     │
     ├──(成功 / 超时)──► success ──► END
     │
     ▼
  diagnose ──► fix ──(有文件修复失败)──► END
     ▲           │
     │           ▼
     │        solver ──(iteration >= max_iterations)──► END
     │           │
     └── run ◄───┘  (iteration + 1)
"""

import threading
from typing import Optional

from langgraph.graph import END, StateGraph

from agent.evaluator import make_locate_node, make_run_node
from agent.patcher import Fixer, make_fix_node
from agent.planner import make_diagnose_node
from agent.solver import (
    fix_route,
    locate_route,
    make_solver_node,
    make_success_node,
    run_route,
    solver_route,
)
from agent.state import ABORT_NO_WORKSPACE, STATUS_ABORTED, STATUS_RUNNING, DebugState
from core.errors import NoWorkspaceError
from core.events import EventSink, LoggingSink
from core.fixer_client import RemoteFixer
from core.llm import LLMFixer, load_llm
from tools.exec_tool import InterpreterResolver
from tools.repo_tool import DEFAULT_EXCLUDE_DIRS
from utils.config_handler import load_config
from utils.logger_handler import logger
from utils.path_tool import resolve_workspace_root


# ── 依赖构造 ───────────────────────────────────────────────────────────────

def build_fixer(config: dict) -> Fixer:
    """按 fixer.provider 构造 fixer：remote → /debug 接口，llm → 本地 LangChain 模型。"""
    provider = config.get("fixer", {}).get("provider", "remote")
    if provider == "llm":
        return LLMFixer(load_llm(config.get("agent", {})))
    if provider == "remote":
        backend = config.get("backend", {})
        return RemoteFixer(backend.get("url", ""), timeout=float(backend.get("request_timeout", 120)))
    raise ValueError(f"不支持的 fixer.provider: '{provider}'，请使用 remote / llm")


def build_resolver(config: dict) -> InterpreterResolver:
    return InterpreterResolver(configured=config.get("workspace", {}).get("python_executable"))


# ── Graph 构建 ─────────────────────────────────────────────────────────────

def build_graph(
    config: dict,
    fixer: Fixer,
    sink: EventSink,
    resolver: InterpreterResolver,
    cancel_event: Optional[threading.Event] = None,
):
    """
    构建并编译 LangGraph StateGraph。

    :param config:       完整 config 字典
    :param fixer:        fixer 实例（RemoteFixer / LLMFixer / 测试替身）
    :param sink:         事件出口
    :param resolver:     Python 解释器解析器
    :param cancel_event: 可选，置位后在下一个阶段边界终止会话
    :return:             已编译的 CompiledGraph 对象
    """
    workspace_config = config.get("workspace", {})
    exclude_dirs     = workspace_config.get("exclude_dirs") or DEFAULT_EXCLUDE_DIRS

    workflow = StateGraph(DebugState)

    workflow.add_node("locate", make_locate_node(sink, exclude_dirs))
    workflow.add_node("run", make_run_node(sink, resolver, workspace_config, cancel_event))
    workflow.add_node("success", make_success_node(fixer, sink))
    workflow.add_node("diagnose", make_diagnose_node(sink, workspace_config))
    workflow.add_node("fix", make_fix_node(fixer, sink, cancel_event))
    workflow.add_node("solver", make_solver_node(sink))

    workflow.set_entry_point("locate")

    workflow.add_conditional_edges("locate", locate_route, {"end": END, "run": "run"})
    workflow.add_conditional_edges(
        "run",
        run_route,
        {"end": END, "success": "success", "diagnose": "diagnose"},
    )
    workflow.add_edge("success", END)
    workflow.add_edge("diagnose", "fix")
    workflow.add_conditional_edges("fix", fix_route, {"end": END, "solver": "solver"})
    workflow.add_conditional_edges("solver", solver_route, {"end": END, "run": "run"})

    return workflow.compile()


# ── 对外入口 ───────────────────────────────────────────────────────────────

def run_debug_session(
    root: Optional[str] = None,
    specific_file: Optional[str] = None,
    config: Optional[dict] = None,
    config_path: Optional[str] = None,
    fixer: Optional[Fixer] = None,
    sink: Optional[EventSink] = None,
    resolver: Optional[InterpreterResolver] = None,
    cancel_event: Optional[threading.Event] = None,
) -> DebugState:
    """
    执行一次完整的 运行 → 诊断 → 修复 → 再运行 会话。

    :param root:          workspace 根目录；None 时使用 workspace.path 配置
    :param specific_file: 可选，用户指定要修复的文件（相对 / 绝对 / 仅文件名）
    :param config:        可选，已加载的配置字典；None 时从 config_path 加载
    :param config_path:   可选，config.yaml 路径
    :param fixer:         可选，fixer 实例；None 时按配置构造
    :param sink:          可选，事件出口；默认写日志
    :param resolver:      可选，解释器解析器（缓存随实例存活）
    :param cancel_event:  可选，取消信号（只在阶段边界生效）
    :return:              会话结束时的最终 DebugState
    """
    config = config if config is not None else load_config(config_path)
    sink   = sink or LoggingSink()

    agent_config     = config.get("agent", {})
    workspace_config = config.get("workspace", {})
    max_iterations   = int(agent_config.get("max_iterations", 5))

    try:
        root = resolve_workspace_root(root or workspace_config.get("path", ""))
    except NoWorkspaceError as e:
        logger.error(f"[runner] {e}")
        sink.error(str(e))
        return {
            "root":         root or "",
            "status":       STATUS_ABORTED,
            "abort_reason": ABORT_NO_WORKSPACE,
            "message":      str(e),
        }

    fixer    = fixer or build_fixer(config)
    resolver = resolver or build_resolver(config)

    logger.info("=" * 55)
    logger.info("[runner] Debug session 启动")
    logger.info(f"[runner] root           : {root}")
    logger.info(f"[runner] specific_file  : {specific_file}")
    logger.info(f"[runner] max_iterations : {max_iterations}")
    logger.info("=" * 55)

    initial_state: DebugState = {
        "root":           root,
        "specific_file":  specific_file,
        "specific_path":  None,
        "entry_point":    "",
        "iteration":      1,
        "max_iterations": max_iterations,
        "fixed_files":    [],
        "last_run":       None,
        "run_ok":         False,
        "error_output":   "",
        "affected_files": [],
        "status":         STATUS_RUNNING,
        "abort_reason":   None,
        "message":        "",
    }

    graph = build_graph(config, fixer, sink, resolver, cancel_event)
    # 每轮最多经过 run → diagnose → fix → solver 四个节点
    recursion_limit = max_iterations * 4 + 10
    final_state = graph.invoke(initial_state, config={"recursion_limit": recursion_limit})

    logger.info(f"[runner] 会话结束  status={final_state.get('status')}  reason={final_state.get('abort_reason')}")
    return final_state
