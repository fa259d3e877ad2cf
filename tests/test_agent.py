"""
tests/test_agent.py

调试循环测试：
  ① core/fixer_client & core/llm：fixer 契约
  ② agent/patcher                ：单文件修复
  ③ agent/solver & evaluator     ：路由与收敛判断
  ④ agent/runner                 ：完整会话（真实子进程 + MagicMock fixer）
  ⑤ utils/config_handler         ：配置加载
"""

import os
import sys
import threading
from unittest.mock import MagicMock, patch

import pytest
import requests
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from agent.evaluator import is_clean_run, make_locate_node
from agent.patcher import STATIC_ANALYSIS_MESSAGE, debug_single_file, fix_file
from agent.planner import describe_failure
from agent.runner import build_fixer, run_debug_session
from agent.solver import fix_route, locate_route, make_solver_node, run_route, solver_route
from agent.state import (
    ABORT_CANCELLED,
    ABORT_ITERATION_BUDGET,
    ABORT_NO_ENTRY_POINT,
    ABORT_NO_WORKSPACE,
    ABORT_PARTIAL_FIX_FAILURE,
    ABORT_SPAWN_ERROR,
    STATUS_ABORTED,
    STATUS_SUCCESS,
)
from core.errors import FixRejectedError, FixTransportError
from core.fixer_client import ChatClient, RemoteFixer
from core.llm import LLMFixer, extract_code_block
from tools.exec_tool import InterpreterResolver, RunResult
from utils.config_handler import DEFAULT_BACKEND_URL, load_config


# ─── 公共辅助 ────────────────────────────────────────────────────────────────

def _write(path: str, code: str = "") -> str:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(code)
    return path


def _read(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _config(max_iterations: int = 5, **workspace) -> dict:
    """测试用配置：当前解释器 + 短超时。"""
    ws = {"timeout": 10, "python_executable": sys.executable, "timeout_is_success": True}
    ws.update(workspace)
    return {"agent": {"max_iterations": max_iterations}, "workspace": ws}


def _fixer(replacements: dict = None, default: str = "print('fixed')\n") -> MagicMock:
    """
    MagicMock fixer：按相对路径返回修复内容。
    replacements 中的值为异常实例时抛出该异常。
    """
    replacements = replacements or {}

    def fix(relative_path, content, error):
        value = replacements.get(relative_path, default)
        if isinstance(value, Exception):
            raise value
        return value

    fixer = MagicMock()
    fixer.fix.side_effect = fix
    return fixer


def _fixed_paths(fixer: MagicMock) -> list:
    return [c.args[0] for c in fixer.fix.call_args_list]


def _response(ok=True, status_code=200, payload=None):
    resp = MagicMock()
    resp.ok = ok
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else {}
    return resp


# ════════════════════════════════════════════════════════════════════════════
# ① fixer 契约
# ════════════════════════════════════════════════════════════════════════════

class TestRemoteFixer:

    def test_posts_relative_path_content_and_error(self):
        with patch("core.fixer_client.requests.post",
                   return_value=_response(payload={"fixed_content": "x = 1\n"})) as post:
            fixed = RemoteFixer("http://backend/", timeout=7).fix("src/app.py", "x = \n", "SyntaxError")

        assert fixed == "x = 1\n"
        args, kwargs = post.call_args
        assert args[0] == "http://backend/debug"
        assert kwargs["json"] == {"file_path": "src/app.py", "content": "x = \n", "error": "SyntaxError"}
        assert kwargs["timeout"] == 7

    @pytest.mark.parametrize("payload", [{}, {"fixed_content": ""}, {"fixed_content": None}, ["x"]])
    def test_missing_fixed_content_is_rejected(self, payload):
        with patch("core.fixer_client.requests.post", return_value=_response(payload=payload)):
            with pytest.raises(FixRejectedError):
                RemoteFixer("http://backend").fix("app.py", "x", "err")

    def test_non_2xx_is_transport_error(self):
        with patch("core.fixer_client.requests.post", return_value=_response(ok=False, status_code=502)):
            with pytest.raises(FixTransportError) as exc:
                RemoteFixer("http://backend").fix("app.py", "x", "err")
        assert exc.value.status_code == 502

    def test_connection_failure_is_transport_error(self):
        with patch("core.fixer_client.requests.post",
                   side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(FixTransportError):
                RemoteFixer("http://backend").fix("app.py", "x", "err")

    def test_chat_client_payload_and_messages(self):
        payload = {"messages": [{"type": "response", "text": "hi"}]}
        with patch("core.fixer_client.requests.post", return_value=_response(payload=payload)) as post:
            messages = ChatClient("http://backend").send(
                "hello", "User: a\n", pending_action={"type": "run_file"},
            )

        assert messages == [{"type": "response", "text": "hi"}]
        sent = post.call_args.kwargs["json"]
        assert sent["message"] == "hello"
        assert sent["conversation_history"] == "User: a\n"
        assert sent["pending_action"] == {"type": "run_file"}
        assert "files" not in sent

    def test_chat_client_without_messages_returns_empty(self):
        with patch("core.fixer_client.requests.post", return_value=_response(payload={"ok": True})):
            assert ChatClient("http://backend").send("hello", "") == []


class TestLLMFixer:

    def test_returns_code_block_and_sends_prompt(self):
        llm = MagicMock()
        llm.invoke.return_value = AIMessage(content="Here:\n```python\nprint('ok')\n```\nDone.")

        fixed = LLMFixer(llm).fix("app.py", "print('ok'", "SyntaxError: '(' was never closed")

        assert fixed == "print('ok')\n"
        messages = llm.invoke.call_args.args[0]
        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert "File: app.py" in messages[1].content
        assert "was never closed" in messages[1].content

    def test_llm_exception_is_transport_error(self):
        llm = MagicMock()
        llm.invoke.side_effect = RuntimeError("rate limited")

        with pytest.raises(FixTransportError):
            LLMFixer(llm).fix("app.py", "x", "err")

    def test_empty_answer_is_rejected(self):
        llm = MagicMock()
        llm.invoke.return_value = AIMessage(content="```python\n```")

        with pytest.raises(FixRejectedError):
            LLMFixer(llm).fix("app.py", "x", "err")

    def test_extract_code_block_fallbacks(self):
        assert extract_code_block("```js\nlet a = 1;\n```", "javascript") == "let a = 1;\n"
        assert extract_code_block("  x = 1  ", "python") == "x = 1"

    def test_build_fixer_by_provider(self):
        remote = build_fixer({"fixer": {"provider": "remote"}, "backend": {"url": "http://b/"}})
        assert isinstance(remote, RemoteFixer)
        assert remote.backend_url == "http://b"

        with pytest.raises(ValueError):
            build_fixer({"fixer": {"provider": "carrier-pigeon"}})


# ════════════════════════════════════════════════════════════════════════════
# ② agent/patcher
# ════════════════════════════════════════════════════════════════════════════

class TestPatcher:

    def test_fix_file_overwrites_in_place(self, tmp_dir, sink):
        path = _write(os.path.join(tmp_dir, "pkg", "mod.py"), "x = \n")
        fixer = _fixer({"pkg/mod.py": "x = 1\n"})

        assert fix_file(path, "SyntaxError", tmp_dir, fixer, sink) is True
        assert _read(path) == "x = 1\n"
        fixer.fix.assert_called_once_with("pkg/mod.py", "x = \n", "SyntaxError")
        assert "Fixed pkg/mod.py" in sink.texts("status")

    @pytest.mark.parametrize("error", [FixRejectedError("no fix"), FixTransportError("offline")])
    def test_failed_fix_leaves_file_untouched(self, tmp_dir, sink, error):
        path = _write(os.path.join(tmp_dir, "mod.py"), "x = \n")

        assert fix_file(path, "SyntaxError", tmp_dir, _fixer({"mod.py": error}), sink) is False
        assert _read(path) == "x = \n"
        assert any(t.startswith("Failed to fix mod.py") for t in sink.texts("error"))

    def test_debug_single_file(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "app.py"), "print(\n")

        assert debug_single_file(tmp_dir, "app.py", "", _fixer(), sink) is True
        assert "Fixed issues in app.py" in sink.texts("response")

    def test_debug_single_file_missing(self, tmp_dir, sink):
        fixer = _fixer()

        assert debug_single_file(tmp_dir, "ghost.py", "", fixer, sink) is False
        assert sink.texts("error") == ["File not found: ghost.py"]
        fixer.fix.assert_not_called()


# ════════════════════════════════════════════════════════════════════════════
# ③ 路由与收敛判断
# ════════════════════════════════════════════════════════════════════════════

class TestRouting:

    def test_is_clean_run(self):
        assert is_clean_run(RunResult("ok\n", "", 0)) is True
        assert is_clean_run(RunResult("", "  \n", 0)) is True
        assert is_clean_run(RunResult("", "DeprecationWarning: x", 0)) is False
        assert is_clean_run(RunResult("", "", 1)) is False
        assert is_clean_run(RunResult("", "", 0, timed_out=True)) is True
        assert is_clean_run(RunResult("", "", 0, timed_out=True), timeout_is_success=False) is False

    def test_describe_failure(self):
        assert describe_failure(RunResult("out", "err", 1)) == "err"
        assert describe_failure(RunResult("out", "", 1)) == "out"
        assert "code 4" in describe_failure(RunResult("", "", 4))
        assert "within 3s" in describe_failure(RunResult("", "", 0, timed_out=True), 3)

    def test_routes(self):
        aborted = {"status": STATUS_ABORTED}
        assert locate_route(aborted) == "end"
        assert locate_route({}) == "run"
        assert run_route(aborted) == "end"
        assert run_route({"run_ok": True}) == "success"
        assert run_route({"run_ok": False}) == "diagnose"
        assert fix_route(aborted) == "end"
        assert fix_route({}) == "solver"
        assert solver_route(aborted) == "end"
        assert solver_route({"iteration": 2}) == "run"

    def test_solver_counts_against_budget(self, sink):
        solver = make_solver_node(sink)

        assert solver({"iteration": 2, "max_iterations": 5}) == {"iteration": 3}

        update = solver({"iteration": 5, "max_iterations": 5})
        assert update["status"] == STATUS_ABORTED
        assert update["abort_reason"] == ABORT_ITERATION_BUDGET
        assert sink.texts("error") == ["Reached max iterations (5) without fixing all errors."]


# ════════════════════════════════════════════════════════════════════════════
# ④ 完整会话
# ════════════════════════════════════════════════════════════════════════════

class TestDebugSession:

    def test_clean_project_succeeds_without_fixing(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "main.py"), "print('hello')\n")
        fixer = _fixer()

        state = run_debug_session(root=tmp_dir, config=_config(), fixer=fixer, sink=sink)

        assert state["status"] == STATUS_SUCCESS
        assert state["iteration"] == 1
        fixer.fix.assert_not_called()
        assert sink.texts("status")[0] == "Debugging with entry point: main.py"
        assert sink.texts("response") == ["✅ No errors detected after 1 iteration(s)."]

    def test_long_running_service_counts_as_success(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "app.py"), "import time\ntime.sleep(30)\n")
        fixer = _fixer()

        state = run_debug_session(root=tmp_dir, config=_config(timeout=1), fixer=fixer, sink=sink)

        assert state["status"] == STATUS_SUCCESS
        fixer.fix.assert_not_called()

    def test_timeout_as_failure_when_configured(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "app.py"), "import time\ntime.sleep(30)\n")
        fixer = _fixer({"app.py": "import time\ntime.sleep(30)\n"})

        state = run_debug_session(
            root=tmp_dir,
            config=_config(max_iterations=1, timeout=1, timeout_is_success=False),
            fixer=fixer,
            sink=sink,
        )

        assert state["abort_reason"] == ABORT_ITERATION_BUDGET
        assert "did not exit within" in fixer.fix.call_args.args[2]

    def test_one_round_fix(self, tmp_dir, sink):
        main = _write(os.path.join(tmp_dir, "main.py"), "raise ValueError('boom')\n")
        fixer = _fixer({"main.py": "print('fixed')\n"})

        state = run_debug_session(root=tmp_dir, config=_config(), fixer=fixer, sink=sink)

        assert state["status"] == STATUS_SUCCESS
        assert state["iteration"] == 2
        assert state["fixed_files"] == [main]
        assert _read(main) == "print('fixed')\n"
        assert "ValueError: boom" in fixer.fix.call_args.args[2]
        assert "✅ No errors detected after 2 iteration(s)." in sink.texts("response")

    def test_fixes_follow_traceback_order(self, tmp_dir, sink):
        main = _write(os.path.join(tmp_dir, "main.py"), "import helper\nhelper.run()\n")
        helper = _write(os.path.join(tmp_dir, "helper.py"), "def run():\n    raise RuntimeError('bad')\n")
        fixer = _fixer({
            "main.py": "import helper\nhelper.run()\n",
            "helper.py": "def run():\n    return 1\n",
        })

        state = run_debug_session(root=tmp_dir, config=_config(), fixer=fixer, sink=sink)

        assert state["status"] == STATUS_SUCCESS
        assert _fixed_paths(fixer) == ["main.py", "helper.py"]
        assert state["fixed_files"] == [main, helper]

    def test_partial_fix_failure_aborts_without_rollback(self, tmp_dir, sink):
        main = _write(os.path.join(tmp_dir, "main.py"), "import helper\nhelper.run()\n")
        helper = _write(os.path.join(tmp_dir, "helper.py"), "def run():\n    raise RuntimeError('bad')\n")
        fixer = _fixer({
            "main.py": "# patched\nimport helper\nhelper.run()\n",
            "helper.py": FixRejectedError("no fix"),
        })

        state = run_debug_session(root=tmp_dir, config=_config(), fixer=fixer, sink=sink)

        assert state["status"] == STATUS_ABORTED
        assert state["abort_reason"] == ABORT_PARTIAL_FIX_FAILURE
        assert _read(main).startswith("# patched")
        assert _read(helper) == "def run():\n    raise RuntimeError('bad')\n"
        assert "Some files could not be fixed. Aborting." in sink.texts("error")
        assert sink.texts("status").count("Debugging iteration 1...") == 1
        assert "Debugging iteration 2..." not in sink.texts("status")

    def test_iteration_budget_bounds_runs(self, tmp_dir, sink):
        code = "with open('runs.log', 'a') as f:\n    f.write('run\\n')\nraise SystemExit('still broken')\n"
        _write(os.path.join(tmp_dir, "main.py"), code)
        fixer = _fixer({"main.py": code})

        state = run_debug_session(root=tmp_dir, config=_config(max_iterations=5), fixer=fixer, sink=sink)

        assert state["status"] == STATUS_ABORTED
        assert state["abort_reason"] == ABORT_ITERATION_BUDGET
        assert _read(os.path.join(tmp_dir, "runs.log")).count("run") == 5
        # main.py 第一轮修复后进入 fixed_files，之后的轮次不再重复提交
        assert fixer.fix.call_count == 1
        assert "Reached max iterations (5) without fixing all errors." in sink.texts("error")

    def test_no_entry_point(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "lib.py"), "x = 1\n")

        state = run_debug_session(root=tmp_dir, config=_config(), fixer=_fixer(), sink=sink)

        assert state["abort_reason"] == ABORT_NO_ENTRY_POINT
        assert sink.texts("error") == ["Could not determine entry point file to run."]

    def test_entry_point_linked_outside_workspace_is_never_run(self, tmp_dir, sink):
        root = os.path.join(tmp_dir, "proj")
        os.makedirs(root)
        evil = _write(os.path.join(tmp_dir, "outside", "evil.py"), "raise RuntimeError('outside')\n")
        os.symlink(evil, os.path.join(root, "main.py"))
        fixer = _fixer()

        state = run_debug_session(root=root, config=_config(), fixer=fixer, sink=sink)

        assert state["abort_reason"] == ABORT_NO_ENTRY_POINT
        assert sink.texts("error") == ["Could not determine entry point file to run."]
        fixer.fix.assert_not_called()
        assert _read(evil) == "raise RuntimeError('outside')\n"

    def test_locate_refuses_entry_point_outside_workspace(self, tmp_dir, sink):
        root = os.path.join(tmp_dir, "proj")
        os.makedirs(root)
        evil = _write(os.path.join(tmp_dir, "outside", "main.py"))

        with patch("agent.evaluator.find_entry_point", return_value=evil):
            update = make_locate_node(sink)({"root": root, "specific_file": None})

        assert update["status"] == STATUS_ABORTED
        assert update["abort_reason"] == ABORT_NO_ENTRY_POINT
        assert sink.texts("error") == [f"Entry point is outside the workspace: {evil}"]

    def test_falls_back_to_specific_file(self, tmp_dir, sink):
        tool = _write(os.path.join(tmp_dir, "scripts", "tool.py"), "raise KeyError('k')\n")
        fixer = _fixer({"scripts/tool.py": "print('ok')\n"})

        state = run_debug_session(
            root=tmp_dir, specific_file="tool.py", config=_config(), fixer=fixer, sink=sink,
        )

        assert state["status"] == STATUS_SUCCESS
        assert state["entry_point"] == tool
        assert "Could not find main entry point; will run the specified file directly." in sink.texts("warning")
        # 已在循环中修复过，成功后不再做静态修复
        assert fixer.fix.call_count == 1

    def test_missing_specific_file_without_entry_point(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "lib.py"), "x = 1\n")

        state = run_debug_session(
            root=tmp_dir, specific_file="ghost.py", config=_config(), fixer=_fixer(), sink=sink,
        )

        assert state["abort_reason"] == ABORT_NO_ENTRY_POINT
        assert "File not found: ghost.py" in sink.texts("error")

    def test_specific_file_is_appended_to_diagnosis(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "main.py"), "raise ValueError('boom')\n")
        _write(os.path.join(tmp_dir, "util.py"), "X = 1\n")
        fixer = _fixer({"main.py": "print('ok')\n", "util.py": "X = 2\n"})

        state = run_debug_session(
            root=tmp_dir, specific_file="util.py", config=_config(), fixer=fixer, sink=sink,
        )

        assert state["status"] == STATUS_SUCCESS
        assert _fixed_paths(fixer) == ["main.py", "util.py"]

    def test_static_pass_on_clean_run(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "main.py"), "print('hello')\n")
        util = _write(os.path.join(tmp_dir, "util.py"), "def add(a, b):\n    return a - b\n")
        fixer = _fixer({"util.py": "def add(a, b):\n    return a + b\n"})

        state = run_debug_session(
            root=tmp_dir, specific_file="util.py", config=_config(), fixer=fixer, sink=sink,
        )

        assert state["status"] == STATUS_SUCCESS
        fixer.fix.assert_called_once_with("util.py", "def add(a, b):\n    return a - b\n", STATIC_ANALYSIS_MESSAGE)
        assert _read(util).endswith("return a + b\n")

    def test_failed_static_pass_still_succeeds(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "main.py"), "print('hello')\n")
        _write(os.path.join(tmp_dir, "util.py"), "X = 1\n")
        fixer = _fixer({"util.py": FixTransportError("offline")})

        state = run_debug_session(
            root=tmp_dir, specific_file="util.py", config=_config(), fixer=fixer, sink=sink,
        )

        assert state["status"] == STATUS_SUCCESS

    def test_stdout_only_failure_is_diagnosed(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "main.py"), "print('fatal: config missing')\nraise SystemExit(3)\n")
        fixer = _fixer({"main.py": "print('ok')\n"})

        state = run_debug_session(root=tmp_dir, config=_config(), fixer=fixer, sink=sink)

        assert state["status"] == STATUS_SUCCESS
        assert "fatal: config missing" in fixer.fix.call_args.args[2]

    def test_silent_failure_gets_synthetic_error(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "main.py"), "raise SystemExit(2)\n")
        fixer = _fixer({"main.py": "print('ok')\n"})

        run_debug_session(root=tmp_dir, config=_config(), fixer=fixer, sink=sink)

        assert fixer.fix.call_args.args[2] == "Process exited with code 2 and produced no output."

    def test_spawn_error_aborts(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "main.py"), "print('hello')\n")
        fixer = _fixer()

        state = run_debug_session(
            root=tmp_dir,
            config=_config(),
            fixer=fixer,
            sink=sink,
            resolver=InterpreterResolver(configured=os.path.join(tmp_dir, "no-such-python")),
        )

        assert state["abort_reason"] == ABORT_SPAWN_ERROR
        assert sink.texts("error")[0].startswith("Failed to run entry point:")
        fixer.fix.assert_not_called()

    def test_no_workspace(self, tmp_dir, sink):
        state = run_debug_session(
            root=os.path.join(tmp_dir, "missing"), config=_config(), fixer=_fixer(), sink=sink,
        )
        assert state["abort_reason"] == ABORT_NO_WORKSPACE

        cfg = _config(path="")
        state = run_debug_session(root=None, config=cfg, fixer=_fixer(), sink=sink)
        assert state["abort_reason"] == ABORT_NO_WORKSPACE
        assert "Please open a folder before debugging." in sink.texts("error")

    def test_cancelled_before_run(self, tmp_dir, sink):
        _write(os.path.join(tmp_dir, "main.py"), "raise ValueError('boom')\n")
        fixer = _fixer()
        cancel = threading.Event()
        cancel.set()

        state = run_debug_session(
            root=tmp_dir, config=_config(), fixer=fixer, sink=sink, cancel_event=cancel,
        )

        assert state["abort_reason"] == ABORT_CANCELLED
        fixer.fix.assert_not_called()


# ════════════════════════════════════════════════════════════════════════════
# ⑤ utils/config_handler
# ════════════════════════════════════════════════════════════════════════════

class TestConfig:

    def test_explicit_missing_file_raises(self, tmp_dir):
        with pytest.raises(FileNotFoundError):
            load_config(os.path.join(tmp_dir, "nope.yaml"))

    def test_yaml_overrides_merge_with_defaults(self, tmp_dir, monkeypatch):
        monkeypatch.delenv("AUTODEBUG_BACKEND_URL", raising=False)
        path = _write(
            os.path.join(tmp_dir, "config.yaml"),
            "workspace:\n  timeout: 3\nagent:\n  max_iterations: 2\n",
        )

        config = load_config(path)

        assert config["workspace"]["timeout"] == 3
        assert config["workspace"]["timeout_is_success"] is True
        assert config["agent"]["max_iterations"] == 2
        assert config["backend"]["url"] == DEFAULT_BACKEND_URL

    def test_backend_url_from_environment(self, tmp_dir, monkeypatch):
        monkeypatch.setenv("AUTODEBUG_BACKEND_URL", "http://localhost:8000")
        path = _write(os.path.join(tmp_dir, "config.yaml"), "")

        assert load_config(path)["backend"]["url"] == "http://localhost:8000"
