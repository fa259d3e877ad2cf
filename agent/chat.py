"""
agent/chat.py
ChatSession：一次聊天 UI 会话内的对话编排。

- 对话记录（transcript）与待确认动作（pending_action）是会话对象的字段，
  随 ChatSession 实例存活，不使用全局变量。
- “fix / debug xxx.py” 这类输入直接走单文件修复，不请求 /chat。
- /chat 返回的消息按类型分发：
    文件 / 目录 / 项目创建 → 有序批量操作，汇总一次结果
    run_file              → 运行文件并回报输出
    auto_debug/debug_file → 启动调试会话（之后的消息不再处理）
    其余                  → 原样转发给 sink
"""

import os
import re
from typing import List, Optional

from agent.messages import (
    AutoDebug,
    CreateFile,
    CreateFiles,
    CreateFolder,
    CreateProject,
    DebugFile,
    RunFile,
    TextMessage,
    parse_message,
)
from agent.patcher import Fixer, debug_single_file
from agent.runner import run_debug_session
from agent.state import STATUS_SUCCESS
from core.errors import SpawnError, TransportError
from core.events import EventSink
from core.fixer_client import ChatClient
from tools.exec_tool import InterpreterResolver, build_command, run_process
from tools.folder_tool import FileOp, apply_file_batch
from tools.repo_tool import resolve_file_path
from utils.logger_handler import logger


_FIX_INTENT_RE = re.compile(r"fix|debug", re.IGNORECASE)
_SOURCE_FILE_RE = re.compile(r"([a-zA-Z0-9_\-./]+\.(?:py|js))")


class ChatSession:

    def __init__(
        self,
        root: str,
        client: ChatClient,
        fixer: Fixer,
        sink: EventSink,
        config: dict,
        resolver: Optional[InterpreterResolver] = None,
    ):
        self.root = root
        self.client = client
        self.fixer = fixer
        self.sink = sink
        self.config = config
        self.resolver = resolver or InterpreterResolver(
            configured=config.get("workspace", {}).get("python_executable")
        )
        self.transcript = ""
        self.pending_action: Optional[dict] = None

    # ── 入口 ──────────────────────────────────────────────────────────────

    def handle_user_message(self, text: str, files: Optional[List[dict]] = None) -> bool:
        """
        处理一条用户输入。

        :return: False = 后端不可达、单文件修复失败、触发的调试会话未成功，
                 或某个文件操作 / run_file 失败；其余为 True
        """
        debug_match = _SOURCE_FILE_RE.search(text)
        if _FIX_INTENT_RE.search(text) and debug_match:
            logger.info(f"[chat] 直接修复文件: {debug_match.group(1)}")
            return debug_single_file(self.root, debug_match.group(1), "", self.fixer, self.sink)

        pending, self.pending_action = self.pending_action, None
        try:
            messages = self.client.send(text, self.transcript, files=files, pending_action=pending)
        except TransportError as e:
            logger.error(f"[chat] 请求 /chat 失败: {e}")
            self.sink.error(f"Failed to reach AI backend: {e}")
            return False

        ok = True
        reply_texts: List[str] = []
        for raw in messages:
            message = parse_message(raw)

            if isinstance(message, (AutoDebug, DebugFile)):
                # 调试会话接管后续流程，本轮对话不写入 transcript
                state = self.start_debug(message.path if isinstance(message, DebugFile) else None)
                return state.get("status") == STATUS_SUCCESS

            if isinstance(message, TextMessage):
                if message.type == "confirmation":
                    self.pending_action = message.action
                if message.text:
                    reply_texts.append(message.text)

            ok = self.dispatch(message) and ok

        reply = "\n".join(reply_texts)
        self.transcript += f"User: {text}\nAssistant: {reply}\n"
        return ok

    # ── 分发 ──────────────────────────────────────────────────────────────

    def dispatch(self, message) -> bool:
        if isinstance(message, CreateFile):
            return self._apply_batch([FileOp("file", message.file_path, message.content)])
        if isinstance(message, CreateFiles):
            return self._apply_batch(
                [FileOp("file", f.get("path", ""), f.get("content", "")) for f in message.files]
            )
        if isinstance(message, CreateFolder):
            return self._apply_batch([FileOp("folder", message.folder_path)])
        if isinstance(message, CreateProject):
            ops = [FileOp("folder", message.folder)]
            ops += [
                FileOp("file", os.path.join(message.folder, f.get("path", "")), f.get("content", ""))
                for f in message.files
            ]
            return self._apply_batch(ops)
        if isinstance(message, RunFile):
            return self.run_file(message.path, message.environment)

        self.sink.forward(getattr(message, "raw", {}))
        return True

    def _apply_batch(self, operations: List[FileOp]) -> bool:
        result = apply_file_batch(self.root, operations)
        for path in result.succeeded:
            self.sink.status(f"Created: {path}")
        for error in result.errors:
            self.sink.error(error)
        return result.ok

    # ── 动作 ──────────────────────────────────────────────────────────────

    def start_debug(self, specific_file: Optional[str] = None):
        return run_debug_session(
            root=self.root,
            specific_file=specific_file,
            config=self.config,
            fixer=self.fixer,
            sink=self.sink,
            resolver=self.resolver,
        )

    def run_file(self, file_path: str, environment: Optional[str] = None) -> bool:
        """运行 workspace 中的文件，可选 conda 环境，输出通过 sink 回报。"""
        full_path = resolve_file_path(file_path, self.root)
        if not full_path:
            self.sink.error(f"File not found: {file_path}")
            return False

        command, args = build_command(full_path, self.resolver)
        if environment and environment != "none":
            command, args = "conda", ["run", "-n", environment, command, *args]

        timeout = float(self.config.get("workspace", {}).get("timeout", 15))
        self.sink.status(f"Running {os.path.basename(full_path)}...")
        try:
            result = run_process(command, args, cwd=self.root, timeout=timeout)
        except SpawnError as e:
            self.sink.error(str(e))
            return False

        if result.timed_out:
            self.sink.response(f"{os.path.basename(full_path)} is still running after {timeout}s; stopped.")
            return True

        output = "\n".join(part for part in (result.stdout.strip(), result.stderr.strip()) if part)
        self.sink.response(f"Exit code {result.exit_code}\n{output}".rstrip())
        return result.exit_code == 0
