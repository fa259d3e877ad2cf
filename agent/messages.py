"""
agent/messages.py
/chat 返回消息的类型定义（按 type 字段区分的 tagged union）。

未识别的 type 一律解析为 UnknownMessage，由调用方原样转发给 UI，
后端新增消息类型时无需改动本模块。
"""

from dataclasses import dataclass, field
from typing import List, Optional, Union


TEXT_TYPES = ("response", "error", "status", "confirmation")


@dataclass
class TextMessage:
    type:   str                      # response | error | status | confirmation
    text:   str = ""
    action: Optional[dict] = None    # confirmation 附带的待确认动作
    raw:    dict = field(default_factory=dict)


@dataclass
class CreateFile:
    file_path: str
    content:   str = ""
    raw:       dict = field(default_factory=dict)


@dataclass
class CreateFiles:
    files: List[dict] = field(default_factory=list)
    raw:   dict = field(default_factory=dict)


@dataclass
class CreateFolder:
    folder_path: str
    raw:         dict = field(default_factory=dict)


@dataclass
class CreateProject:
    folder: str
    files:  List[dict] = field(default_factory=list)
    raw:    dict = field(default_factory=dict)


@dataclass
class RunFile:
    path:        str
    environment: Optional[str] = None
    raw:         dict = field(default_factory=dict)


@dataclass
class DebugFile:
    path: str
    raw:  dict = field(default_factory=dict)


@dataclass
class AutoDebug:
    raw: dict = field(default_factory=dict)


@dataclass
class UnknownMessage:
    raw: dict = field(default_factory=dict)


ChatMessage = Union[
    TextMessage, CreateFile, CreateFiles, CreateFolder, CreateProject,
    RunFile, DebugFile, AutoDebug, UnknownMessage,
]


def parse_message(raw: dict) -> ChatMessage:
    """把 /chat 返回的一条原始消息解析为对应的类型。"""
    if not isinstance(raw, dict):
        return UnknownMessage(raw={"value": raw})

    kind = raw.get("type")

    if kind in TEXT_TYPES:
        return TextMessage(type=kind, text=raw.get("text") or "", action=raw.get("action"), raw=raw)
    if kind in ("create_file", "update_file"):
        return CreateFile(file_path=raw.get("file_path", ""), content=raw.get("content") or "", raw=raw)
    if kind == "create_files":
        return CreateFiles(files=list(raw.get("files") or []), raw=raw)
    if kind == "create_folder":
        return CreateFolder(folder_path=raw.get("folder_path", ""), raw=raw)
    if kind == "create_project":
        return CreateProject(folder=raw.get("folder", ""), files=list(raw.get("files") or []), raw=raw)
    if kind == "run_file":
        return RunFile(path=raw.get("path", ""), environment=raw.get("environment"), raw=raw)
    if kind == "debug_file":
        return DebugFile(path=raw.get("path", ""), raw=raw)
    if kind == "auto_debug":
        return AutoDebug(raw=raw)

    return UnknownMessage(raw=raw)
