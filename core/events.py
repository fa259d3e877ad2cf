"""
core/events.py
UI / 通知出口（sink）。

调试循环的每一步都以事件形式上报：status / warning / error / response。
来自 /chat 的未知消息原样 forward，渲染由 sink 的实现决定。
"""

from dataclasses import dataclass, field
from typing import Any, List

from utils.logger_handler import logger


@dataclass
class Event:
    type: str
    text: str = ""
    payload: dict = field(default_factory=dict)


class EventSink:
    """sink 基类：子类只需实现 emit。"""

    def emit(self, event: Event) -> None:
        raise NotImplementedError

    def status(self, text: str) -> None:
        self.emit(Event("status", text))

    def warning(self, text: str) -> None:
        self.emit(Event("warning", text))

    def error(self, text: str) -> None:
        self.emit(Event("error", text))

    def response(self, text: str) -> None:
        self.emit(Event("response", text))

    def forward(self, raw: dict) -> None:
        """透传 /chat 返回的原始消息（core 不理解其内容）。"""
        raw = dict(raw or {})
        self.emit(Event(str(raw.get("type", "")), raw.get("text") or "", raw))


class LoggingSink(EventSink):
    """默认 sink：把事件写入日志。"""

    _LEVELS = {"error": "error", "warning": "warning"}

    def emit(self, event: Event) -> None:
        level = self._LEVELS.get(event.type, "info")
        getattr(logger, level)(f"[{event.type}] {event.text}")


class ListSink(EventSink):
    """收集所有事件，供测试与批量展示使用。"""

    def __init__(self):
        self.events: List[Event] = []

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def texts(self, event_type: str = None) -> List[str]:
        return [e.text for e in self.events if event_type is None or e.type == event_type]

    def types(self) -> List[Any]:
        return [e.type for e in self.events]
