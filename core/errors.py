"""
core/errors.py
调试循环的错误分类。

- NoWorkspaceError   : 没有可用的 workspace 根目录，立即终止
- SpawnError         : 子进程无法启动，本次会话终止（不重试）
- TransportError     : 与后端通信失败（网络 / 非 2xx），FixTransportError 为 /debug 专用子类
- FixRejectedError   : fixer 正常返回但没有给出修复内容
- WorkspaceEscapeError : 路径落在 workspace 之外

找不到入口文件、超出运行轮数属于会话结局，以 abort_reason 表示（见 agent/state.py）。
超时（timeout）不是错误，见 tools/exec_tool.py。
"""


class AutoDebugError(Exception):
    """所有调试循环异常的基类。"""


class NoWorkspaceError(AutoDebugError):
    pass


class SpawnError(AutoDebugError):
    """子进程启动失败（命令不存在、无执行权限等）。"""

    def __init__(self, command: str, reason: str):
        super().__init__(f"Failed to start '{command}': {reason}")
        self.command = command
        self.reason = reason


class TransportError(AutoDebugError):
    """后端 HTTP 调用失败：连接错误、超时、非 2xx 状态码、响应不是 JSON。"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class FixRejectedError(AutoDebugError):
    """fixer 响应中缺少 fixed_content。"""


class WorkspaceEscapeError(AutoDebugError):
    pass


class FixTransportError(TransportError):
    """/debug 调用失败。"""
