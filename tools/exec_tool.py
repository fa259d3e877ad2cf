"""
tools/exec_tool.py
在子进程中执行 workspace 的入口文件，捕获 stdout / stderr 和退出码。

超时策略：超时即强制终止子进程，并按“成功”返回（exit_code=0，输出为空）。
长时间运行的程序（Web 服务、守护进程）在超时窗口内没有崩溃，就视为健康。
"""

import os
import shutil
import signal
import subprocess
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from core.errors import SpawnError
from utils.language_helper import get_runtime_family
from utils.logger_handler import logger


DEFAULT_TIMEOUT = 15

NODE_COMMAND = "node"


@dataclass
class RunResult:
    stdout:    str
    stderr:    str
    exit_code: int
    timed_out: bool = False

    @property
    def error_output(self) -> str:
        """失败时用于诊断的文本：优先 stderr，否则 stdout。"""
        return self.stderr or self.stdout


class InterpreterResolver:
    """
    解析 Python 解释器命令。

    解析顺序：外部配置的解释器 → PATH 上第一个存在的候选命令 → "python"。
    解析结果缓存在实例上，实例存活多久缓存就有效多久（CLI 中为整个进程）。
    """

    def __init__(self, configured: Optional[str] = None, candidates: Optional[Sequence[str]] = None):
        self.configured = configured
        if candidates is None:
            candidates = ("python", "python3") if sys.platform == "win32" else ("python3", "python")
        self.candidates = tuple(candidates)
        self._cached: Optional[str] = None

    def resolve(self) -> str:
        if self._cached:
            return self._cached

        if self.configured:
            self._cached = self.configured
        else:
            self._cached = next(
                (cmd for cmd in self.candidates if shutil.which(cmd)),
                "python",
            )
        logger.debug(f"[exec] Python 解释器: {self._cached}")
        return self._cached


def build_command(file_path: str, resolver: InterpreterResolver) -> Tuple[str, List[str]]:
    """
    按后缀选择启动命令。

    :return: (command, args)；.py → 解释器，.js → node，其余直接执行
    """
    family = get_runtime_family(file_path)
    if family == "python":
        return resolver.resolve(), [file_path]
    if family == "node":
        return NODE_COMMAND, [file_path]
    return file_path, []


def _kill(proc: subprocess.Popen) -> None:
    """终止子进程；POSIX 下连同其进程组一起终止（服务进程常会派生子进程）。"""
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except (ProcessLookupError, PermissionError):
        proc.kill()


def run_process(
    command: str,
    args: Sequence[str],
    cwd: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> RunResult:
    """
    启动子进程并等待其结束或超时。

    :param command: 可执行命令或路径
    :param args:    参数列表
    :param cwd:     工作目录
    :param timeout: 最长等待秒数
    :return:        RunResult；超时时 exit_code=0、timed_out=True、输出为空
    :raises SpawnError: 命令不存在、无执行权限等导致无法启动
    """
    argv = [command, *args]
    logger.info(f"[exec] 执行: {' '.join(argv)}  (cwd={cwd}, timeout={timeout}s)")

    try:
        proc = subprocess.Popen(
            argv,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
            start_new_session=(os.name == "posix"),
        )
    except OSError as e:
        logger.error(f"[exec] 启动失败: {command} → {e}")
        raise SpawnError(command, e.strerror or str(e)) from e

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill(proc)
        try:
            proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            logger.warning(f"[exec] 子进程终止后管道仍未关闭: pid={proc.pid}")
        logger.info(f"[exec] 执行超时（>{timeout}s），按长时间运行的服务处理，视为成功")
        return RunResult(stdout="", stderr="", exit_code=0, timed_out=True)

    exit_code = proc.returncode
    if exit_code == 0:
        logger.info("[exec] 执行结束  returncode=0")
    else:
        logger.warning(f"[exec] 执行失败  returncode={exit_code}")
        logger.debug(f"[exec] stderr: {stderr[:500]}")

    return RunResult(stdout=stdout, stderr=stderr, exit_code=exit_code)


def run_file(
    file_path: str,
    cwd: str,
    resolver: InterpreterResolver,
    timeout: float = DEFAULT_TIMEOUT,
) -> RunResult:
    """按后缀选择命令运行 file_path，见 build_command / run_process。"""
    command, args = build_command(file_path, resolver)
    return run_process(command, args, cwd=cwd, timeout=timeout)
