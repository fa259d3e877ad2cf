"""
utils/language_helper.py
根据文件后缀识别语言与运行时家族。

- get_language_from_path : (语言显示名, 代码块标记)，供 LLM fixer 构造提示词与提取代码块
- get_runtime_family     : "python" / "node" / None，供 exec_tool 选择启动命令
"""

import os
from typing import Optional, Tuple

# 后缀 -> (语言显示名, 代码块标记)
_EXT_TO_LANG: dict[str, Tuple[str, str]] = {
    ".py":   ("Python", "python"),
    ".js":   ("JavaScript", "javascript"),
    ".mjs":  ("JavaScript", "javascript"),
    ".cjs":  ("JavaScript", "javascript"),
    ".ts":   ("TypeScript", "typescript"),
    ".jsx":  ("JavaScript React", "jsx"),
    ".tsx":  ("TypeScript React", "tsx"),
    ".sh":   ("Shell", "bash"),
    ".go":   ("Go", "go"),
    ".rb":   ("Ruby", "ruby"),
    ".java": ("Java", "java"),
}

# 后缀 -> 运行时家族；不在表中的文件直接作为可执行文件运行
_EXT_TO_RUNTIME: dict[str, str] = {
    ".py": "python",
    ".js": "node",
}


def get_language_from_path(file_path: str) -> Tuple[str, str]:
    """
    根据文件路径得到语言名和代码块标记。

    :param file_path: 目标文件路径（如 src/app.js）
    :return: (language_name, code_fence)，如 ("JavaScript", "javascript")
    """
    if not file_path:
        return "Python", "python"
    _, ext = os.path.splitext(file_path)
    return _EXT_TO_LANG.get(ext.lower(), ("Python", "python"))


def get_runtime_family(file_path: str) -> Optional[str]:
    _, ext = os.path.splitext(file_path or "")
    return _EXT_TO_RUNTIME.get(ext.lower())
