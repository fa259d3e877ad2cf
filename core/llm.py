"""
core/llm.py
本地 LLM fixer：与远程 /debug 接口契约相同，但在本进程内调用 LangChain Chat 模型。

fixer.provider = llm 时由 agent/runner.build_fixer 构造。
agent.provider 可选 anthropic（ChatAnthropic），以及 openai / deepseek / dashscope
（均走 ChatOpenAI，后两者为兼容接口）；API key 读取 <PROVIDER>_API_KEY 环境变量，
缺省时使用 agent.api_key。
"""

import os
import re

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from core.errors import FixRejectedError, FixTransportError
from utils.language_helper import get_language_from_path
from utils.logger_handler import logger


# provider → (API key 环境变量, base_url)；base_url 为 None 时使用官方地址
_OPENAI_COMPATIBLE = {
    "openai":    ("OPENAI_API_KEY", None),
    "deepseek":  ("DEEPSEEK_API_KEY", "https://api.deepseek.com"),
    "dashscope": ("DASHSCOPE_API_KEY", "https://dashscope.aliyuncs.com/compatible-mode/v1"),
}


def load_llm(agent_config: dict) -> BaseChatModel:
    """
    根据 agent_config 加载对应 LLM 实例。

    :param agent_config: config.yaml 中 agent 节的字典
    :return: LangChain BaseChatModel 子类实例
    :raises ValueError: provider 不支持时抛出
    """
    provider    = agent_config.get("provider", "openai")
    model       = agent_config.get("model", "gpt-4o-mini")
    temperature = float(agent_config.get("temperature", 0))

    logger.info(f"[LLM] 加载 fixer 模型 provider={provider}  model={model}")

    if provider == "anthropic":
        from langchain_anthropic import ChatAnthropic
        return ChatAnthropic(
            model=model,
            temperature=temperature,
            api_key=os.environ.get("ANTHROPIC_API_KEY") or agent_config.get("api_key"),
        )

    if provider not in _OPENAI_COMPATIBLE:
        raise ValueError(
            f"[LLM] 不支持的 provider: '{provider}'，"
            f"可选: anthropic / {' / '.join(_OPENAI_COMPATIBLE)}"
        )

    from langchain_openai import ChatOpenAI
    key_env, base_url = _OPENAI_COMPATIBLE[provider]
    kwargs = {"base_url": base_url} if base_url else {}
    return ChatOpenAI(
        model=model,
        temperature=temperature,
        api_key=os.environ.get(key_env) or agent_config.get("api_key"),
        **kwargs,
    )


def _fix_system_prompt(language: str, code_fence: str) -> str:
    return f"""\
You are a senior {language} engineer.
Fix the bug described by the error output in the given file.
If the error text says there is no runtime error, review the file statically
and fix any obvious defects; return it unchanged if there are none.

Output rules (strict):
- Output the complete fixed {language} file, do not omit any line
- Put the code inside a single ```{code_fence} ... ``` block
- No text outside the code block
"""


def extract_code_block(text: str, code_fence: str = "python") -> str:
    """
    从 LLM 输出中提取指定语言的代码块。
    未匹配到该语言时尝试任意 ```lang ... ```，再回退到原始文本（trimmed）。
    """
    escaped = re.escape(code_fence)
    matches = re.findall(rf"```{escaped}[ \t]*\n([\s\S]*?)```", text)
    if matches:
        return matches[0].strip() + "\n"

    any_block = re.findall(r"```[\w+-]*[ \t]*\n([\s\S]*?)```", text)
    if any_block:
        logger.warning(f"[LLM] 未找到 ```{code_fence}``` 代码块，使用其他代码块")
        return any_block[0].strip() + "\n"

    logger.warning("[LLM] 未找到代码块，使用原始 LLM 输出")
    return text.strip()


class LLMFixer:
    """与 RemoteFixer 同契约：fix(relative_path, content, error) -> 修复后内容。"""

    def __init__(self, llm: BaseChatModel):
        self.llm = llm

    def fix(self, relative_path: str, content: str, error: str) -> str:
        language, code_fence = get_language_from_path(relative_path)

        user_msg = (
            f"File: {relative_path}\n"
            f"```{code_fence}\n{content}\n```\n\n"
            f"Error output:\n```\n{error}\n```\n\n"
            f"Return the complete fixed file in a ```{code_fence} ... ``` block."
        )
        messages = [
            SystemMessage(content=_fix_system_prompt(language, code_fence)),
            HumanMessage(content=user_msg),
        ]

        try:
            response = self.llm.invoke(messages)
        except Exception as e:
            # provider SDK 的异常类型各不相同，统一归为传输失败
            raise FixTransportError(f"LLM call failed: {e}") from e

        fixed = extract_code_block(str(response.content or ""), code_fence)
        if not fixed.strip():
            raise FixRejectedError(f"LLM returned no fix for {relative_path}")

        logger.info(f"[LLM] 修复内容生成完成  {relative_path}  ({len(fixed)} chars)")
        return fixed
