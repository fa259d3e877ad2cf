"""
utils/config_handler.py
加载 config/config.yaml，返回按节划分的配置字典。

各模块用 dict.get(key, default) 读取，缺省值见 DEFAULT_CONFIG。
"""

import copy
import os

import yaml

from utils.logger_handler import logger
from utils.path_tool import get_abs_path


DEFAULT_BACKEND_URL = "https://vibe-vscodeextension-18.onrender.com"

DEFAULT_CONFIG: dict = {
    "backend": {
        "url":             DEFAULT_BACKEND_URL,
        "request_timeout": 120,
    },
    "fixer": {
        "provider": "remote",          # remote | llm
    },
    "agent": {
        "max_iterations": 5,
        "provider":       "openai",
        "model":          "gpt-4o-mini",
        "temperature":    0,
    },
    "workspace": {
        "path":               "workspace",
        "timeout":            15,
        "python_executable":  None,
        "exclude_dirs":       ["__pycache__", "node_modules", "venv", "site-packages"],
        "timeout_is_success": True,
    },
}


def _merge(base: dict, override: dict) -> dict:
    """按节合并：override 中出现的键覆盖 base，未出现的保留默认值。"""
    merged = copy.deepcopy(base)
    for section, values in (override or {}).items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def load_config(config_path: str = None) -> dict:
    """
    加载 YAML 配置并与默认值合并。

    :param config_path: 配置文件路径；None 时使用 config/config.yaml
    :return:            完整配置字典
    :raises FileNotFoundError: 显式指定的配置文件不存在
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = get_abs_path("config/config.yaml")

    if not os.path.isfile(config_path):
        if explicit:
            raise FileNotFoundError(f"配置文件不存在: {config_path}")
        logger.warning(f"[config] 未找到 {config_path}，使用默认配置")
        loaded = {}
    else:
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}

    config = _merge(DEFAULT_CONFIG, loaded)

    env_url = os.environ.get("AUTODEBUG_BACKEND_URL")
    if env_url:
        config["backend"]["url"] = env_url

    return config
