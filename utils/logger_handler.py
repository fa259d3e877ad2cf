"""
utils/logger_handler.py
全局日志：控制台 + 按天分文件的日志文件。

环境变量：
  AUTODEBUG_LOG_DIR    日志目录（默认 <工程根目录>/logs）
  AUTODEBUG_LOG_LEVEL  控制台日志级别（默认 INFO），文件日志始终记录 DEBUG
"""

import logging
import os
from datetime import datetime

from utils.path_tool import get_abs_path


#日志保存的根目录
LOG_ROOT = os.environ.get("AUTODEBUG_LOG_DIR") or get_abs_path("logs")

#日志格式：时间 - 级别 - 源文件:行号 - 内容
LOG_FORMAT = logging.Formatter(
    '%(asctime)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
)


def _console_level() -> int:
    level = logging.getLevelName(os.environ.get("AUTODEBUG_LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def _with_format(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(LOG_FORMAT)
    return handler


def _daily_log_file(name: str) -> str:
    os.makedirs(LOG_ROOT, exist_ok=True)
    return os.path.join(LOG_ROOT, f"{name}_{datetime.now():%Y%m%d}.log")


def get_logger(
        name: str = "autodebug",
        console_level: int = None,
        file_level: int = logging.DEBUG,
        log_file: str = None,
) -> logging.Logger:
    """
    获取命名 logger，首次调用时挂上控制台与文件两个 handler。

    :param console_level: 控制台级别，None 时读取 AUTODEBUG_LOG_LEVEL
    :param log_file:      日志文件路径，None 时为 LOG_ROOT/<name>_<日期>.log
    """
    logger = logging.getLogger(name)

    #同名 logger 只配置一次
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.addHandler(_with_format(logging.StreamHandler(), console_level or _console_level()))

    try:
        file_handler = logging.FileHandler(log_file or _daily_log_file(name), encoding="utf-8")
    except OSError as e:
        #日志目录不可写：只保留控制台输出
        logger.warning(f"[logger] 无法创建日志文件，仅输出到控制台: {e}")
    else:
        logger.addHandler(_with_format(file_handler, file_level))

    return logger


#快捷获取日志管理器
logger = get_logger()
