"""
main.py
autodebug 命令行入口。

用法：
  python main.py                          # 调试 workspace.path 配置的目录
  python main.py -r ~/proj                # 指定 workspace 根目录
  python main.py -r ~/proj -f api/db.py   # 指定重点修复的文件
  python main.py -r ~/proj --chat "..."   # 发送一条聊天消息（可能触发调试）
  python main.py -c config/config.yaml    # 指定配置文件

退出码：会话成功为 0，其余（终止、配置错误、异常）为 1。
"""

import argparse
import sys

from agent.chat import ChatSession
from agent.runner import build_fixer, build_resolver, run_debug_session
from agent.state import STATUS_SUCCESS, DebugState
from core.errors import NoWorkspaceError
from core.events import LoggingSink
from core.fixer_client import ChatClient
from utils.config_handler import load_config
from utils.logger_handler import logger
from utils.path_tool import resolve_workspace_root


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autodebug",
        description="运行项目入口文件，按堆栈定位出错文件并交给 fixer 修复，直到运行成功",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("--root", "-r", help="workspace 根目录\n（默认: config.yaml 中的 workspace.path）")
    parser.add_argument("--file", "-f", help="需要重点修复的文件（相对 workspace 的路径或仅文件名）")
    parser.add_argument("--config", "-c", help="config.yaml 路径\n（默认: config/config.yaml）")
    parser.add_argument("--chat", metavar="MESSAGE", help="把一条消息发到后端 /chat，按返回的消息执行")
    return parser


def _chat(config: dict, root: str, text: str) -> int:
    try:
        root = resolve_workspace_root(root or config["workspace"].get("path", ""))
    except NoWorkspaceError as e:
        logger.error(str(e))
        return 1

    backend = config.get("backend", {})
    session = ChatSession(
        root=root,
        client=ChatClient(backend.get("url", ""), timeout=float(backend.get("request_timeout", 120))),
        fixer=build_fixer(config),
        sink=LoggingSink(),
        config=config,
        resolver=build_resolver(config),
    )
    return 0 if session.handle_user_message(text) else 1


def _report(final_state: DebugState) -> int:
    logger.info("-" * 55)
    if final_state.get("status") == STATUS_SUCCESS:
        logger.info(f"结果: 成功 ✓  {final_state.get('message', '')}")
        return 0

    logger.error(f"结果: 终止（{final_state.get('abort_reason')}）{final_state.get('message', '')}")
    fixed = final_state.get("fixed_files") or []
    if fixed:
        # 终止时已写回的文件不会回滚，列出来方便用户检查
        logger.error(f"已改写的文件: {', '.join(fixed)}")
    return 1


def main() -> None:
    args = _build_parser().parse_args()

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    if args.chat:
        sys.exit(_chat(config, args.root, args.chat))

    try:
        final_state = run_debug_session(root=args.root, specific_file=args.file, config=config)
    except Exception as e:
        logger.exception(f"调试会话异常退出: {e}")
        sys.exit(1)

    sys.exit(_report(final_state))


if __name__ == "__main__":
    main()
