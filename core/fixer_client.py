"""
core/fixer_client.py
远程后端的 HTTP 客户端。

  - RemoteFixer : POST {backend}/debug  {file_path, content, error} → {fixed_content?}
  - ChatClient  : POST {backend}/chat   {message, conversation_history, files?, pending_action?}
                  → {messages: [...]}
"""

from typing import Any, Dict, List, Optional

import requests

from core.errors import FixRejectedError, FixTransportError, TransportError
from utils.logger_handler import logger


def _post_json(url: str, payload: dict, timeout: float, error_cls=TransportError) -> Any:
    """POST JSON 并解析响应；连接失败、超时、非 2xx、非 JSON 均抛出 error_cls。"""
    try:
        response = requests.post(
            url,
            json=payload,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
    except requests.exceptions.RequestException as e:
        raise error_cls(f"Request to {url} failed: {e}") from e

    if not response.ok:
        raise error_cls(
            f"Backend error {response.status_code}",
            status_code=response.status_code,
        )

    try:
        return response.json()
    except ValueError as e:
        raise error_cls(f"Backend returned invalid JSON: {e}") from e


class RemoteFixer:
    """调用远程 /debug 接口的 fixer。"""

    def __init__(self, backend_url: str, timeout: float = 120):
        self.backend_url = backend_url.rstrip("/")
        self.timeout = timeout

    def fix(self, relative_path: str, content: str, error: str) -> str:
        """
        :return: 修复后的完整文件内容
        :raises FixTransportError: 网络失败或非 2xx
        :raises FixRejectedError:  响应中没有 fixed_content
        """
        logger.info(f"[fixer] POST /debug  file={relative_path}  ({len(content)} chars)")
        result = _post_json(
            f"{self.backend_url}/debug",
            {"file_path": relative_path, "content": content, "error": error},
            self.timeout,
            FixTransportError,
        )
        fixed = result.get("fixed_content") if isinstance(result, dict) else None
        if not fixed:
            raise FixRejectedError(f"Backend returned no fix for {relative_path}")
        return fixed


class ChatClient:
    """调用远程 /chat 接口。"""

    def __init__(self, backend_url: str, timeout: float = 120):
        self.backend_url = backend_url.rstrip("/")
        self.timeout = timeout

    def send(
        self,
        message: str,
        conversation_history: str,
        files: Optional[List[dict]] = None,
        pending_action: Optional[Dict[str, Any]] = None,
    ) -> List[dict]:
        payload: Dict[str, Any] = {
            "message": message,
            "conversation_history": conversation_history,
        }
        if files:
            payload["files"] = files
        if pending_action:
            payload["pending_action"] = pending_action

        logger.info(f"[chat] POST /chat  ({len(message)} chars)")
        data = _post_json(f"{self.backend_url}/chat", payload, self.timeout)
        messages = data.get("messages") if isinstance(data, dict) else None
        return messages if isinstance(messages, list) else []
