"""对外 API 服务模块。

提供简化的函数接口供上层应用（HTTP 路由、脚本）调用。
"""

from typing import Any, Dict, Iterable, Mapping, Optional

from card_chat.domain.models import ChatMessage
from card_chat.flows.controller import OrchestrationController


_controller: Optional[OrchestrationController] = None


def get_default_controller() -> OrchestrationController:
    """获取默认的编排控制器实例（单例）。

    两个 Provider 的客户端与限流器在这里随控制器一起创建一次，
    之后所有请求共享。
    """
    global _controller
    if _controller is None:
        _controller = OrchestrationController.from_settings()
    return _controller


def run_chat(
    message: str,
    history: Optional[Iterable[Mapping[str, Any]]] = None,
) -> Dict[str, Any]:
    """回答一条用户消息。

    Args:
        message: 用户输入内容
        history: 之前的对话轮次，每项包含 role 与 content（可选）

    Returns:
        包含 response，以及可选 citations、provider 的字典

    Raises:
        ValidationError: 会话结构不合法
    """
    turns = [ChatMessage(role=item.get("role"), content=item.get("content")) for item in history or []]
    reply = get_default_controller().answer(message, turns)
    return reply.to_dict()
