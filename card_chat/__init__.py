"""Card Chat 顶层包。

该包提供信用卡比价网站“问问助手”功能的对话编排核心，
包括配置加载、领域模型、Provider 适配、限流、回复修复、
编排状态机与 HTTP 接口。
"""

from card_chat.api.service import run_chat
from card_chat.flows.controller import OrchestrationController

__all__ = ["OrchestrationController", "run_chat"]
