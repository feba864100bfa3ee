"""Chat orchestration flow built on LangGraph."""

from card_chat.flows.controller import OrchestrationController
from card_chat.flows.graph import DEGRADED_REPLY, NOT_CONFIGURED_REPLY, ProviderLane

__all__ = ["OrchestrationController", "ProviderLane", "DEGRADED_REPLY", "NOT_CONFIGURED_REPLY"]
