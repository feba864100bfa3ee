"""State definition for the chat orchestration graph."""

from __future__ import annotations

from typing import List, Optional, TypedDict

from card_chat.domain.models import ChatMessage, ChatReply, Deadline, ProviderError, ProviderResult


class ChatFlowState(TypedDict, total=False):
    """State shared across LangGraph nodes for one chat request."""

    messages: List[ChatMessage]
    deadline: Deadline
    invalid_reason: Optional[str]
    primary_allowed: bool
    secondary_allowed: bool
    primary_error: Optional[ProviderError]
    secondary_error: Optional[ProviderError]
    result: Optional[ProviderResult]
    reply: Optional[ChatReply]
    # primary / secondary / degraded / not_configured / invalid
    outcome: str
