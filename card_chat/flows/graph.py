"""LangGraph construction and node implementations.

validate -> rate_check_primary -> call_primary -> normalize -> END
                 |                     |
                 v                     v
          rate_check_secondary -> call_secondary -> normalize -> END
                 |                     |
                 v                     v
              degrade -> END        degrade -> END

A denied rate check or any primary failure falls through to the secondary
provider; once the secondary is also unavailable the request ends in ``degrade``,
which produces a canned reply instead of an error.

When both providers are configured the primary only gets a share of the remaining
request budget, so a hanging primary still leaves time for the fallback call.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from card_chat.domain.exceptions import ProvidersExhaustedError
from card_chat.domain.models import ChatReply, ErrorKind, ProviderError, ProviderId, ProviderResult
from card_chat.domain.validation import validate_conversation
from card_chat.flows.state import ChatFlowState
from card_chat.infrastructure.logging.logger import logger
from card_chat.infrastructure.rate_limit import RateLimiter
from card_chat.providers.client import ProviderClient
from card_chat.text.markdown import normalize

DEGRADED_REPLY = (
    "I'm having trouble connecting to my knowledge base right now. "
    "Let me help you with some general advice about credit cards. "
    "What specific features are you looking for?"
)

NOT_CONFIGURED_REPLY = (
    "The credit card assistant is not available at the moment. "
    "Please browse our card comparisons or try again later."
)

# Share of the remaining budget the primary may spend when a secondary
# is configured; the rest is held back for the fallback call.
PRIMARY_BUDGET_SHARE = 0.5


@dataclass
class ProviderLane:
    """One upstream provider together with the rate limiter that guards it."""

    client: ProviderClient
    limiter: RateLimiter

    @property
    def configured(self) -> bool:
        return self.client.is_configured


def _configured(lane: Optional[ProviderLane]) -> bool:
    return lane is not None and lane.configured


def validate_node(state: ChatFlowState) -> ChatFlowState:
    result = validate_conversation(state["messages"])
    if not result.ok:
        logger.info("validate_node.invalid", extra={"extra": {"reason": result.reason}})
        return {"invalid_reason": result.reason, "outcome": "invalid"}
    return {"invalid_reason": None}


def rate_check_node(state: ChatFlowState, lane: Optional[ProviderLane], provider_id: ProviderId) -> ChatFlowState:
    if not _configured(lane):
        error = ProviderError(provider=provider_id, kind=ErrorKind.NOT_CONFIGURED, message="not configured")
        return {f"{provider_id}_allowed": False, f"{provider_id}_error": error}

    deadline = state.get("deadline")
    if deadline is not None and deadline.expired:
        # no call could follow, so the window slot is left for later requests
        error = ProviderError(provider=provider_id, kind=ErrorKind.TRANSIENT, message="request deadline exceeded")
        return {f"{provider_id}_allowed": False, f"{provider_id}_error": error}

    decision = lane.limiter.try_acquire()
    if decision.allowed:
        return {f"{provider_id}_allowed": True}
    error = ProviderError(
        provider=provider_id,
        kind=ErrorKind.RATE_LIMITED,
        message=f"local rate limit, resets at {decision.reset_at}",
    )
    return {f"{provider_id}_allowed": False, f"{provider_id}_error": error}


def call_node(
    state: ChatFlowState,
    lane: ProviderLane,
    provider_id: ProviderId,
    reserve_fallback: bool = False,
) -> ChatFlowState:
    deadline = state.get("deadline")
    if deadline is not None and reserve_fallback:
        deadline = deadline.share(PRIMARY_BUDGET_SHARE)
    logger.info("call_node.start", extra={"extra": {"provider": lane.client.name}})
    outcome = lane.client.complete(state["messages"], deadline)
    if isinstance(outcome, ProviderResult):
        return {"result": outcome}
    logger.info(
        "call_node.failed",
        extra={"extra": {"provider": lane.client.name, "kind": outcome.kind.value}},
    )
    return {f"{provider_id}_error": outcome}


def normalize_node(state: ChatFlowState) -> ChatFlowState:
    result = state["result"]
    reply = ChatReply(
        response=normalize(result.text),
        citations=list(result.citations),
        provider=result.provider,
    )
    return {"reply": reply, "outcome": result.provider}


def degrade_node(state: ChatFlowState) -> ChatFlowState:
    primary_error = state.get("primary_error")
    secondary_error = state.get("secondary_error")
    signal = ProvidersExhaustedError(
        primary=primary_error.kind.value if primary_error else None,
        secondary=secondary_error.kind.value if secondary_error else None,
    )
    logger.error(
        "chat.providers_exhausted",
        extra={"extra": {"code": signal.code, **signal.extra}},
    )
    return {"reply": ChatReply(response=DEGRADED_REPLY, provider="none"), "outcome": "degraded"}


def not_configured_node(state: ChatFlowState) -> ChatFlowState:
    logger.warning("chat.no_provider_configured")
    return {"reply": ChatReply(response=NOT_CONFIGURED_REPLY, provider="none"), "outcome": "not_configured"}


def build_graph(primary: Optional[ProviderLane], secondary: Optional[ProviderLane]) -> CompiledStateGraph:
    def after_validate(state: ChatFlowState) -> str:
        if state.get("invalid_reason"):
            return "end"
        if not _configured(primary) and not _configured(secondary):
            return "not_configured"
        return "primary" if _configured(primary) else "secondary"

    def after_rate_check(provider_id: ProviderId):
        return lambda s: "call" if s.get(f"{provider_id}_allowed") else "fallback"

    def after_call(state: ChatFlowState) -> str:
        return "normalize" if state.get("result") is not None else "fallback"

    graph = StateGraph(ChatFlowState)
    graph.add_node("validate", validate_node)
    graph.add_node("rate_check_primary", lambda s: rate_check_node(s, primary, "primary"))
    graph.add_node(
        "call_primary",
        lambda s: call_node(s, primary, "primary", reserve_fallback=_configured(secondary)),
    )
    graph.add_node("rate_check_secondary", lambda s: rate_check_node(s, secondary, "secondary"))
    graph.add_node("call_secondary", lambda s: call_node(s, secondary, "secondary"))
    graph.add_node("normalize", normalize_node)
    graph.add_node("degrade", degrade_node)
    graph.add_node("not_configured", not_configured_node)

    graph.set_entry_point("validate")
    graph.add_conditional_edges(
        "validate",
        after_validate,
        {
            "end": END,
            "not_configured": "not_configured",
            "primary": "rate_check_primary",
            "secondary": "rate_check_secondary",
        },
    )
    graph.add_conditional_edges(
        "rate_check_primary",
        after_rate_check("primary"),
        {"call": "call_primary", "fallback": "rate_check_secondary"},
    )
    graph.add_conditional_edges(
        "call_primary",
        after_call,
        {"normalize": "normalize", "fallback": "rate_check_secondary"},
    )
    graph.add_conditional_edges(
        "rate_check_secondary",
        after_rate_check("secondary"),
        {"call": "call_secondary", "fallback": "degrade"},
    )
    graph.add_conditional_edges(
        "call_secondary",
        after_call,
        {"normalize": "normalize", "fallback": "degrade"},
    )
    graph.add_edge("normalize", END)
    graph.add_edge("degrade", END)
    graph.add_edge("not_configured", END)
    return graph.compile()
