"""High-level entry point for answering one chat message."""

from __future__ import annotations

import threading
import time
from collections import Counter
from typing import Callable, Dict, Optional, Sequence

import httpx

from card_chat.config.settings import settings
from card_chat.domain.exceptions import ValidationError
from card_chat.domain.models import ChatMessage, ChatReply, Deadline
from card_chat.flows.graph import DEGRADED_REPLY, ProviderLane, build_graph
from card_chat.flows.state import ChatFlowState
from card_chat.infrastructure.logging.logger import logger
from card_chat.prompts import load_system_prompt
from card_chat.providers import create_provider, create_rate_limiter


class OrchestrationController:
    """Turns one user message plus history into a single assistant reply.

    Rate limiters and provider clients are created once and shared by every
    request; the only mutable state is inside the limiters and the outcome
    counter, both lock protected.
    """

    def __init__(
        self,
        primary: Optional[ProviderLane],
        secondary: Optional[ProviderLane],
        *,
        request_deadline: float = 60.0,
        system_prompt: Optional[str] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._primary = primary
        self._secondary = secondary
        self._request_deadline = request_deadline
        self._system_prompt = system_prompt if system_prompt is not None else load_system_prompt()
        self._monotonic = monotonic
        self._graph = build_graph(primary, secondary)
        self._outcomes: Counter = Counter()
        self._outcomes_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        cfg=None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> "OrchestrationController":
        cfg = cfg or settings
        lanes = {}
        for provider_id in ("primary", "secondary"):
            lanes[provider_id] = ProviderLane(
                client=create_provider(provider_id, cfg, transport=transport, sleep=sleep),
                limiter=create_rate_limiter(provider_id, cfg, clock=clock),
            )
        return cls(
            lanes["primary"],
            lanes["secondary"],
            request_deadline=float(getattr(cfg, "request_deadline", 60.0)),
            monotonic=monotonic,
        )

    def answer(self, message: str, history: Optional[Sequence[ChatMessage]] = None) -> ChatReply:
        """Answer ``message`` given the earlier turns in ``history``.

        Raises:
            ValidationError: the resulting conversation breaks the user/assistant
                alternation rule. Every upstream failure is absorbed and turned
                into a canned reply instead.
        """

        messages = [ChatMessage(role="system", content=self._system_prompt)]
        messages.extend(history or [])
        messages.append(ChatMessage(role="user", content=message))
        state: ChatFlowState = {
            "messages": messages,
            "deadline": Deadline(self._request_deadline, clock=self._monotonic),
            "invalid_reason": None,
            "primary_error": None,
            "secondary_error": None,
            "result": None,
            "reply": None,
        }

        try:
            result = self._graph.invoke(state)
        except Exception as exc:
            logger.error(
                "chat.unexpected_error",
                exc_info=True,
                extra={"extra": {"error": str(exc)}},
            )
            self._record("degraded")
            return ChatReply(response=DEGRADED_REPLY, provider="none")

        self._record(result.get("outcome", "degraded"))
        if result.get("invalid_reason"):
            raise ValidationError(
                code="INVALID_CONVERSATION",
                message="invalid conversation",
                http_status=400,
                reason=result["invalid_reason"],
            )
        reply = result.get("reply")
        logger.info(
            "chat.answered",
            extra={"extra": {"provider": reply.provider, "outcome": result.get("outcome")}},
        )
        return reply

    def provider_status(self) -> Dict[str, bool]:
        return {
            "primary": self._primary is not None and self._primary.configured,
            "secondary": self._secondary is not None and self._secondary.configured,
        }

    def outcomes(self) -> Dict[str, int]:
        with self._outcomes_lock:
            return dict(self._outcomes)

    def _record(self, outcome: str) -> None:
        with self._outcomes_lock:
            self._outcomes[outcome] += 1
