"""统一的 Provider 客户端。

本模块负责：

1. 在每条 user 消息前注入领域限定语，保证回答不跑题。
2. 通过厂商策略把会话转换为具体 API 请求。
3. 以有界超时调用 HTTP 接口，并把结果分类为成功或某一类错误。
4. 对瞬时错误（5xx / 网络错误）按 base_delay × 第 n 次 的退避重试，
   限流与鉴权类错误立即返回，不浪费配额。

失败以 ProviderError 值返回而不是抛异常，编排层按 ErrorKind 做状态转移。
"""

import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from card_chat.config.settings import settings
from card_chat.domain.models import (
    ChatMessage,
    Deadline,
    ErrorKind,
    ProviderError,
    ProviderOutcome,
    ProviderResult,
)
from card_chat.infrastructure.logging.logger import logger
from card_chat.providers.base import ProviderStrategy

# 响应体里表示“配额耗尽”的标记（Gemini status / OpenAI 风格 type、code）
_QUOTA_MARKERS = {"resource_exhausted", "rate_limit_exceeded", "insufficient_quota", "429"}


def _is_quota_error(data: Optional[Dict[str, Any]]) -> bool:
    if not isinstance(data, dict):
        return False
    err = data.get("error")
    if isinstance(err, list) and err:
        err = err[0]
    if not isinstance(err, dict):
        return False
    markers = {str(err.get(k, "")).lower() for k in ("status", "type", "code")}
    return bool(markers & _QUOTA_MARKERS)


class ProviderClient:
    """由 ProviderStrategy 参数化的客户端，Primary / Secondary 共用同一套控制流。"""

    def __init__(
        self,
        strategy: ProviderStrategy,
        cfg=settings,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._strategy = strategy
        self._settings = cfg
        # 测试时可注入 httpx.MockTransport
        self._transport = transport
        self._sleep = sleep

    @property
    def name(self) -> str:
        return self._strategy.name

    @property
    def provider_id(self):
        return self._strategy.provider_id

    @property
    def is_configured(self) -> bool:
        return self._strategy.is_configured

    def complete(self, messages: Sequence[ChatMessage], deadline: Optional[Deadline] = None) -> ProviderOutcome:
        """执行一次带重试的补全调用。

        步骤：
        1. 注入领域限定语并构造厂商 payload。
        2. 最多 provider_max_attempts 次调用，仅 TRANSIENT 错误会重试。
        3. 截止时间已到，或下一次退避会超出截止时间时，放弃剩余尝试。
        """

        if not self.is_configured:
            return ProviderError(
                provider=self.provider_id,
                kind=ErrorKind.NOT_CONFIGURED,
                message=f"{self.name} api key not set",
            )

        payload = self._strategy.build_payload(self._scope_messages(messages))
        max_attempts = max(1, int(getattr(self._settings, "provider_max_attempts", 3)))
        base_delay = float(getattr(self._settings, "retry_base_delay", 1.0))

        last_error: Optional[ProviderError] = None
        for attempt in range(1, max_attempts + 1):
            if deadline is not None and deadline.expired:
                return self._abandon(last_error, attempt - 1)

            outcome = self._send(payload, self._timeout(deadline))
            outcome.attempts = attempt
            if isinstance(outcome, ProviderResult):
                logger.info(
                    "provider.success",
                    extra={"extra": {"provider": self.name, "attempts": attempt}},
                )
                return outcome

            self._log_failure(outcome)
            if not outcome.kind.retryable:
                return outcome
            last_error = outcome

            if attempt < max_attempts:
                delay = base_delay * attempt
                if deadline is not None and deadline.remaining() <= delay:
                    return self._abandon(last_error, attempt)
                logger.info(
                    "provider.retry",
                    extra={"extra": {
                        "provider": self.name,
                        "attempt": attempt + 1,
                        "max_attempts": max_attempts,
                        "delay": delay,
                    }},
                )
                self._sleep(delay)

        return last_error

    # ---- 辅助方法 ----

    def _scope_messages(self, messages: Sequence[ChatMessage]) -> List[ChatMessage]:
        instruction = (getattr(self._settings, "domain_instruction", "") or "").strip()
        if not instruction:
            return list(messages)
        return [
            ChatMessage(role="user", content=f"{instruction} {m.content}") if m.role == "user" else m
            for m in messages
        ]

    def _timeout(self, deadline: Optional[Deadline]) -> float:
        timeout = float(self._settings.http_timeout)
        if deadline is not None:
            timeout = min(timeout, max(deadline.remaining(), 0.001))
        return timeout

    def _send(self, payload: Dict[str, Any], timeout: float) -> ProviderOutcome:
        try:
            with httpx.Client(timeout=timeout, trust_env=False, transport=self._transport) as client:
                resp = client.post(
                    self._strategy.endpoint(),
                    json=payload,
                    headers=self._strategy.headers(),
                )
        except httpx.TimeoutException as e:
            return self._error(ErrorKind.TRANSIENT, f"timeout: {e}")
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接被拒等
            return self._error(ErrorKind.TRANSIENT, f"network error: {e}")
        return self._classify(resp)

    def _classify(self, resp) -> ProviderOutcome:
        status = resp.status_code
        data = self._decode(resp)
        if 200 <= status < 300:
            if data is None:
                return self._error(ErrorKind.TRANSIENT, "undecodable response body", status)
            try:
                text, citations = self._strategy.parse_response(data)
            except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
                return self._error(ErrorKind.TRANSIENT, f"malformed response: {e}", status)
            return ProviderResult(text=text, citations=list(citations), provider=self.provider_id)

        detail = f"{self.name} api error ({status}): {self._body_preview(resp)}"
        if status == 429 or _is_quota_error(data):
            return self._error(ErrorKind.RATE_LIMITED, detail, status)
        if status in (401, 403):
            return self._error(ErrorKind.AUTH, detail, status)
        if status >= 500:
            return self._error(ErrorKind.TRANSIENT, detail, status)
        return self._error(ErrorKind.CLIENT, detail, status)

    @staticmethod
    def _decode(resp) -> Optional[Dict[str, Any]]:
        try:
            data = resp.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _body_preview(resp) -> str:
        return (getattr(resp, "text", "") or "")[:500]

    def _error(self, kind: ErrorKind, message: str, status: Optional[int] = None) -> ProviderError:
        return ProviderError(provider=self.provider_id, kind=kind, message=message, http_status=status)

    def _abandon(self, last_error: Optional[ProviderError], attempts: int) -> ProviderError:
        reason = "request deadline exceeded"
        if last_error is not None:
            reason = f"{reason} after: {last_error.message}"
        logger.warning(
            "provider.deadline_exceeded",
            extra={"extra": {"provider": self.name, "attempts": attempts}},
        )
        return ProviderError(
            provider=self.provider_id,
            kind=ErrorKind.TRANSIENT,
            message=reason,
            http_status=last_error.http_status if last_error else None,
            attempts=attempts,
        )

    def _log_failure(self, error: ProviderError) -> None:
        fields = {
            "provider": self.name,
            "kind": error.kind.value,
            "http_status": error.http_status,
            "attempt": error.attempts,
            "error": error.message,
        }
        if error.kind is ErrorKind.AUTH:
            # 鉴权失败说明配置错误而非负载问题，需要告警
            logger.error("provider.auth_error", extra={"extra": {**fields, "alert": True}})
        elif error.kind is ErrorKind.CLIENT:
            logger.error("provider.client_error", extra={"extra": fields})
        elif error.kind is ErrorKind.RATE_LIMITED:
            logger.warning("provider.rate_limited", extra={"extra": fields})
        else:
            logger.warning("provider.transient_error", extra={"extra": fields})
