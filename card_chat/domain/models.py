"""统一的对话与结果数据模型。

本模块定义了编排层在不同 Provider 之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- ProviderResult / ProviderError: 单个 Provider 调用的归一化结果或已分类错误。
- ChatReply: 最终返回给调用方的回复。
- Deadline: 单个请求的整体时间预算。

所有 Provider 适配器都只依赖这些模型，并负责在各自的 API JSON
和这些模型之间做转换。
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, Union


# LLM 消息角色类型
Role = Literal["system", "user", "assistant"]
ROLES = ("system", "user", "assistant")

# 回复中标记的来源：primary=Gemini，secondary=Perplexity，none=兜底回复
ProviderId = Literal["primary", "secondary"]
ReplyProvider = Literal["primary", "secondary", "none"]


@dataclass
class ChatMessage:
    """一条对话消息。有序，会话是 ChatMessage 的列表而不是集合。"""

    role: Role
    content: str


class ErrorKind(str, Enum):
    """Provider 调用失败的分类，编排层只根据它做状态转移。"""

    RATE_LIMITED = "rate_limited"  # 429 或 Provider 报告配额耗尽，不重试
    AUTH = "auth"  # 401/403，密钥问题，不重试
    TRANSIENT = "transient"  # 5xx、网络错误、超时，可重试
    CLIENT = "client"  # 其他 4xx，多半是请求转换 bug，不重试
    NOT_CONFIGURED = "not_configured"  # 未配置密钥，从未发起调用

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.TRANSIENT


@dataclass
class ProviderResult:
    """单个 Provider 的成功结果。

    - text: 模型回复原文（尚未做 markdown 修复）。
    - citations: 引用列表，没有引用概念的 Provider 返回空列表而不是 None。
    - provider: primary / secondary。
    - attempts: 实际发起的 HTTP 调用次数，仅用于日志。
    """

    text: str
    citations: List[str] = field(default_factory=list)
    provider: ProviderId = "primary"
    attempts: int = 1


@dataclass
class ProviderError:
    """单个 Provider 的失败结果。message 只进日志，绝不返回给终端用户。"""

    provider: ProviderId
    kind: ErrorKind
    message: str
    http_status: Optional[int] = None
    attempts: int = 0


ProviderOutcome = Union[ProviderResult, ProviderError]


@dataclass
class ChatReply:
    """返回给调用方的回复，每个请求新建，不做持久化。"""

    response: str
    citations: Optional[List[str]] = None
    provider: Optional[ReplyProvider] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"response": self.response}
        if self.citations is not None:
            payload["citations"] = list(self.citations)
        if self.provider is not None:
            payload["provider"] = self.provider
        return payload


class Deadline:
    """单个请求的整体截止时间（基于单调时钟）。

    网络调用的超时与重试退避都以剩余时间为上限，超时后当前 Provider
    的剩余尝试被放弃，编排层继续走回退/兜底路径。
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._expires_at = clock() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def share(self, fraction: float) -> "Deadline":
        """切出剩余时间的一部分作为子截止时间，子截止时间不会晚于自身。"""
        return Deadline(self.remaining() * fraction, clock=self._clock)
