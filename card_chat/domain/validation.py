"""会话结构校验。

在任何 Provider 调用之前执行，纯函数、无副作用：

- 空会话合法（编排层会补上默认 system prompt）。
- 去掉 system 消息后，user / assistant 必须严格交替，且最后一条必须是 user。
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from card_chat.domain.models import ROLES, ChatMessage


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok


VALID = ValidationResult(ok=True)


def _invalid(reason: str) -> ValidationResult:
    return ValidationResult(ok=False, reason=reason)


def validate_conversation(messages: Sequence[ChatMessage]) -> ValidationResult:
    """校验会话结构，返回 ValidationResult 而不是抛异常。"""

    for idx, message in enumerate(messages):
        if message.role not in ROLES:
            return _invalid(f"message {idx} has unknown role {message.role!r}")
        if not isinstance(message.content, str):
            return _invalid(f"message {idx} content must be a string")

    turns = [m for m in messages if m.role != "system"]
    for idx in range(len(turns) - 1):
        if turns[idx].role == turns[idx + 1].role:
            return _invalid(
                f"turn {idx}: {turns[idx].role} followed by {turns[idx + 1].role}"
            )

    if turns and turns[-1].role != "user":
        return _invalid("last message must be from user")
    return VALID
