"""Gemini（Primary）厂商策略。

接口为 generateContent：
- URL: {base_url}/models/{model}:generateContent
- 认证: x-goog-api-key: <api_key>

Gemini 没有 system 角色，这里把所有 system 消息折叠进第一条 user 消息；
assistant 对应 Gemini 的 "model" 角色。响应可能有多个候选，只取第一个。
"""

from typing import Any, Dict, List, Tuple

from card_chat.config.settings import settings
from card_chat.domain.models import ChatMessage
from card_chat.prompts import load_system_prompt
from card_chat.providers.registry import GEMINI_CONFIG

# 候选为空（例如被安全策略拦截）时返回的文本
EMPTY_REPLY = "Sorry, I couldn't generate a response at this time."

_ROLE_MAP = {"user": "user", "assistant": "model"}


class GeminiStrategy:
    """Gemini generateContent 的请求/响应转换。"""

    name = GEMINI_CONFIG.name
    provider_id = GEMINI_CONFIG.provider_id

    def __init__(self, cfg=settings):
        self._settings = cfg

    @property
    def is_configured(self) -> bool:
        return bool(getattr(self._settings, "gemini_api_key", None))

    def endpoint(self) -> str:
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        model = getattr(self._settings, "gemini_model", None) or GEMINI_CONFIG.model
        return f"{base.rstrip('/')}/models/{model}:generateContent"

    def headers(self) -> Dict[str, str]:
        return {
            "x-goog-api-key": self._settings.gemini_api_key,
            "Content-Type": "application/json",
        }

    def build_payload(self, messages: List[ChatMessage]) -> Dict[str, Any]:
        system_text = "\n\n".join(
            m.content for m in messages if m.role == "system" and m.content.strip()
        ) or load_system_prompt()

        contents = [
            {"role": _ROLE_MAP[m.role], "parts": [{"text": m.content}]}
            for m in messages
            if m.role != "system"
        ]
        if contents and contents[0]["role"] == "user":
            first_text = contents[0]["parts"][0]["text"]
            contents[0] = {"role": "user", "parts": [{"text": f"{system_text}\n\n{first_text}"}]}
        else:
            # 会话以 assistant 开头（或为空）时补一条 user 轮承载 system prompt
            contents.insert(0, {"role": "user", "parts": [{"text": system_text}]})

        return {
            "contents": contents,
            "generationConfig": dict(GEMINI_CONFIG.generation),
            "safetySettings": [dict(s) for s in GEMINI_CONFIG.safety_settings],
        }

    def parse_response(self, data: Dict[str, Any]) -> Tuple[str, List[str]]:
        candidates = data.get("candidates") or []
        text = ""
        if candidates:
            content = candidates[0].get("content") or {}
            parts = content.get("parts") or []
            text = "".join(p.get("text") or "" for p in parts if isinstance(p, dict))
        if not text.strip():
            text = EMPTY_REPLY
        # Gemini 没有引用字段
        return text, []
