"""Perplexity（Secondary）厂商策略。

接口风格与 OpenAI 类似，使用 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

引用提取是启发式的：回复文本中所有方括号 [...] 内的内容都当作引用。
正文里正常使用方括号也会被误判，这里只为兼容保留该行为。
"""

import re
from typing import Any, Dict, List, Tuple

from card_chat.config.settings import settings
from card_chat.domain.models import ChatMessage
from card_chat.providers.registry import PERPLEXITY_CONFIG

_BRACKET_RE = re.compile(r"\[(.*?)\]")


def extract_bracket_citations(text: str) -> List[str]:
    """按首次出现顺序返回去重、去空白后的方括号内容。"""

    seen: Dict[str, None] = {}
    for match in _BRACKET_RE.finditer(text or ""):
        citation = match.group(1).strip()
        if citation and citation not in seen:
            seen[citation] = None
    return list(seen)


class PerplexityStrategy:
    """Perplexity chat/completions 的请求/响应转换。"""

    name = PERPLEXITY_CONFIG.name
    provider_id = PERPLEXITY_CONFIG.provider_id

    def __init__(self, cfg=settings):
        self._settings = cfg

    @property
    def is_configured(self) -> bool:
        return bool(getattr(self._settings, "perplexity_api_key", None))

    def endpoint(self) -> str:
        base = getattr(self._settings, "perplexity_base_url", None) or PERPLEXITY_CONFIG.base_url
        return f"{base.rstrip('/')}/chat/completions"

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.perplexity_api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(self, messages: List[ChatMessage]) -> Dict[str, Any]:
        # Perplexity 只接受位于开头的单条 system 消息
        system_text = "\n\n".join(
            m.content for m in messages if m.role == "system" and m.content.strip()
        )
        msgs: List[Dict[str, str]] = []
        if system_text:
            msgs.append({"role": "system", "content": system_text})
        msgs.extend({"role": m.role, "content": m.content} for m in messages if m.role != "system")
        return {
            "model": getattr(self._settings, "perplexity_model", None) or PERPLEXITY_CONFIG.model,
            "messages": msgs,
            **PERPLEXITY_CONFIG.generation,
        }

    def parse_response(self, data: Dict[str, Any]) -> Tuple[str, List[str]]:
        choices = data.get("choices") or []
        if not choices:
            raise ValueError("response has no choices")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise ValueError("response message has no content")
        return content, extract_bracket_citations(content)
