"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 system prompt 文本，
用于构造 ChatMessage(role="system")。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent

_PROMPT_FILES = {
    "credit-card-expert": "credit_card_expert.md",
}


@lru_cache(maxsize=None)
def load_system_prompt(prompt_type: str = "credit-card-expert", locale: str = "en") -> str:
    """根据提示词类型和语言加载系统提示词文本。

    目前只有 "credit-card-expert" 一种类型，找不到时抛出 KeyError。
    """

    fname = PROMPTS_DIR / locale / _PROMPT_FILES[prompt_type]
    return fname.read_text(encoding="utf-8").strip()
