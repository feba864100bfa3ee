"""Text post-processing for model replies."""

from card_chat.text.markdown import normalize

__all__ = ["normalize"]
