import pytest

from card_chat.config.settings import Settings


def test_short_api_key_disables_provider():
    with pytest.warns(UserWarning, match="too short"):
        cfg = Settings(gemini_api_key="short", perplexity_api_key="pplx-0123456789")
    assert cfg.gemini_api_key is None
    assert cfg.perplexity_api_key == "pplx-0123456789"


def test_blank_api_key_is_not_configured():
    cfg = Settings(gemini_api_key="   ")
    assert cfg.gemini_api_key is None


def test_deadline_must_fit_one_call_per_provider():
    with pytest.raises(ValueError, match="request_deadline"):
        Settings(http_timeout=40, request_deadline=60)


def test_default_budget_is_valid():
    cfg = Settings(http_timeout=30, request_deadline=60)
    assert cfg.request_deadline >= 2 * cfg.http_timeout
