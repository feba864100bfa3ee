from card_chat.domain.models import ChatMessage, ErrorKind, ProviderError, ProviderResult
from card_chat.providers.client import ProviderClient
from card_chat.providers.perplexity import PerplexityStrategy, extract_bracket_citations


class SettingsStub:
    perplexity_api_key = "pplx-test-key"
    perplexity_base_url = "https://pplx.test"
    perplexity_model = "sonar"
    http_timeout = 1.0
    provider_max_attempts = 3
    retry_base_delay = 0.0
    domain_instruction = "For Indian credit cards only:"


def test_perplexity_client_basic(monkeypatch):
    captured = {}

    class Resp:
        status_code = 200
        text = ""

        def json(self):
            return {
                "choices": [
                    {
                        "index": 0,
                        "message": {
                            "role": "assistant",
                            "content": "Axis Ace gives 5% on bills [1]. See [RBI guidelines] and [1].",
                        },
                        "finish_reason": "stop",
                    }
                ]
            }

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, **_):
            captured["url"] = url
            captured["payload"] = json
            captured["headers"] = headers
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)
    client = ProviderClient(PerplexityStrategy(SettingsStub()), SettingsStub())
    res = client.complete(
        [
            ChatMessage(role="system", content="Be concise."),
            ChatMessage(role="user", content="bill payment card"),
        ]
    )

    assert isinstance(res, ProviderResult)
    assert res.provider == "secondary"
    assert res.citations == ["1", "RBI guidelines"]
    assert captured["url"] == "https://pplx.test/chat/completions"
    assert captured["headers"]["Authorization"] == "Bearer pplx-test-key"
    payload = captured["payload"]
    assert payload["model"] == "sonar"
    assert payload["max_tokens"] == 2048
    assert payload["messages"] == [
        {"role": "system", "content": "Be concise."},
        {"role": "user", "content": "For Indian credit cards only: bill payment card"},
    ]


def test_perplexity_merges_system_messages():
    strategy = PerplexityStrategy(SettingsStub())
    payload = strategy.build_payload(
        [
            ChatMessage(role="system", content="a"),
            ChatMessage(role="user", content="q1"),
            ChatMessage(role="assistant", content="a1"),
            ChatMessage(role="system", content="b"),
            ChatMessage(role="user", content="q2"),
        ]
    )
    roles = [m["role"] for m in payload["messages"]]
    assert roles == ["system", "user", "assistant", "user"]
    assert payload["messages"][0]["content"] == "a\n\nb"


def test_perplexity_missing_choices_is_transient(monkeypatch):
    calls = []

    class Resp:
        status_code = 200
        text = "{}"

        def json(self):
            return {"choices": []}

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, *a, **kw):
            calls.append(1)
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)
    client = ProviderClient(PerplexityStrategy(SettingsStub()), SettingsStub(), sleep=lambda s: None)
    res = client.complete([ChatMessage(role="user", content="hi")])
    assert isinstance(res, ProviderError)
    assert res.kind is ErrorKind.TRANSIENT
    assert len(calls) == 3


def test_extract_bracket_citations():
    assert extract_bracket_citations("no brackets here") == []
    assert extract_bracket_citations("[ a ] [b] [] [a]") == ["a", "b"]
    assert extract_bracket_citations("") == []
