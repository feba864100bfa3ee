import httpx
import pytest

from card_chat.domain.models import ChatMessage, Deadline, ErrorKind, ProviderError, ProviderResult
from card_chat.providers.client import ProviderClient
from card_chat.providers.perplexity import PerplexityStrategy


class SettingsStub:
    perplexity_api_key = "pplx-test-key"
    perplexity_base_url = "https://pplx.test"
    perplexity_model = "sonar"
    http_timeout = 5.0
    provider_max_attempts = 3
    retry_base_delay = 0.5
    domain_instruction = "For Indian credit cards only:"


OK_BODY = {"choices": [{"message": {"role": "assistant", "content": "ok"}}]}
MESSAGES = [ChatMessage(role="user", content="hi")]


def _client(responses, sleeps=None):
    """responses: list of httpx.Response or Exception, consumed per request."""
    calls = []

    def handler(request):
        calls.append(request)
        item = responses[min(len(calls), len(responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    client = ProviderClient(
        PerplexityStrategy(SettingsStub()),
        SettingsStub(),
        transport=httpx.MockTransport(handler),
        sleep=(sleeps.append if sleeps is not None else lambda s: None),
    )
    return client, calls


@pytest.mark.parametrize(
    "status, body, kind",
    [
        (429, {"error": {"message": "slow down"}}, ErrorKind.RATE_LIMITED),
        (400, {"error": {"status": "RESOURCE_EXHAUSTED"}}, ErrorKind.RATE_LIMITED),
        (401, {"error": "bad key"}, ErrorKind.AUTH),
        (403, {}, ErrorKind.AUTH),
        (400, {"error": {"message": "bad field"}}, ErrorKind.CLIENT),
        (404, {}, ErrorKind.CLIENT),
    ],
)
def test_non_retryable_errors_fail_immediately(status, body, kind):
    client, calls = _client([httpx.Response(status, json=body)])
    res = client.complete(MESSAGES)
    assert isinstance(res, ProviderError)
    assert res.kind is kind
    assert res.http_status == status
    assert res.attempts == 1
    assert len(calls) == 1


def test_transient_errors_retry_with_linear_backoff():
    sleeps = []
    client, calls = _client(
        [httpx.Response(502, text="bad gateway"), httpx.Response(503), httpx.Response(200, json=OK_BODY)],
        sleeps,
    )
    res = client.complete(MESSAGES)
    assert isinstance(res, ProviderResult)
    assert res.attempts == 3
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_transient_errors_exhaust_max_attempts():
    sleeps = []
    client, calls = _client([httpx.Response(500)], sleeps)
    res = client.complete(MESSAGES)
    assert isinstance(res, ProviderError)
    assert res.kind is ErrorKind.TRANSIENT
    assert res.attempts == 3
    assert len(calls) == 3
    # no sleep after the final attempt
    assert sleeps == [0.5, 1.0]


def test_network_error_is_transient():
    client, calls = _client([httpx.ConnectError("refused"), httpx.Response(200, json=OK_BODY)])
    res = client.complete(MESSAGES)
    assert isinstance(res, ProviderResult)
    assert len(calls) == 2


def test_undecodable_success_body_is_transient():
    client, calls = _client([httpx.Response(200, text="<html>oops</html>")])
    res = client.complete(MESSAGES)
    assert isinstance(res, ProviderError)
    assert res.kind is ErrorKind.TRANSIENT
    assert len(calls) == 3


def test_expired_deadline_makes_no_call():
    client, calls = _client([httpx.Response(200, json=OK_BODY)])
    res = client.complete(MESSAGES, Deadline(0.0))
    assert isinstance(res, ProviderError)
    assert res.kind is ErrorKind.TRANSIENT
    assert res.attempts == 0
    assert calls == []


def test_backoff_longer_than_deadline_abandons_retries():
    now = [100.0]
    deadline = Deadline(0.8, clock=lambda: now[0])
    sleeps = []
    client, calls = _client([httpx.Response(500)], sleeps)
    # first retry would sleep 0.5s (ok), second would sleep 1.0s (> remaining)
    client._sleep = lambda s: (sleeps.append(s), now.__setitem__(0, now[0] + s))
    res = client.complete(MESSAGES, deadline)
    assert isinstance(res, ProviderError)
    assert res.kind is ErrorKind.TRANSIENT
    assert "deadline" in res.message
    assert len(calls) == 2
    assert sleeps == [0.5]


def test_timeout_capped_by_deadline(monkeypatch):
    captured = {}

    class Resp:
        status_code = 200
        text = ""

        def json(self):
            return OK_BODY

    class Client:
        def __init__(self, *a, **kw):
            captured["timeout"] = kw.get("timeout")

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, *a, **kw):
            return Resp()

    monkeypatch.setattr("httpx.Client", Client)
    client = ProviderClient(PerplexityStrategy(SettingsStub()), SettingsStub())
    now = [0.0]
    client.complete(MESSAGES, Deadline(2.0, clock=lambda: now[0]))
    assert captured["timeout"] == 2.0


def test_unconfigured_provider_is_never_called():
    class NoKey(SettingsStub):
        perplexity_api_key = None

    calls = []
    client = ProviderClient(
        PerplexityStrategy(NoKey()),
        NoKey(),
        transport=httpx.MockTransport(lambda r: calls.append(r) or httpx.Response(200, json=OK_BODY)),
    )
    res = client.complete(MESSAGES)
    assert isinstance(res, ProviderError)
    assert res.kind is ErrorKind.NOT_CONFIGURED
    assert calls == []
