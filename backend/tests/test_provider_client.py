import asyncio

import pytest

from backend.src import config
from backend.src.engine import providers
from backend.src.engine.capabilities import ProviderScorer
from backend.src.engine.evaluation import evaluate_and_rank

from conftest import make_candidates


class _Resp:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class _Client:
    def __init__(self, resp):
        self.resp = resp
        self.calls = []

    async def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        return self.resp


@pytest.fixture
def keys(monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-test-openai-0000000000")
    monkeypatch.setattr(config, "ANTHROPIC_API_KEY", "sk-ant-test-0000000000")
    monkeypatch.setattr(config, "GOOGLE_API_KEY", "google-test-key")
    providers._AUTH_INVALID_UNTIL.clear()
    yield
    providers.set_client(None)
    providers._AUTH_INVALID_UNTIL.clear()


def test_resolve_provider_by_model_id():
    assert providers.resolve_provider("gpt-4-turbo") == "openai"
    assert providers.resolve_provider("claude-3-opus") == "anthropic"
    assert providers.resolve_provider("Gemini-Pro-Vision") == "google"
    assert providers.resolve_provider("llama-3") is None
    assert providers.resolve_model_name("claude-3-opus") == "claude-3-opus-20240229"
    assert providers.resolve_model_name("gpt-4-turbo") == "gpt-4-turbo"


def test_parse_image_data():
    image = providers.parse_image_data("data:image/png;base64,iVBORw0KGgo=")
    assert image.media_type == "image/png"
    assert image.data == "iVBORw0KGgo="

    for bad in ("http://example.com/cat.png", "data:image/png,rawbytes", "data:;base64,abc", "data:image/png;base64,"):
        with pytest.raises(ValueError):
            providers.parse_image_data(bad)


@pytest.mark.asyncio
async def test_openai_query_uses_injected_client(keys):
    client = _Client(
        _Resp(
            payload={
                "choices": [{"message": {"content": "8"}}],
                "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2},
            }
        )
    )
    providers.set_client(client)  # type: ignore[arg-type]

    res = await providers.query_model("gpt-4-turbo", "rate this", temperature=0.3, max_tokens=10)

    assert res.ok is True
    assert res.provider == "openai"
    assert res.content == "8"
    assert res.usage["total_tokens"] == 2
    url, kwargs = client.calls[0]
    assert url == config.OPENAI_API_URL
    assert kwargs["headers"]["Authorization"].startswith("Bearer ")
    assert kwargs["json"] == {
        "model": "gpt-4-turbo",
        "messages": [{"role": "user", "content": "rate this"}],
        "temperature": 0.3,
        "max_tokens": 10,
    }


@pytest.mark.asyncio
async def test_anthropic_request_includes_image_block(keys):
    client = _Client(_Resp(payload={"content": [{"type": "text", "text": "A cat."}]}))
    providers.set_client(client)  # type: ignore[arg-type]

    res = await providers.query_model(
        "claude-3-opus", "describe", image_data="data:image/jpeg;base64,/9j/4AAQ"
    )

    assert res.ok is True
    assert res.content == "A cat."
    url, kwargs = client.calls[0]
    assert url == config.ANTHROPIC_API_URL
    assert kwargs["headers"]["x-api-key"] == "sk-ant-test-0000000000"
    body = kwargs["json"]
    assert body["model"] == "claude-3-opus-20240229"
    assert body["max_tokens"] == config.GENERATION_MAX_TOKENS
    blocks = body["messages"][0]["content"]
    assert blocks[0] == {"type": "image", "source": {"type": "base64", "media_type": "image/jpeg", "data": "/9j/4AAQ"}}
    assert blocks[1] == {"type": "text", "text": "describe"}


@pytest.mark.asyncio
async def test_gemini_request_and_extraction(keys):
    client = _Client(_Resp(payload={"candidates": [{"content": {"parts": [{"text": "C A B"}]}}]}))
    providers.set_client(client)  # type: ignore[arg-type]

    res = await providers.query_model("gemini-pro", "rank", temperature=0.3, max_tokens=20)

    assert res.ok is True
    assert res.content == "C A B"
    url, kwargs = client.calls[0]
    assert url.endswith("/gemini-pro:generateContent")
    assert "key=" not in url
    assert kwargs["headers"]["x-goog-api-key"] == "google-test-key"
    assert kwargs["json"]["generationConfig"] == {"temperature": 0.3, "maxOutputTokens": 20}


@pytest.mark.asyncio
async def test_missing_credential_fails_without_network(keys, monkeypatch):
    monkeypatch.setattr(config, "GOOGLE_API_KEY", None)
    client = _Client(_Resp())
    providers.set_client(client)  # type: ignore[arg-type]

    res = await providers.query_model("gemini-pro", "rank")

    assert res.ok is False
    assert res.error_text == "google credentials missing"
    assert client.calls == []


@pytest.mark.asyncio
async def test_unknown_provider_fails(keys):
    res = await providers.query_model("llama-3", "hi")
    assert res.ok is False
    assert res.provider is None


@pytest.mark.asyncio
async def test_auth_cooldown_short_circuits(keys):
    client = _Client(_Resp(status_code=401, text="unauthorized"))
    providers.set_client(client)  # type: ignore[arg-type]

    r1 = await providers.query_model("gpt-4-turbo", "hi")
    assert r1.ok is False
    assert r1.status_code == 401
    assert len(client.calls) == 1

    r2 = await providers.query_model("gpt-4-turbo", "hi")
    assert r2.ok is False
    assert r2.error_text == "openai credentials invalid (cooldown)"
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_http_error_is_not_retried_and_is_redacted(keys):
    client = _Client(_Resp(status_code=500, text="upstream failed for key sk-abcdefghijklmnop"))
    providers.set_client(client)  # type: ignore[arg-type]

    res = await providers.query_model("gpt-4-turbo", "hi")

    assert res.ok is False
    assert res.status_code == 500
    assert "sk-abcdefghijklmnop" not in res.error_text
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_transport_exception_becomes_failed_result(keys):
    class _Broken:
        async def post(self, *args, **kwargs):
            raise ConnectionError("boom")

    providers.set_client(_Broken())  # type: ignore[arg-type]
    res = await providers.query_model("claude-3-sonnet", "hi")
    assert res.ok is False
    assert "boom" in res.error_text


@pytest.mark.asyncio
async def test_empty_content_is_a_failure(keys):
    providers.set_client(_Client(_Resp(payload={"choices": [{"message": {}}]})))  # type: ignore[arg-type]
    res = await providers.query_model("gpt-4-turbo", "hi")
    assert res.ok is False


class _SlowClient:
    def __init__(self, delay_seconds, content="9"):
        self.delay_seconds = delay_seconds
        self.content = content
        self.in_flight = 0
        self.peak = 0

    async def post(self, url, **kwargs):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay_seconds)
        finally:
            self.in_flight -= 1
        return _Resp(payload={"choices": [{"message": {"content": self.content}}]})


@pytest.mark.asyncio
async def test_request_timeout_applies_once_slot_is_held(keys):
    providers.set_client(_SlowClient(delay_seconds=0.5))  # type: ignore[arg-type]

    res = await providers.query_model("gpt-4-turbo", "hi", timeout_seconds=0.05)

    assert res.ok is False
    assert "TimeoutError" in res.error_text


@pytest.mark.asyncio
async def test_queued_judges_do_not_time_out_behind_provider_limit(keys, monkeypatch):
    # 5 candidates make 20 judge calls against 2 provider slots; each call alone fits the deadline.
    monkeypatch.setattr(providers, "_SEMAPHORE", asyncio.Semaphore(2))
    client = _SlowClient(delay_seconds=0.05)
    providers.set_client(client)  # type: ignore[arg-type]
    candidates = make_candidates("gpt-a", "gpt-b", "gpt-c", "gpt-d", "gpt-e")

    result = await evaluate_and_rank(candidates, "q", ProviderScorer(timeout_seconds=0.25))

    assert len(result.matrix) == 20
    assert client.peak == 2
    assert not any(cell.defaulted for cell in result.matrix)
    assert {cell.score for cell in result.matrix} == {9.0}
