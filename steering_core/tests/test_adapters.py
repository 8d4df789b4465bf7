import asyncio

import httpx
import pytest

from steering_core.domain.exceptions import ProviderError, ProviderTimeoutError
from steering_core.domain.models import ChatMessage
from steering_core.providers import ADAPTERS, create_provider
from steering_core.providers.anthropic_client import AnthropicClient
from steering_core.providers.google_client import GoogleClient
from steering_core.providers.openai_client import OpenAIClient
from steering_core.providers.qwen_client import QwenClient


class SettingsStub:
    http_timeout = 1.0


class Resp:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("not json")
        return self._payload


def install_client(monkeypatch, resp=None, error=None):
    captured = []

    class Client:
        def __init__(self, *a, **kw):
            captured.append({"init": kw})

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def post(self, url, json=None, headers=None, params=None):
            captured.append({"url": url, "json": json, "headers": headers, "params": params})
            if error is not None:
                raise error
            return resp

    monkeypatch.setattr("httpx.AsyncClient", Client)
    return captured


SUCCESS_PAYLOADS = {
    "openai": {"choices": [{"message": {"role": "assistant", "content": "ok"}}]},
    "xai": {"choices": [{"message": {"role": "assistant", "content": "ok"}}]},
    "deepseek": {"choices": [{"message": {"role": "assistant", "content": "ok"}}]},
    "openrouter": {"choices": [{"message": {"role": "assistant", "content": "ok"}}]},
    "anthropic": {"content": [{"type": "text", "text": "ok"}]},
    "google": {"candidates": [{"content": {"role": "model", "parts": [{"text": "ok"}]}}]},
    "qwen": {"output": {"choices": [{"message": {"role": "assistant", "content": "ok"}}]}},
}

HI = [ChatMessage(role="user", content="hi")]


@pytest.mark.parametrize("provider", sorted(SUCCESS_PAYLOADS))
def test_adapter_extracts_text(monkeypatch, provider):
    install_client(monkeypatch, Resp(200, SUCCESS_PAYLOADS[provider]))
    adapter = create_provider(provider, SettingsStub())
    assert asyncio.run(adapter.send("k" * 12, "some-model", HI)) == "ok"


@pytest.mark.parametrize("provider", sorted(ADAPTERS))
def test_adapter_non_2xx_names_vendor(monkeypatch, provider):
    install_client(monkeypatch, Resp(401, {"error": {"message": "bad key"}, "message": "bad key"}))
    adapter = create_provider(provider, SettingsStub())
    with pytest.raises(ProviderError) as exc:
        asyncio.run(adapter.send("k", "some-model", HI))
    assert adapter.vendor in exc.value.message
    assert "bad key" in exc.value.message
    assert exc.value.vendor == adapter.vendor
    assert exc.value.extra["upstream_status"] == 401


@pytest.mark.parametrize("provider", sorted(ADAPTERS))
def test_adapter_error_without_body_uses_fallback(monkeypatch, provider):
    install_client(monkeypatch, Resp(502, None))
    adapter = create_provider(provider, SettingsStub())
    with pytest.raises(ProviderError) as exc:
        asyncio.run(adapter.send("k", "m", HI))
    assert exc.value.message == f"{adapter.vendor} API error: Unknown error"


def test_adapter_missing_completion_field(monkeypatch):
    install_client(monkeypatch, Resp(200, {"choices": []}))
    with pytest.raises(ProviderError) as exc:
        asyncio.run(OpenAIClient(SettingsStub()).send("k", "gpt-4o", HI))
    assert "OpenAI" in exc.value.message


def test_adapter_transport_failure(monkeypatch):
    install_client(monkeypatch, error=httpx.ConnectError("connection refused"))
    with pytest.raises(ProviderError) as exc:
        asyncio.run(OpenAIClient(SettingsStub()).send("k", "gpt-4o", HI))
    assert "connection refused" in exc.value.message


def test_adapter_timeout(monkeypatch):
    install_client(monkeypatch, error=httpx.ReadTimeout("slow"))
    with pytest.raises(ProviderTimeoutError) as exc:
        asyncio.run(OpenAIClient(SettingsStub()).send("k", "gpt-4o", HI))
    assert exc.value.http_status == 504
    assert isinstance(exc.value, ProviderError)


def test_openai_payload_and_auth(monkeypatch):
    captured = install_client(
        monkeypatch,
        Resp(200, {
            "choices": [{"message": {"content": "hello"}}],
            "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
        }),
    )
    reply = asyncio.run(OpenAIClient(SettingsStub()).complete("sk-test", "gpt-4o", HI))
    call = captured[-1]
    assert call["url"] == "https://api.openai.com/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    assert call["json"] == {
        "model": "gpt-4o",
        "messages": [{"role": "user", "content": "hi"}],
        "max_tokens": 1000,
        "temperature": 0.7,
    }
    assert call["params"] is None
    assert captured[0]["init"]["timeout"] == 1.0
    assert reply.usage.total_tokens == 4


def test_anthropic_headers_and_system(monkeypatch):
    captured = install_client(monkeypatch, Resp(200, SUCCESS_PAYLOADS["anthropic"]))
    msgs = [ChatMessage(role="system", content="be brief"), *HI]
    asyncio.run(AnthropicClient(SettingsStub()).send("ak", "claude-3-haiku-20240307", msgs))
    call = captured[-1]
    assert call["headers"]["x-api-key"] == "ak"
    assert call["headers"]["anthropic-version"] == "2023-06-01"
    assert "Authorization" not in call["headers"]
    assert call["json"]["system"] == "be brief"
    assert call["json"]["messages"] == [{"role": "user", "content": "hi"}]


def test_google_key_in_query_and_role_mapping(monkeypatch):
    captured = install_client(monkeypatch, Resp(200, SUCCESS_PAYLOADS["google"]))
    msgs = [
        ChatMessage(role="user", content="hi"),
        ChatMessage(role="assistant", content="hello"),
        ChatMessage(role="user", content="again"),
    ]
    asyncio.run(GoogleClient(SettingsStub()).send("gk", "gemini-1.5-pro", msgs))
    call = captured[-1]
    assert call["url"].endswith("/models/gemini-1.5-pro:generateContent")
    assert call["params"] == {"key": "gk"}
    assert "Authorization" not in call["headers"]
    assert [c["role"] for c in call["json"]["contents"]] == ["user", "model", "user"]
    assert call["json"]["generationConfig"] == {"maxOutputTokens": 1000, "temperature": 0.7}


def test_qwen_envelope_and_legacy_text(monkeypatch):
    captured = install_client(monkeypatch, Resp(200, {"output": {"text": "legacy"}}))
    text = asyncio.run(QwenClient(SettingsStub()).send("qk", "qwen-plus", HI))
    assert text == "legacy"
    payload = captured[-1]["json"]
    assert payload["input"]["messages"] == [{"role": "user", "content": "hi"}]
    assert payload["parameters"]["max_tokens"] == 1000


def test_base_url_override(monkeypatch):
    class Overridden(SettingsStub):
        openai_base_url = "http://localhost:9999/v1/chat/completions"

    captured = install_client(monkeypatch, Resp(200, SUCCESS_PAYLOADS["openai"]))
    asyncio.run(OpenAIClient(Overridden()).send("k", "gpt-4o", HI))
    assert captured[-1]["url"] == "http://localhost:9999/v1/chat/completions"


def test_unencodable_api_key_becomes_provider_error(monkeypatch):
    error = UnicodeEncodeError("ascii", "sk-‑abc", 3, 4, "ordinal not in range(128)")
    install_client(monkeypatch, error=error)
    adapter = OpenAIClient(SettingsStub())
    with pytest.raises(ProviderError) as exc:
        asyncio.run(adapter.send("sk-‑abc", "gpt-4o", HI))
    assert exc.value.message.startswith("OpenAI API error:")
    assert exc.value.vendor == "OpenAI"


def test_non_ascii_api_key_with_real_client():
    class LocalSettings(SettingsStub):
        openai_base_url = "http://127.0.0.1:9/v1/chat/completions"

    adapter = OpenAIClient(LocalSettings())
    with pytest.raises(ProviderError) as exc:
        asyncio.run(adapter.send("sk-‑abc", "gpt-4o", HI))
    assert "OpenAI API error" in exc.value.message
