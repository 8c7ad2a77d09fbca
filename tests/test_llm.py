"""
Tests for the HTTP classifier client.
"""

import json

import httpx
import pytest

from thoughtflow.errors import ClassifierError, ConfigError
from thoughtflow.llm import LLMClient, create_client, has_api_key, parse_json_body


def openai_config(**overrides):
    llm = {"provider": "openai", "openai_api_key": "test-key", "timeout_seconds": 2.0}
    llm.update(overrides)
    return {"llm": llm}


def openai_reply(content):
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


class TestOpenAI:
    def test_request_shape_and_fenced_reply(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return openai_reply('```json\n{"category": "task"}\n```')

        client = LLMClient(openai_config(), transport=httpx.MockTransport(handler))
        result = client.complete_json("dev prompt", "user prompt", temperature=0.3, max_tokens=1500)

        assert result == {"category": "task"}
        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["auth"] == "Bearer test-key"
        body = seen["body"]
        assert body["messages"][0] == {"role": "developer", "content": "dev prompt"}
        assert body["messages"][1] == {"role": "user", "content": "user prompt"}
        assert body["response_format"] == {"type": "json_object"}
        assert body["temperature"] == 0.3
        assert body["max_tokens"] == 1500

    def test_http_error_is_network(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, json={}))
        client = LLMClient(openai_config(), transport=transport)

        with pytest.raises(ClassifierError) as exc:
            client.complete_json("d", "u")
        assert exc.value.kind == ClassifierError.NETWORK
        assert exc.value.is_transport_failure

    def test_invalid_base_url_is_network(self):
        client = LLMClient(
            openai_config(base_url="https://api.openai.com:abc/v1"),
            transport=httpx.MockTransport(lambda request: openai_reply("{}")),
        )

        with pytest.raises(ClassifierError) as exc:
            client.complete_json("d", "u")
        assert exc.value.kind == ClassifierError.NETWORK

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = LLMClient(openai_config(), transport=httpx.MockTransport(handler))

        with pytest.raises(ClassifierError) as exc:
            client.complete_json("d", "u")
        assert exc.value.kind == ClassifierError.TIMEOUT

    @pytest.mark.parametrize("content", ["not json", "[1, 2]", ""])
    def test_malformed_body(self, content):
        client = LLMClient(openai_config(), transport=httpx.MockTransport(
            lambda request: openai_reply(content)
        ))

        with pytest.raises(ClassifierError) as exc:
            client.complete_json("d", "u")
        assert exc.value.kind == ClassifierError.MALFORMED
        assert not exc.value.is_transport_failure

    def test_unexpected_envelope(self):
        client = LLMClient(openai_config(), transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"choices": []})
        ))

        with pytest.raises(ClassifierError) as exc:
            client.complete_json("d", "u")
        assert exc.value.kind == ClassifierError.MALFORMED


def test_anthropic_request_shape():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"content": [{"type": "text", "text": '{"a": 1}'}]})

    config = {"llm": {"provider": "anthropic", "anthropic_api_key": "sk-test"}}
    client = LLMClient(config, transport=httpx.MockTransport(handler))

    assert client.complete_json("system text", "user text") == {"a": 1}
    assert seen["url"] == "https://api.anthropic.com/v1/messages"
    assert seen["headers"]["x-api-key"] == "sk-test"
    assert seen["body"]["system"] == "system text"
    assert seen["body"]["messages"] == [{"role": "user", "content": "user text"}]


def test_missing_key():
    config = {"llm": {"provider": "openai"}}

    with pytest.raises(ConfigError):
        LLMClient(config)
    assert not has_api_key(config)
    assert create_client(config) is None


def test_key_from_environment(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
    config = {"llm": {"provider": "anthropic"}}

    assert has_api_key(config)
    assert LLMClient(config).api_key == "env-key"


def test_parse_json_body():
    assert parse_json_body('{"x": [1]}') == {"x": [1]}
    with pytest.raises(ClassifierError):
        parse_json_body(None)
