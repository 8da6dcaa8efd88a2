"""
Tests for the provider clients

All clients must return UnifiedResponse and never raise: HTTP failures come
back as a NormalizedError on the response.
"""

import json
from types import SimpleNamespace

import httpx
import pytest
from conftest import make_response

from api.anthropic_client import AnthropicClient
from api.google_gemini_client import GeminiClient
from api.grok_client import GrokClient
from api.openai_client import OpenAIClient
from models.unified_response import LLMRequest

REQUEST = LLMRequest.from_prompt("Is this page relevant?", system="You are an analyst.", max_tokens=50)


def _mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestAnthropicClient:
    @pytest.mark.asyncio
    async def test_success_maps_text_usage_and_finish_reason(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["headers"] = request.headers
            captured["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "id": "msg_1",
                    "model": "claude-3-5-sonnet-20241022",
                    "content": [{"type": "text", "text": '{"relevanceScore": 0.8}'}],
                    "stop_reason": "end_turn",
                    "usage": {"input_tokens": 12, "output_tokens": 8},
                },
            )

        client = AnthropicClient("sk-ant-test", http_client=_mock_client(handler))
        response = await client.get_completion(REQUEST)

        assert response.is_success
        assert response.text == '{"relevanceScore": 0.8}'
        assert response.token_usage.total_tokens == 20
        assert response.finish_reason == "stop"
        assert captured["url"] == "https://api.anthropic.com/v1/messages"
        assert captured["headers"]["x-api-key"] == "sk-ant-test"
        assert captured["headers"]["anthropic-version"] == "2023-06-01"
        assert captured["body"]["system"] == "You are an analyst."
        assert captured["body"]["messages"] == [{"role": "user", "content": "Is this page relevant?"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, code",
        [(429, "rate_limit"), (401, "auth"), (400, "bad_request"), (503, "provider_error")],
    )
    async def test_http_errors_are_normalized(self, status, code):
        client = AnthropicClient(
            "sk-ant-test", http_client=_mock_client(lambda request: httpx.Response(status, json={}))
        )

        response = await client.get_completion(REQUEST)

        assert response.is_error
        assert response.error.code == code
        assert response.error.status_code == status
        assert response.finish_reason == "error"

    @pytest.mark.asyncio
    async def test_transport_timeout_is_normalized(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        response = await AnthropicClient("sk-ant-test", http_client=_mock_client(handler)).get_completion(REQUEST)

        assert response.error.code == "timeout"
        assert response.error.retryable

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            AnthropicClient("")


def _chat_completion(content, model="gpt-4o"):
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10},
    }


class TestOpenAICompatibleClients:
    @pytest.mark.asyncio
    async def test_openai_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_chat_completion("hello"))

        client = OpenAIClient("sk-test", http_client=_mock_client(handler))
        response = await client.get_completion(REQUEST)

        assert response.text == "hello"
        assert response.provider == "openai"
        assert response.token_usage.total_tokens == 10
        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["body"]["messages"][0] == {"role": "system", "content": "You are an analyst."}
        assert seen["body"]["model"] == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_openai_rate_limit_is_normalized(self):
        client = OpenAIClient(
            "sk-test",
            http_client=_mock_client(
                lambda request: httpx.Response(429, json={"error": {"message": "slow down"}})
            ),
        )

        response = await client.get_completion(REQUEST)

        assert response.error.code == "rate_limit"
        assert response.error.status_code == 429

    @pytest.mark.asyncio
    async def test_grok_targets_xai(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, json=_chat_completion("grok says hi", model="grok-beta"))

        client = GrokClient("xai-test", http_client=_mock_client(handler))
        response = await client.get_completion(REQUEST)

        assert response.provider == "xai"
        assert seen["url"] == "https://api.x.ai/v1/chat/completions"

    @pytest.mark.asyncio
    async def test_custom_provider_reports_its_registry_key(self):
        client = OpenAIClient(
            "local-key-123",
            base_url="http://localhost:8000/v1",
            provider_name="local",
            http_client=_mock_client(lambda request: httpx.Response(200, json=_chat_completion("ok"))),
        )

        response = await client.get_completion(REQUEST)

        assert response.provider == "local"


class FakeGenaiModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class TestGeminiClient:
    @pytest.mark.asyncio
    async def test_success_maps_roles_and_system_instruction(self):
        models = FakeGenaiModels(
            SimpleNamespace(
                text="gemini answer",
                usage_metadata=SimpleNamespace(
                    prompt_token_count=4, candidates_token_count=6, total_token_count=10
                ),
                candidates=[SimpleNamespace(finish_reason=SimpleNamespace(name="MAX_TOKENS"))],
            )
        )
        fake = SimpleNamespace(aio=SimpleNamespace(models=models))
        request = LLMRequest(
            messages=[
                *REQUEST.messages,
                *LLMRequest.from_prompt("follow up").messages,
            ]
        )

        response = await GeminiClient("g" * 30, client=fake).get_completion(request)

        assert response.text == "gemini answer"
        assert response.token_usage.total_tokens == 10
        assert response.finish_reason == "length"
        call = models.calls[0]
        assert call["model"] == "gemini-1.5-flash"
        assert call["config"].system_instruction == "You are an analyst."
        assert [c.role for c in call["contents"]] == ["user", "user"]

    @pytest.mark.asyncio
    async def test_errors_are_returned_not_raised(self):
        class ResourceExhausted(Exception):
            code = 429

        fake = SimpleNamespace(aio=SimpleNamespace(models=FakeGenaiModels(error=ResourceExhausted("quota"))))

        response = await GeminiClient("g" * 30, client=fake).get_completion(REQUEST)

        assert response.error.code == "rate_limit"


def test_response_timestamp_is_utc_with_z_suffix():
    response = make_response("ok")

    assert response.timestamp.endswith("Z")
    assert "+00:00" not in response.timestamp
