import time
from typing import Any

from google import genai
from google.genai import types

from models.unified_response import LLMRequest, TokenUsage, UnifiedResponse
from utils.logger import get_logger

from .base_client import BaseAIClient

logger = get_logger(__name__)


class GeminiClient(BaseAIClient):
    """
    A client for the Google Gemini API using the google.genai package.

    Assistant turns are sent with the ``model`` role and system prompts as
    ``system_instruction``.
    """

    provider_name = "gemini"
    default_model = "gemini-1.5-flash"

    def __init__(
        self,
        api_key: str,
        model_name: str | None = None,
        *,
        base_url: str | None = None,
        timeout_s: float = 30.0,
        client: Any = None,
        **kwargs,
    ):
        """
        Initialize the Gemini client.

        Args:
            api_key: The Google Gemini API key
            model_name: The name of the model to use (default: gemini-1.5-flash)
            timeout_s: Per-request timeout in seconds
            client: Optional pre-built genai.Client
        """
        super().__init__(api_key, model_name, base_url=base_url, timeout_s=timeout_s, **kwargs)
        self.client = client or genai.Client(
            api_key=api_key, http_options=types.HttpOptions(timeout=int(timeout_s * 1000))
        )

    def _build_contents(self, request: LLMRequest) -> tuple[str | None, list[types.Content]]:
        system, turns = self._split_system_messages(request.messages)
        contents = [
            types.Content(
                role="model" if m.role == "assistant" else "user",
                parts=[types.Part(text=m.content)],
            )
            for m in turns
        ]
        return system, contents

    async def get_completion(self, request: LLMRequest) -> UnifiedResponse:
        """
        Get a completion from the Gemini API.

        IMPORTANT: Never raises exceptions - returns UnifiedResponse with error instead
        """
        request_id = self._generate_request_id()
        start_time = time.time()
        model = request.model or self.model_name

        try:
            system, contents = self._build_contents(request)
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=system,
                    temperature=request.temperature,
                    max_output_tokens=request.max_tokens,
                    top_p=request.top_p,
                ),
            )

            latency_ms = self._measure_latency(start_time)
            text = response.text or ""

            usage_metadata = getattr(response, "usage_metadata", None)
            token_usage = TokenUsage(
                prompt_tokens=getattr(usage_metadata, "prompt_token_count", 0) or 0,
                completion_tokens=getattr(usage_metadata, "candidates_token_count", 0) or 0,
                total_tokens=getattr(usage_metadata, "total_token_count", 0) or 0,
            )

            candidates = getattr(response, "candidates", None) or []
            finish_reason = self._normalize_finish_reason(
                candidates[0].finish_reason if candidates else None, provider=self.provider_name
            )

            logger.info(
                "Gemini completion successful",
                extra={
                    "extra_fields": {
                        "request_id": request_id,
                        "model": model,
                        "latency_ms": latency_ms,
                        "tokens": token_usage.total_tokens,
                    }
                },
            )

            return UnifiedResponse(
                request_id=request_id,
                text=text,
                provider=self.provider_name,
                model=model,
                latency_ms=latency_ms,
                token_usage=token_usage,
                finish_reason=finish_reason,
                error=None,
                metadata={},
            )

        except Exception as e:
            latency_ms = self._measure_latency(start_time)
            error = self._normalize_error(e, provider=self.provider_name)

            logger.error(
                f"Gemini completion failed: {error.code}",
                extra={
                    "extra_fields": {
                        "request_id": request_id,
                        "model": model,
                        "error_code": error.code,
                        "error_message": error.message,
                        "retryable": error.retryable,
                    }
                },
            )

            return self._create_error_response(
                request_id=request_id, error=error, latency_ms=latency_ms, model=model
            )
