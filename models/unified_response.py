"""
Provider-neutral request/response types shared by the LLM clients and the gateway.

Clients never raise for provider failures: they return a UnifiedResponse whose
``error`` is set, and the gateway decides what that error means.
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional

FinishReason = Optional[Literal["stop", "length", "tool", "content_filter", "error"]]
Role = Literal["system", "user", "assistant"]

ERROR_CODES = frozenset({"timeout", "auth", "rate_limit", "bad_request", "provider_error", "unknown"})
FINISH_REASONS = frozenset({"stop", "length", "tool", "content_filter", "error"})


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str

    def __post_init__(self):
        if self.role not in ("system", "user", "assistant"):
            raise ValueError(f"Invalid message role: {self.role}")

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class LLMRequest:
    """One completion call; ``model`` None means the provider's default."""

    messages: list[ChatMessage]
    model: str | None = None
    max_tokens: int = 4000
    temperature: float = 0.7
    top_p: float = 1.0

    @classmethod
    def from_prompt(cls, prompt: str, *, system: str | None = None, **kwargs) -> "LLMRequest":
        messages = [ChatMessage(role="system", content=system)] if system else []
        messages.append(ChatMessage(role="user", content=prompt))
        return cls(messages=messages, **kwargs)

    def with_model(self, model: str) -> "LLMRequest":
        return dataclasses.replace(self, model=model)


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self):
        # Some providers only report the two halves
        if not self.total_tokens and (self.prompt_tokens or self.completion_tokens):
            object.__setattr__(self, "total_tokens", self.prompt_tokens + self.completion_tokens)


@dataclass(frozen=True)
class NormalizedError:
    code: str
    message: str
    provider: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.code not in ERROR_CODES:
            object.__setattr__(self, "code", "unknown")

    @property
    def status_code(self) -> int | None:
        return self.details.get("status_code")


@dataclass(frozen=True)
class UnifiedResponse:
    request_id: str
    text: str
    provider: str
    model: str
    latency_ms: int
    token_usage: TokenUsage

    # 2 when the gateway answered from a fallback provider
    attempt: int = 1
    fallback_from: str | None = None  # "<provider>:<model>" that failed

    finish_reason: FinishReason = None
    error: NormalizedError | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    timestamp: str = field(default_factory=_utc_timestamp)

    def __post_init__(self):
        if self.finish_reason is not None and self.finish_reason not in FINISH_REASONS:
            metadata = {**self.metadata, "provider_finish_reason": self.finish_reason}
            object.__setattr__(self, "metadata", metadata)
            object.__setattr__(self, "finish_reason", None)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_error(self) -> bool:
        return self.error is not None
