from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from models.errors import APIError


class NextAction(str, Enum):
    FALLBACK = "fallback"
    STOP = "stop"


@dataclass(frozen=True)
class FallbackDecision:
    action: NextAction
    next_provider: str | None
    reason: str


@dataclass(frozen=True)
class FallbackPolicy:
    max_attempts: int = 2
    retry_statuses: frozenset[int] = frozenset({429, 503})


class FallbackManager:
    def decide(
        self,
        *,
        failed_provider: str,
        error: Exception,
        attempt_index: int,
        explicit_provider: bool,
        preference_order: list[str],
        is_available: Callable[[str], bool],
        policy: FallbackPolicy,
    ) -> FallbackDecision:
        if explicit_provider:
            return FallbackDecision(action=NextAction.STOP, next_provider=None, reason="explicit_provider")

        if attempt_index + 1 >= policy.max_attempts:
            return FallbackDecision(action=NextAction.STOP, next_provider=None, reason="max_attempts")

        if not isinstance(error, APIError):
            return FallbackDecision(action=NextAction.STOP, next_provider=None, reason="not_api_error")

        if not (error.rate_limited or error.status_code in policy.retry_statuses):
            return FallbackDecision(action=NextAction.STOP, next_provider=None, reason="not_retryable")

        reason = "rate_limit" if error.rate_limited else f"status_{error.status_code}"
        for candidate in preference_order:
            if candidate == failed_provider:
                continue
            if is_available(candidate):
                return FallbackDecision(action=NextAction.FALLBACK, next_provider=candidate, reason=reason)

        return FallbackDecision(action=NextAction.STOP, next_provider=None, reason="no_candidate")
