import time
from collections.abc import Callable
from dataclasses import dataclass

from orchestrator.provider_registry import RateLimit

WINDOW_SECONDS = 60.0


@dataclass
class RateLimitWindow:
    requests_used: int
    tokens_used: int
    window_reset_at: float

    def expired(self, now: float) -> bool:
        return now > self.window_reset_at


class RateLimitTracker:
    """
    Per-provider one-minute usage windows.

    A window opens on the first successful request and lasts WINDOW_SECONDS;
    once ``now`` passes ``window_reset_at`` it is discarded and the next
    request opens a fresh one.
    """

    def __init__(self, clock: Callable[[], float] = time.time, window_seconds: float = WINDOW_SECONDS):
        self._windows: dict[str, RateLimitWindow] = {}
        self._clock = clock
        self._window_seconds = window_seconds

    def _current(self, provider: str) -> RateLimitWindow | None:
        window = self._windows.get(provider)
        if window is not None and window.expired(self._clock()):
            del self._windows[provider]
            return None
        return window

    def is_limited(self, provider: str, limits: RateLimit) -> bool:
        window = self._current(provider)
        if window is None:
            return False
        return (
            window.requests_used >= limits.requests_per_minute
            or window.tokens_used >= limits.tokens_per_minute
        )

    def record(self, provider: str, tokens: int) -> RateLimitWindow:
        window = self._current(provider)
        if window is None:
            window = RateLimitWindow(
                requests_used=0,
                tokens_used=0,
                window_reset_at=self._clock() + self._window_seconds,
            )
            self._windows[provider] = window
        window.requests_used += 1
        window.tokens_used += max(0, tokens)
        return window

    def snapshot(self, provider: str) -> RateLimitWindow | None:
        window = self._current(provider)
        if window is None:
            return None
        return RateLimitWindow(window.requests_used, window.tokens_used, window.window_reset_at)

    def clear(self) -> None:
        self._windows.clear()
