from models.errors import SearchCancelled


class CancellationToken:
    """Cooperative cancellation flag handed down a single search run."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self._cancelled = True
        self.reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise SearchCancelled(f"Search was cancelled: {self.reason}")
