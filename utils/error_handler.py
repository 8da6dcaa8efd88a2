"""Central place to normalise, count and log pipeline errors."""

from collections import Counter
from typing import Any

from models.errors import SearchError, should_retry, user_friendly_message
from utils.logger import get_logger

logger = get_logger(__name__)


class ErrorHandler:
    """
    Records every handled error by kind and message and logs it with context.

    Recoverable failures (a single page that would not load, an analysis that
    could not be parsed) go through ``handle`` and the pipeline carries on.
    """

    def __init__(self) -> None:
        self._counts: Counter[str] = Counter()

    def handle(self, error: BaseException, context: dict[str, Any] | None = None) -> SearchError:
        normalized = self.normalize(error)
        self._counts[f"{normalized.kind}:{normalized.message}"] += 1

        fields = {
            "error_kind": normalized.kind,
            "error_type": type(error).__name__,
            "error_message": normalized.message,
            "retryable": should_retry(normalized),
            **normalized.details,
        }
        if context:
            fields.update(context)

        if normalized.kind in {"content", "analysis", "cancelled"}:
            logger.warning("Recovered pipeline error", extra={"extra_fields": fields})
        else:
            logger.error("Pipeline error", extra={"extra_fields": fields})
        return normalized

    @staticmethod
    def normalize(error: BaseException) -> SearchError:
        if isinstance(error, SearchError):
            return error
        return SearchError(str(error) or type(error).__name__)

    @staticmethod
    def user_message(error: BaseException) -> str:
        return user_friendly_message(error)

    def statistics(self) -> dict[str, int]:
        return dict(self._counts)

    def clear(self) -> None:
        self._counts.clear()
