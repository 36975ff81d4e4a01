"""
Bounded retry with linear back-off for vendor API calls.

Usage:
    executor = RetryExecutor(classifier, description="AWS Cost Explorer request")
    response = executor.call(lambda: ce.get_cost_and_usage(**kwargs))
"""
import logging
import time
from typing import Callable, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from .constants import MAX_RETRIES, RETRY_DELAY_SECONDS
from .errors import Classifier

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RetryExecutor:
    """
    Run a single remote operation up to `max_attempts` times.

    Only failures the classifier marks as transient are retried. The wait
    before attempt n+1 is `delay * n` seconds (1s, 2s, ... with defaults).
    When attempts run out, or the failure is not transient, the last
    exception is re-raised unchanged.
    """

    def __init__(
        self,
        classifier: Classifier,
        max_attempts: int = MAX_RETRIES,
        delay: float = RETRY_DELAY_SECONDS,
        description: str = "API request",
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.classifier = classifier
        self.max_attempts = max_attempts
        self.delay = delay
        self.description = description
        self.sleep = sleep

    def _is_retriable(self, exc: BaseException) -> bool:
        return self.classifier(exc).is_transient

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"{self.description} failed (attempt {retry_state.attempt_number}/{self.max_attempts}), "
            f"retrying in {wait:g}s: {exc}"
        )

    def call(self, operation: Callable[[], T]) -> T:
        """Execute `operation`, retrying transient failures."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.delay, increment=self.delay),
            retry=retry_if_exception(self._is_retriable),
            before_sleep=self._log_retry,
            sleep=self.sleep,
            reraise=True,
        )
        return retrying(operation)
