from logging import Logger
from typing import Callable, Optional, TypeVar

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from actions_stats.errors import HttpError

T = TypeVar("T")

HTTP_ERRORS = (requests.RequestException, HttpError)


class RetryPolicy:
    """Application-level retries for HTTP calls, on top of urllib3's."""

    def __init__(self, log: Logger, attempts: int = 3, wait=None) -> None:
        self.log = log
        self.attempts = max(1, int(attempts))
        self.wait = (
            wait
            if wait is not None
            else wait_exponential(multiplier=1, min=1, max=10)
        )

    def _log_retry(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        self.log.warning(
            f"Attempt {state.attempt_number} of {self.attempts} failed: {exc}. Retrying..."
        )

    def http_retry(
        self,
        operation: Callable[[], T],
        should_retry: Optional[Callable[[Exception], bool]] = None,
    ) -> T:
        check = should_retry or (lambda _: True)
        retryer = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=self.wait,
            retry=retry_if_exception(
                lambda e: isinstance(e, HTTP_ERRORS) and check(e)
            ),
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retryer(operation)

