from typing import Optional


class ActionsStatsError(Exception):
    """Base class for every failure surfaced to the command line."""


class ValidationError(ActionsStatsError):
    pass


class PageParseError(ActionsStatsError):
    pass


class TransactionError(ActionsStatsError):
    pass


class HttpError(ActionsStatsError):
    def __init__(
        self,
        url: str,
        status_code: int,
        expected_status: Optional[int] = None,
    ) -> None:
        self.url = url
        self.status_code = status_code
        self.expected_status = expected_status
        expected = (
            "a success status code"
            if expected_status is None
            else f"status code {expected_status}"
        )
        super().__init__(
            f"Expected {expected} but got {status_code} from {url}"
        )


class TransientDataError(ActionsStatsError):
    def __init__(self, table: str, attempts: int) -> None:
        self.table = table
        self.attempts = attempts
        super().__init__(
            f"Bulk copy into '{table}' failed after {attempts} attempt(s)"
        )
