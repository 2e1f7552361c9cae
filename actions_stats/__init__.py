from actions_stats.errors import (
    ActionsStatsError,
    HttpError,
    PageParseError,
    TransactionError,
    TransientDataError,
    ValidationError,
)
from actions_stats.github_api import GithubApi, create_github_api
from actions_stats.github_client import GithubClient
from actions_stats.retry_policy import RetryPolicy
from actions_stats.sql_service import SqlService
from actions_stats.sql_session import SqlSession

__all__ = [
    "ActionsStatsError",
    "GithubApi",
    "GithubClient",
    "HttpError",
    "PageParseError",
    "RetryPolicy",
    "SqlService",
    "SqlSession",
    "TransactionError",
    "TransientDataError",
    "ValidationError",
    "create_github_api",
]
