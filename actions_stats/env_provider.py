import os
from typing import Callable, Optional

from actions_stats.errors import ActionsStatsError
from logger.secret_registry import register_secret

GH_PAT = "GH_PAT"
SQL_CONNECTION_STRING = "SQL_CONNECTION_STRING"


class EnvironmentVariableProvider:
    """Reads secrets from the environment and registers them for redaction."""

    def __init__(
        self, getenv: Optional[Callable[[str], Optional[str]]] = None
    ) -> None:
        self._getenv = getenv or os.getenv

    def github_personal_access_token(self, throw_if_not_found: bool = True):
        return self._get_secret(GH_PAT, throw_if_not_found)

    def sql_connection_string(self, throw_if_not_found: bool = False):
        return self._get_secret(SQL_CONNECTION_STRING, throw_if_not_found)

    def _get_secret(self, name: str, throw_if_not_found: bool):
        secret = self._getenv(name)
        if not secret:
            if throw_if_not_found:
                raise ActionsStatsError(
                    f"{name} environment variable is not set."
                )
            return None
        register_secret(secret)
        return secret
