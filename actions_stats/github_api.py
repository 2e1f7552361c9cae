from http import HTTPStatus
from logging import Logger
from typing import Any, Dict, Iterator, List, Optional

from actions_stats.config import DEFAULT_API_URL, PROXIMA_API_URL
from actions_stats.errors import ActionsStatsError, HttpError
from actions_stats.github_client import GithubClient
from actions_stats.models import WorkflowRun
from actions_stats.request_helpers import apply_session_defaults, build_session
from actions_stats.retry_policy import RetryPolicy
from actions_stats.small_utils import dig, has_value, whitelist_request_opts

_REPOS_QUERY = """
query($org: String!, $first: Int, $after: String) {
  organization(login: $org) {
    repositories(first: $first, after: $after, orderBy: {field: NAME, direction: ASC}) {
      pageInfo { hasNextPage endCursor }
      nodes { name }
    }
  }
}
"""


class GithubApi:
    """GitHub endpoints used by the get-runs command."""

    def __init__(self, client: GithubClient, api_url: str) -> None:
        self.client = client
        self.api_url = api_url.rstrip("/")

    def get_workflow_id(self, org: str, repo: str, workflow_name: str) -> int:
        url = f"{self.api_url}/repos/{org}/{repo}/actions/workflows"
        ids = self.client.get_all(
            url,
            lambda d: d["workflows"],
            lambda w: w.get("name") == workflow_name,
            lambda w: int(w["id"]),
        )
        if not ids:
            raise ActionsStatsError(
                f"Could not find a workflow named '{workflow_name}' in {org}/{repo}"
            )
        return ids[0]

    def get_workflow_runs(
        self,
        org: str,
        repo: str,
        workflow_id: int,
        actor: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> List[WorkflowRun]:
        url = f"{self.api_url}/repos/{org}/{repo}/actions/workflows/{workflow_id}/runs"

        def wanted(run: Dict[str, Any]) -> bool:
            if has_value(actor) and dig(run, "actor.login") != actor:
                return False
            if has_value(branch) and run.get("head_branch") != branch:
                return False
            return True

        return self.client.get_all(
            url,
            lambda d: d["workflow_runs"],
            wanted,
            WorkflowRun.from_json,
        )

    def does_repo_exist(self, org: str, repo: str) -> bool:
        url = f"{self.api_url}/repos/{org}/{repo}"
        try:
            self.client.get_non_success(url, HTTPStatus.NOT_FOUND)
            return False
        except HttpError as e:
            if e.status_code == HTTPStatus.OK:
                return True
            raise

    def get_repos(self, org: str) -> Iterator[str]:
        body = {"query": _REPOS_QUERY, "variables": {"org": org}}
        nodes = self.client.post_graphql_with_pagination(
            f"{self.api_url}/graphql",
            body,
            lambda d: d["data"]["organization"]["repositories"]["nodes"],
            lambda d: dig(d, "data.organization.repositories.pageInfo"),
        )
        return (node["name"] for node in nodes)


def create_github_api(
    log: Logger,
    settings: Dict[str, Any],
    personal_access_token: str,
    proxima: bool = False,
    retry_policy: Optional[RetryPolicy] = None,
) -> GithubApi:
    api_url = settings.get("api_url") or DEFAULT_API_URL
    if proxima:
        api_url = PROXIMA_API_URL

    req_opts = whitelist_request_opts(settings.get("request_defaults") or {})
    sess = build_session(settings.get("retries"))
    apply_session_defaults(sess, req_opts)

    retry_policy = retry_policy or RetryPolicy(
        log, attempts=(settings.get("http_retry") or {}).get("attempts", 3)
    )
    client = GithubClient(
        log,
        sess,
        retry_policy,
        personal_access_token,
        version_comments=settings.get("version_comments"),
        timeout=req_opts.get("timeout"),
    )
    return GithubApi(client, api_url)
