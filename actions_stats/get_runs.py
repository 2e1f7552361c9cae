from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import pandas as pd

from actions_stats.config import prepare
from actions_stats.env_provider import EnvironmentVariableProvider
from actions_stats.errors import ValidationError
from actions_stats.github_api import create_github_api
from actions_stats.output import write_csv, write_to_database
from actions_stats.request_helpers import log_exception
from actions_stats.small_utils import has_value
from actions_stats.sql_service import SqlService
from logger.secret_registry import register_secret


@dataclass
class GetRunsArgs:
    org: str
    repo: str
    workflow_id: Optional[int] = None
    workflow_name: Optional[str] = None
    actor: Optional[str] = None
    branch: Optional[str] = None
    github_pat: Optional[str] = None
    output: Optional[str] = "./actions-runs.csv"
    sql_connection_string: Optional[str] = None
    proxima: bool = False
    verbose: bool = False


class GetRunsCommand:
    """Pulls the runs of one workflow into a CSV file and, optionally, SQL."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]],
        log,
        env_provider: Optional[EnvironmentVariableProvider] = None,
        api_factory: Callable[..., Any] = create_github_api,
        sql_service_factory: Callable[..., SqlService] = SqlService,
    ):
        self.settings = prepare(config)
        self.log = log
        self.env_provider = env_provider or EnvironmentVariableProvider()
        self.api_factory = api_factory
        self.sql_service_factory = sql_service_factory

    def run(self, args: GetRunsArgs) -> Dict[str, Any]:
        started = pd.Timestamp.now(tz="UTC")
        self.log.info("Getting Actions Runs...")

        self._log_options(args)
        self._validate_options(args)

        pat = (
            args.github_pat
            if has_value(args.github_pat)
            else self.env_provider.github_personal_access_token()
        )
        connection_string = (
            args.sql_connection_string
            if has_value(args.sql_connection_string)
            else self.env_provider.sql_connection_string()
        )
        register_secret(pat)
        register_secret(connection_string)

        api = self.api_factory(self.log, self.settings, pat, args.proxima)
        source = f"{api.api_url}/repos/{args.org}/{args.repo}"

        try:
            workflow_id = args.workflow_id
            if has_value(args.workflow_name):
                workflow_id = api.get_workflow_id(
                    args.org, args.repo, args.workflow_name
                )

            runs = api.get_workflow_runs(
                args.org, args.repo, workflow_id, args.actor, args.branch
            )
            self.log.info(f"Found {len(runs)} workflow runs.")

            if has_value(args.output):
                write_csv(runs, args.output)
                self.log.info(f"Wrote {len(runs)} runs to {args.output}")

            if has_value(connection_string):
                self._write_database(connection_string, runs, workflow_id)
        except Exception as e:
            log_exception(self.log, source, e, prefix="[get-runs] ")
            raise

        ended = pd.Timestamp.now(tz="UTC")
        return {
            "org": args.org,
            "repo": args.repo,
            "workflow_id": int(workflow_id),
            "rows": len(runs),
            "output": args.output if has_value(args.output) else None,
            "database": has_value(connection_string),
            "started_at": started.isoformat(),
            "ended_at": ended.isoformat(),
            "duration_s": float((ended - started).total_seconds()),
        }

    def _write_database(self, connection_string: str, runs, workflow_id: int):
        bulk = self.settings["bulk"]
        with self.sql_service_factory(
            self.log, connection_string, chunksize=bulk.get("chunksize")
        ) as db:
            with db.session() as session:
                write_to_database(
                    session,
                    self.log,
                    runs,
                    workflow_id,
                    table=bulk.get("table", "WorkflowRuns"),
                    retry_on_failure=bool(bulk.get("retry_on_failure", True)),
                )

    def _validate_options(self, args: GetRunsArgs) -> None:
        has_id = args.workflow_id is not None
        has_name = has_value(args.workflow_name)
        if has_id == has_name:
            raise ValidationError(
                "Provide exactly one of --workflow-id or --workflow-name"
            )
        if not has_value(args.org) or not has_value(args.repo):
            raise ValidationError("--org and --repo are required")

    def _log_options(self, args: GetRunsArgs) -> None:
        self.log.info(f"ORG: {args.org}")
        self.log.info(f"REPO: {args.repo}")
        if args.workflow_id is not None:
            self.log.info(f"WORKFLOW ID: {args.workflow_id}")
        if has_value(args.workflow_name):
            self.log.info(f"WORKFLOW NAME: {args.workflow_name}")
        if has_value(args.actor):
            self.log.info(f"ACTOR: {args.actor}")
        if has_value(args.branch):
            self.log.info(f"BRANCH: {args.branch}")
        if has_value(args.github_pat):
            self.log.info("GITHUB PAT: ***")
        if has_value(args.output):
            self.log.info(f"OUTPUT: {args.output}")
        if has_value(args.sql_connection_string):
            self.log.info("SQL CONNECTION STRING: ***")
