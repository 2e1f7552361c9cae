import argparse
import sys
from typing import List, Optional

from actions_stats.config import read_yml_configs
from actions_stats.errors import ActionsStatsError
from actions_stats.get_runs import GetRunsArgs, GetRunsCommand
from logger.basic_logger import setup_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="actions-stats", description="Gather stats on your GitHub Actions."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    runs = sub.add_parser(
        "get-runs",
        help="Gets a list of all workflow runs and outputs it to a CSV file",
    )
    runs.add_argument("--org", required=True)
    runs.add_argument("--repo", required=True)
    runs.add_argument(
        "--workflow-id",
        type=int,
        help="The ID of the workflow to get the list of runs for.",
    )
    runs.add_argument(
        "--workflow-name",
        help="Name of the workflow as displayed on the Actions tab.",
    )
    runs.add_argument(
        "--actor",
        help="Filter workflow runs by the actor associated with the runs.",
    )
    runs.add_argument("--branch", help="Branch to filter by.")
    runs.add_argument(
        "--github-pat",
        help="Can also be provided using the GH_PAT environment variable.",
    )
    runs.add_argument("--output", default="./actions-runs.csv")
    runs.add_argument(
        "--sql-connection-string",
        help="SQLAlchemy database URL for where to write the data. "
        "Can also be provided using the SQL_CONNECTION_STRING environment variable.",
    )
    runs.add_argument("--proxima", action="store_true")
    runs.add_argument("--verbose", action="store_true")
    runs.add_argument("--config", help="Path to a YAML settings file.")
    runs.add_argument("--log-file", help="Also write DEBUG logs to this file.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    log = setup_logger(verbose=args.verbose, log_file=args.log_file)
    log.debug("Execution Started")

    try:
        config = read_yml_configs(log, args.config)
        GetRunsCommand(config, log).run(
            GetRunsArgs(
                org=args.org,
                repo=args.repo,
                workflow_id=args.workflow_id,
                workflow_name=args.workflow_name,
                actor=args.actor,
                branch=args.branch,
                github_pat=args.github_pat,
                output=args.output,
                sql_connection_string=args.sql_connection_string,
                proxima=args.proxima,
                verbose=args.verbose,
            )
        )
    except ActionsStatsError as e:
        log.error(f"[ERROR] {e}")
        return 1
    except Exception:
        log.exception("[ERROR] Unexpected failure")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
