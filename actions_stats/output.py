import re
from logging import Logger
from pathlib import Path
from typing import Iterable, List

import pandas as pd

from actions_stats.errors import ValidationError
from actions_stats.models import WorkflowRun
from actions_stats.sql_session import SqlSession

DB_COLUMNS = [
    "Id",
    "RunNumber",
    "Org",
    "Repo",
    "WorkflowId",
    "WorkflowName",
    "Actor",
    "Branch",
    "Event",
    "RunDate",
    "Conclusion",
    "Url",
]

CSV_COLUMNS = [
    "org",
    "repo",
    "workflow-id",
    "workflow-name",
    "actor",
    "date",
    "conclusion",
]

CSV_DATE_FORMAT = "%d-%b-%Y %I:%M %p"

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def runs_to_frame(runs: Iterable[WorkflowRun]) -> pd.DataFrame:
    rows: List[dict] = [
        {
            "Id": r.id,
            "RunNumber": r.run_number,
            "Org": r.org,
            "Repo": r.repo,
            "WorkflowId": r.workflow_id,
            "WorkflowName": r.workflow_name,
            "Actor": r.actor,
            "Branch": r.branch,
            "Event": r.event,
            "RunDate": r.run_date,
            "Conclusion": r.conclusion,
            "Url": r.url,
        }
        for r in runs
    ]
    df = pd.DataFrame(rows, columns=DB_COLUMNS)
    df["RunDate"] = pd.to_datetime(df["RunDate"])
    return df


def generate_csv(runs: Iterable[WorkflowRun]) -> str:
    df = pd.DataFrame(
        [
            {
                "org": r.org,
                "repo": r.repo,
                "workflow-id": r.workflow_id,
                "workflow-name": r.workflow_name,
                "actor": r.actor,
                "date": r.run_date.strftime(CSV_DATE_FORMAT),
                "conclusion": r.conclusion or "",
            }
            for r in runs
        ],
        columns=CSV_COLUMNS,
    )
    return df.to_csv(index=False, lineterminator="\n")


def write_csv(runs: Iterable[WorkflowRun], path: str) -> int:
    csv_text = generate_csv(runs)
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(csv_text, encoding="utf-8")
    return len(csv_text.encode("utf-8"))


def write_to_database(
    session: SqlSession,
    log: Logger,
    runs: Iterable[WorkflowRun],
    workflow_id: int,
    table: str = "WorkflowRuns",
    retry_on_failure: bool = True,
) -> int:
    """Replace the stored runs of one workflow inside a single transaction."""
    if not _TABLE_NAME_RE.match(table or ""):
        raise ValidationError(f"Invalid destination table name: {table!r}")
    df = runs_to_frame(runs)

    def replace_rows() -> int:
        log.info(f"Deleting old data: {table}...")
        # table names cannot be bound parameters
        session.execute_non_query(
            f"DELETE FROM {table} WHERE WorkflowId = :WorkflowId",
            "@WorkflowId",
            int(workflow_id),
        )
        log.info(f"Writing data: {table}...")
        return session.bulk_copy(table, df, retry_on_failure=retry_on_failure)

    written = session.run_in_transaction(replace_rows)
    log.info("Done!")
    return written
