from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import pandas as pd

from actions_stats.small_utils import dig


def _utc_naive(value: str) -> datetime:
    ts = pd.Timestamp(value)
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts.to_pydatetime()


@dataclass(frozen=True)
class WorkflowRun:
    id: int
    run_number: int
    org: str
    repo: str
    workflow_id: int
    workflow_name: str
    actor: Optional[str]
    branch: Optional[str]
    event: Optional[str]
    run_date: datetime
    conclusion: Optional[str]
    url: Optional[str]

    @classmethod
    def from_json(cls, item: Dict[str, Any]) -> "WorkflowRun":
        """Build a run from one element of ``workflow_runs``."""
        started = item.get("run_started_at") or item["created_at"]
        return cls(
            id=int(item["id"]),
            run_number=int(item["run_number"]),
            org=dig(item, "repository.owner.login"),
            repo=dig(item, "repository.name"),
            workflow_id=int(item["workflow_id"]),
            workflow_name=item.get("name"),
            actor=dig(item, "actor.login"),
            branch=item.get("head_branch"),
            event=item.get("event"),
            run_date=_utc_naive(started),
            conclusion=item.get("conclusion"),
            url=item.get("html_url"),
        )
