from logging import Logger
from pathlib import Path

import pytest
import requests
import responses
from sqlalchemy import create_engine
from tenacity import wait_none

from actions_stats.github_client import GithubClient
from actions_stats.retry_policy import RetryPolicy
from actions_stats.sql_helpers import use_sqlite_transactions
from logger import secret_registry
from logger.basic_logger import setup_logger

from tests.builders import PAT, CaptureLog

ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(scope="session", autouse=True)
def log() -> Logger:
    log = setup_logger()
    return log


@pytest.fixture
def capture_log():
    return CaptureLog()


@pytest.fixture(autouse=True)
def clean_secrets():
    # the registry is process-wide; keep tests independent of each other
    secret_registry._secrets.clear()
    yield
    secret_registry._secrets.clear()


# ----- HTTP -----
@pytest.fixture
def mocked_responses():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def retry_policy(log):
    return RetryPolicy(log, attempts=3, wait=wait_none())


@pytest.fixture
def client(log, retry_policy):
    return GithubClient(log, requests.Session(), retry_policy, PAT)


# ----- database -----
@pytest.fixture
def engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'stats.db'}")
    use_sqlite_transactions(eng)
    ddl = (ROOT / "sql" / "create_workflow_runs.sql").read_text()
    with eng.begin() as conn:
        conn.exec_driver_sql(ddl)
    yield eng
    eng.dispose()
