import pandas as pd
import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError, OperationalError
from tenacity import wait_none

from actions_stats.errors import (
    TransactionError,
    TransientDataError,
    ValidationError,
)
from actions_stats.output import runs_to_frame
from actions_stats.sql_session import SqlSession
from tests.builders import CaptureLog, make_run

INSERT_RUN = (
    "INSERT INTO WorkflowRuns "
    "(Id, RunNumber, Org, Repo, WorkflowId, WorkflowName, RunDate) "
    "VALUES (:Id, 1, 'octo', 'hello', :WorkflowId, 'CI', '2024-01-01 00:00:00')"
)
COUNT_RUNS = "SELECT COUNT(*) FROM WorkflowRuns"


@pytest.fixture
def session(engine):
    s = SqlSession(engine, CaptureLog(), bulk_retry_wait=wait_none())
    yield s
    s.close()


def locked_error():
    return OperationalError("INSERT", {}, Exception("database is locked"))


# --- executor -----------------------------------------------------------------


def test_execute_non_query_returns_rowcount_and_autocommits(session, engine):
    assert session.execute_non_query(INSERT_RUN, "@Id", 1, "@WorkflowId", 7) == 1
    assert not session.is_open

    # visible from an independent session
    other = SqlSession(engine, CaptureLog())
    assert other.execute_scalar(COUNT_RUNS) == 1
    other.close()


def test_execute_scalar_binds_parameters(session):
    session.execute_non_query(INSERT_RUN, "@Id", 1, "@WorkflowId", 7)
    session.execute_non_query(INSERT_RUN, "@Id", 2, "@WorkflowId", 8)
    assert (
        session.execute_scalar(
            "SELECT COUNT(*) FROM WorkflowRuns WHERE WorkflowId = :wf",
            "@wf",
            8,
        )
        == 1
    )


def test_execute_scalar_empty_result_is_none(session):
    assert (
        session.execute_scalar("SELECT Id FROM WorkflowRuns WHERE Id = -1")
        is None
    )


def test_get_data_table_returns_frame(session):
    session.execute_non_query(INSERT_RUN, "@Id", 5, "@WorkflowId", 7)
    df = session.get_data_table(
        "SELECT Id, Org, WorkflowId FROM WorkflowRuns WHERE Id = :Id", "@Id", 5
    )
    assert isinstance(df, pd.DataFrame)
    assert list(df.columns) == ["Id", "Org", "WorkflowId"]
    assert df.iloc[0].to_dict() == {"Id": 5, "Org": "octo", "WorkflowId": 7}


@pytest.mark.parametrize("sql", ["", "   ", None])
def test_blank_statement_rejected(session, sql):
    with pytest.raises(ValidationError) as ei:
        session.execute_non_query(sql)
    assert "blank" in str(ei.value)


def test_unpaired_parameters_rejected(session):
    with pytest.raises(ValidationError):
        session.execute_scalar(COUNT_RUNS, "@Id")


# --- transactions -------------------------------------------------------------


def test_transaction_commits_all_statements(session):
    with session.transaction():
        assert session.in_transaction
        session.execute_non_query(INSERT_RUN, "@Id", 1, "@WorkflowId", 7)
        session.execute_non_query(INSERT_RUN, "@Id", 2, "@WorkflowId", 7)
        # the transaction keeps its connection between statements
        assert session.is_open
    assert not session.in_transaction
    assert not session.is_open
    assert session.execute_scalar(COUNT_RUNS) == 2


def test_transaction_rolls_back_on_error(session):
    with pytest.raises(RuntimeError):
        with session.transaction():
            session.execute_non_query(INSERT_RUN, "@Id", 1, "@WorkflowId", 7)
            raise RuntimeError("boom")
    assert not session.in_transaction
    assert session.execute_scalar(COUNT_RUNS) == 0


def test_nested_transaction_rejected(session):
    with session.transaction():
        with pytest.raises(TransactionError):
            with session.transaction():
                pass
    assert not session.in_transaction


def test_run_in_transaction_returns_work_result(session):
    def work():
        session.execute_non_query(INSERT_RUN, "@Id", 1, "@WorkflowId", 7)
        return "done"

    assert session.run_in_transaction(work) == "done"
    assert session.execute_scalar(COUNT_RUNS) == 1


def test_run_in_transaction_requires_work(session):
    with pytest.raises(ValidationError):
        session.run_in_transaction(None)


def test_closed_session_refuses_work(session):
    session.close()
    with pytest.raises(TransactionError):
        session.execute_scalar(COUNT_RUNS)


def test_close_rolls_back_open_transaction(engine):
    s = SqlSession(engine, CaptureLog())
    tx = s.transaction()
    tx.__enter__()
    s.execute_non_query(INSERT_RUN, "@Id", 1, "@WorkflowId", 7)
    s.close()
    assert not s.is_open

    other = SqlSession(engine, CaptureLog())
    assert other.execute_scalar(COUNT_RUNS) == 0
    other.close()


# --- bulk copy ----------------------------------------------------------------


def test_bulk_copy_appends_rows(session):
    df = runs_to_frame([make_run(1), make_run(2), make_run(3)])
    assert session.bulk_copy("WorkflowRuns", df) == 3
    assert session.execute_scalar(COUNT_RUNS) == 3


def test_bulk_copy_empty_frame_is_noop(session):
    assert session.bulk_copy("WorkflowRuns", runs_to_frame([])) == 0
    assert session.execute_scalar(COUNT_RUNS) == 0


def test_bulk_copy_missing_table(session):
    with pytest.raises(ValidationError):
        session.bulk_copy("NoSuchTable", runs_to_frame([make_run(1)]))


def test_bulk_copy_unknown_column(session):
    df = runs_to_frame([make_run(1)]).assign(Extra=1)
    with pytest.raises(ValidationError):
        session.bulk_copy("WorkflowRuns", df)
    assert session.execute_scalar(COUNT_RUNS) == 0


@pytest.mark.parametrize("table", ["", None])
def test_bulk_copy_requires_table(session, table):
    with pytest.raises(ValidationError):
        session.bulk_copy(table, runs_to_frame([make_run(1)]))


@pytest.mark.parametrize(
    "retry_on_failure, expected_attempts", [(True, 3), (False, 1)]
)
def test_bulk_copy_attempt_budget(
    session, monkeypatch, retry_on_failure, expected_attempts
):
    calls = []

    def failing_write(table, data):
        calls.append(table)
        raise locked_error()

    monkeypatch.setattr(session, "_write_frame", failing_write)
    with pytest.raises(TransientDataError) as ei:
        session.bulk_copy(
            "WorkflowRuns",
            runs_to_frame([make_run(1)]),
            retry_on_failure=retry_on_failure,
        )
    assert len(calls) == expected_attempts
    assert ei.value.attempts == expected_attempts
    assert ei.value.table == "WorkflowRuns"
    assert isinstance(ei.value.__cause__, OperationalError)


def test_bulk_copy_recovers_on_second_attempt(session, monkeypatch):
    real_write = session._write_frame
    calls = []

    def flaky_write(table, data):
        calls.append(table)
        if len(calls) == 1:
            raise locked_error()
        real_write(table, data)

    monkeypatch.setattr(session, "_write_frame", flaky_write)
    df = runs_to_frame([make_run(1), make_run(2)])
    assert session.bulk_copy("WorkflowRuns", df, retry_on_failure=True) == 2
    assert len(calls) == 2
    assert session.execute_scalar(COUNT_RUNS) == 2
    assert any("failed" in m for m in session.log.messages("WARNING"))


def test_delete_then_failed_load_is_rolled_back(session):
    session.execute_non_query(INSERT_RUN, "@Id", 1, "@WorkflowId", 7)
    # duplicate primary keys make the load fail on every attempt
    df = runs_to_frame([make_run(1), make_run(1)])

    def replace():
        session.execute_non_query(
            "DELETE FROM WorkflowRuns WHERE WorkflowId = :wf", "@wf", 7
        )
        return session.bulk_copy("WorkflowRuns", df, retry_on_failure=False)

    with pytest.raises(TransientDataError):
        session.run_in_transaction(replace)

    assert session.execute_scalar(COUNT_RUNS) == 1
    assert (
        session.execute_scalar("SELECT WorkflowName FROM WorkflowRuns") == "CI"
    )


def bulk_attempt_lines(session):
    return [m for m in session.log.messages("INFO") if m.startswith("Bulk copying")]


@pytest.mark.parametrize(
    "retry_on_failure, expected_attempts", [(True, 3), (False, 1)]
)
def test_bulk_copy_constraint_violation_uses_attempt_budget(
    session, retry_on_failure, expected_attempts
):
    session.bulk_copy("WorkflowRuns", runs_to_frame([make_run(1)]))
    with pytest.raises(TransientDataError) as ei:
        session.bulk_copy(
            "WorkflowRuns",
            runs_to_frame([make_run(1)]),
            retry_on_failure=retry_on_failure,
        )
    assert ei.value.attempts == expected_attempts
    assert isinstance(ei.value.__cause__, IntegrityError)
    assert len(bulk_attempt_lines(session)) == 1 + expected_attempts
    assert session.execute_scalar(COUNT_RUNS) == 1


def test_bulk_copy_retry_in_transaction_discards_partial_attempt(engine):
    session = SqlSession(
        engine, CaptureLog(), bulk_retry_wait=wait_none(), chunksize=1
    )
    session.execute_non_query(INSERT_RUN, "@Id", 99, "@WorkflowId", 7)
    inserts = []

    def fail_second_insert(conn, cursor, statement, parameters, context, many):
        if statement.lstrip().upper().startswith("INSERT"):
            inserts.append(statement)
            if len(inserts) == 2:
                raise OperationalError(
                    statement, parameters, Exception("database is locked")
                )

    def replace():
        session.execute_non_query(
            "DELETE FROM WorkflowRuns WHERE WorkflowId = :wf", "@wf", 7
        )
        return session.bulk_copy(
            "WorkflowRuns",
            runs_to_frame([make_run(1), make_run(2), make_run(3)]),
            retry_on_failure=True,
        )

    event.listen(engine, "before_cursor_execute", fail_second_insert)
    try:
        assert session.run_in_transaction(replace) == 3
    finally:
        event.remove(engine, "before_cursor_execute", fail_second_insert)
        session.close()

    assert len(bulk_attempt_lines(session)) == 2
    # one row from the failed attempt, then all three again
    assert len(inserts) == 5
    other = SqlSession(engine, CaptureLog())
    ids = other.get_data_table("SELECT Id FROM WorkflowRuns ORDER BY Id")
    other.close()
    assert ids["Id"].tolist() == [1, 2, 3]
