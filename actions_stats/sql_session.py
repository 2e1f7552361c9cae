"""
One relational session: a single connection plus at most one transaction.

State machine::

    Closed --begin_work--> Open --end_work--> Closed
                            |
                            +--transaction()--> Open+Transaction --commit/rollback--> Closed

A session is not safe for concurrent use. Get one per unit of work from
``SqlService.session()``.
"""

from contextlib import contextmanager, nullcontext
from logging import Logger
from typing import Any, Callable, Iterator, Optional, TypeVar

import pandas as pd
from sqlalchemy import Connection, Engine, MetaData, Table
from sqlalchemy.exc import DBAPIError
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from actions_stats.errors import (
    TransactionError,
    TransientDataError,
    ValidationError,
)
from actions_stats.small_utils import has_value
from actions_stats.sql_helpers import (
    check_destination,
    frame_records,
    lock_table,
    prepare_command,
)

T = TypeVar("T")

BULK_COPY_ATTEMPTS = 3


class SqlSession:
    def __init__(
        self,
        engine: Engine,
        log: Logger,
        bulk_retry_wait=None,
        chunksize: Optional[int] = 1000,
    ) -> None:
        self._engine = engine
        self.log = log
        self.bulk_retry_wait = (
            bulk_retry_wait
            if bulk_retry_wait is not None
            else wait_exponential(multiplier=1, min=1, max=10)
        )
        self.chunksize = chunksize
        self._connection: Optional[Connection] = None
        self._transaction = None
        self._closed = False

    def __enter__(self) -> "SqlSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    # ------------ connection lifecycle ------------
    def begin_work(self) -> Connection:
        if self._closed:
            raise TransactionError("This SQL session has been closed.")
        # inside a transaction the open connection is shared
        if self._connection is None:
            self._connection = self._engine.connect()
        return self._connection

    def end_work(self) -> None:
        if self._transaction is None and self._connection is not None:
            self._connection.close()
            self._connection = None

    @contextmanager
    def _unit_of_work(self) -> Iterator[Connection]:
        conn = self.begin_work()
        try:
            yield conn
            if self._transaction is None:
                conn.commit()
        finally:
            self.end_work()

    @contextmanager
    def transaction(self) -> Iterator["SqlSession"]:
        if self._transaction is not None:
            raise TransactionError(
                "A transaction is already active on this SQL session."
            )
        conn = self.begin_work()
        self._transaction = conn.begin()
        try:
            yield self
            self._transaction.commit()
        except Exception:
            self.log.debug("Rolling back SQL transaction")
            self._transaction.rollback()
            raise
        finally:
            self._transaction = None
            self.end_work()

    def run_in_transaction(self, work: Callable[[], T]) -> T:
        if work is None:
            raise ValidationError("No work was given to run in a transaction.")
        with self.transaction():
            return work()

    def close(self) -> None:
        if self._transaction is not None:
            self._transaction.rollback()
            self._transaction = None
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        self._closed = True

    # ------------ commands and queries ------------
    def execute_non_query(self, sql: str, *sql_args: Any) -> int:
        statement, params = prepare_command(sql, sql_args)
        self.log.debug(f"SQL: {sql}")
        with self._unit_of_work() as conn:
            return conn.execute(statement, params).rowcount

    def execute_scalar(self, sql: str, *sql_args: Any) -> Any:
        statement, params = prepare_command(sql, sql_args)
        self.log.debug(f"SQL: {sql}")
        with self._unit_of_work() as conn:
            return conn.execute(statement, params).scalar()

    def get_data_table(self, sql: str, *sql_args: Any) -> pd.DataFrame:
        statement, params = prepare_command(sql, sql_args)
        self.log.debug(f"SQL: {sql}")
        with self._unit_of_work() as conn:
            result = conn.execute(statement, params)
            return pd.DataFrame(result.fetchall(), columns=list(result.keys()))

    # ------------ bulk load ------------
    def bulk_copy(
        self,
        table_name: str,
        data: pd.DataFrame,
        retry_on_failure: bool = False,
    ) -> int:
        """
        Append every row of ``data`` to ``table_name`` in one locked load.

        With ``retry_on_failure`` a driver error re-runs the whole batch, up to
        three attempts in total; without it the first failure is final. Inside
        a transaction each attempt runs in its own savepoint, so a failed
        attempt leaves no partial rows behind. Callers delete stale rows in the
        same transaction before loading.
        """
        if not has_value(table_name):
            raise ValidationError("A bulk copy destination table is required.")
        if data is None:
            raise ValidationError("No data was given to bulk copy.")

        max_attempts = BULK_COPY_ATTEMPTS if retry_on_failure else 1
        attempts = 0

        def attempt() -> None:
            nonlocal attempts
            attempts += 1
            self.log.info(
                f"Bulk copying {len(data)} rows into {table_name} (attempt {attempts}/{max_attempts})"
            )
            self._write_frame(table_name, data)

        def log_retry(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            self.log.warning(f"Bulk copy into {table_name} failed: {exc}")

        retryer = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=self.bulk_retry_wait,
            retry=retry_if_exception_type(DBAPIError),
            before_sleep=log_retry,
            reraise=True,
        )
        try:
            retryer(attempt)
        except DBAPIError as e:
            raise TransientDataError(table_name, attempts) from e
        return len(data)

    def _write_frame(self, table_name: str, data: pd.DataFrame) -> None:
        with self._unit_of_work() as conn:
            check_destination(conn, table_name, list(data.columns))
            lock_table(conn, table_name)
            table = Table(table_name, MetaData(), autoload_with=conn)
            records = frame_records(
                data, {c.name.lower(): c.name for c in table.columns}
            )
            size = self.chunksize or len(records) or 1
            # a failed attempt undoes only its own rows, not the caller's work
            scope = (
                conn.begin_nested()
                if self._transaction is not None
                else nullcontext()
            )
            with scope:
                for start in range(0, len(records), size):
                    conn.execute(table.insert(), records[start : start + size])
