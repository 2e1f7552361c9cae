from contextlib import contextmanager
from logging import Logger
from typing import Any, Iterator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from actions_stats.errors import ValidationError
from actions_stats.small_utils import has_value
from actions_stats.sql_helpers import use_sqlite_transactions
from actions_stats.sql_session import SqlSession
from logger.secret_registry import register_secret


class SqlService:
    """
    Owns the SQLAlchemy engine (and its pool) and hands out exclusive sessions.

    Example:
        >>> with SqlService(log, "postgresql+psycopg://u:p@db/stats") as db:
        ...     with db.session() as session:
        ...         session.run_in_transaction(lambda: ...)
    """

    def __init__(
        self,
        log: Logger,
        connection_string: Optional[str] = None,
        engine: Optional[Engine] = None,
        **session_opts: Any,
    ) -> None:
        self.log = log
        self._session_opts = session_opts
        if engine is None:
            if not has_value(connection_string):
                raise ValidationError("A SQL connection string is required.")
            register_secret(connection_string)
            try:
                url = make_url(connection_string)
            except ArgumentError as e:
                raise ValidationError(
                    "The SQL connection string is not a valid database URL."
                ) from e
            register_secret(url.password)
            engine = create_engine(url, pool_pre_ping=True)
            if url.get_backend_name() == "sqlite":
                use_sqlite_transactions(engine)
        self.engine = engine

    def __enter__(self) -> "SqlService":
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()

    @contextmanager
    def session(self) -> Iterator[SqlSession]:
        session = SqlSession(self.engine, self.log, **self._session_opts)
        try:
            yield session
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
