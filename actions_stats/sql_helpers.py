from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from pandas.api.types import is_scalar
from sqlalchemy import Connection, Engine, event, inspect, text
from sqlalchemy.sql.elements import TextClause

from actions_stats.errors import ValidationError

# dialects that need an explicit statement to hold a table lock for a load;
# sqlite takes a database-wide write lock on its own
_TABLE_LOCKS = {
    "postgresql": "LOCK TABLE {table} IN EXCLUSIVE MODE",
    "mssql": "SELECT TOP 0 * FROM {table} WITH (TABLOCKX, HOLDLOCK)",
}


def bind_params(sql_args: Sequence[Any]) -> Dict[str, Any]:
    """Turn ``("@Name", value, "@Other", value2)`` into bind parameters."""
    if len(sql_args) % 2:
        raise ValidationError(
            "SQL parameters must be given as name/value pairs."
        )
    params: Dict[str, Any] = {}
    for i in range(0, len(sql_args), 2):
        name = sql_args[i]
        if not isinstance(name, str) or not name.lstrip("@:").strip():
            raise ValidationError(f"Invalid SQL parameter name: {name!r}")
        params[name.lstrip("@:")] = sql_args[i + 1]
    return params


def prepare_command(
    sql: Optional[str], sql_args: Sequence[Any]
) -> Tuple[TextClause, Dict[str, Any]]:
    # the statement text is used as given; values only travel as bind params
    if sql is None or not sql.strip():
        raise ValidationError(
            "The SQL statement was blank. A valid SQL Statement must be provided."
        )
    return text(sql), bind_params(sql_args)


def lock_table(conn: Connection, table_name: str) -> None:
    template = _TABLE_LOCKS.get(conn.dialect.name)
    if template is None:
        return
    quoted = conn.dialect.identifier_preparer.quote(table_name)
    conn.exec_driver_sql(template.format(table=quoted))


def check_destination(
    conn: Connection, table_name: str, columns: Sequence[str]
) -> None:
    insp = inspect(conn)
    if not insp.has_table(table_name):
        raise ValidationError(
            f"Bulk copy destination table '{table_name}' does not exist."
        )
    existing = {c["name"].lower() for c in insp.get_columns(table_name)}
    unknown = [c for c in columns if str(c).lower() not in existing]
    if unknown:
        raise ValidationError(
            f"Columns {unknown} are not part of table '{table_name}'."
        )


def frame_records(
    data: pd.DataFrame, column_names: Optional[Dict[str, str]] = None
) -> List[Dict[str, Any]]:
    """Rows of ``data`` as plain dicts for an executemany insert.

    ``column_names`` maps lower-cased frame columns to the table's spelling.
    Missing values become ``None`` and timestamps become ``datetime``.
    """
    names = column_names or {}
    keys = {c: names.get(str(c).lower(), str(c)) for c in data.columns}
    return [
        {keys[k]: _native(v) for k, v in row.items()}
        for row in data.to_dict("records")
    ]


def _native(value: Any) -> Any:
    if value is None or (is_scalar(value) and pd.isna(value)):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


def use_sqlite_transactions(engine: Engine) -> None:
    """Have SQLAlchemy emit BEGIN on SQLite so savepoints nest correctly."""

    @event.listens_for(engine, "connect")
    def _driver_autocommit(dbapi_connection, _record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN")
