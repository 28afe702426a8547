# File: simplecrud/database.py
"""
SimpleCRUD - Database Access
=============================
The narrow interface the rest of the package uses to talk to the database,
implemented on SQLAlchemy 2.0 Core.

    execute(sql, binds)            lazy single-pass row cursor
    quote_identifier(name)         dialect-correct identifier quoting
    insert / update / delete       write helpers returning a success flag
    fetch_one(table, key, value)   one record by key
    column_metadata(table)         ordered ``ColumnDescriptor`` list

Bind values are always positional: SQL text produced by the query compiler
contains ``:p0``, ``:p1`` … placeholders in the same order as the bind list.
No connection is held between calls; each call checks one out of the
engine's pool and returns it before the call (or the cursor) finishes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import CompileError, NoSuchTableError, SQLAlchemyError
from sqlalchemy.types import Enum as SQLEnum
from sqlalchemy.types import TypeEngine

from simplecrud.errors import SchemaError
from simplecrud.models import ColumnDescriptor

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.database")


def bind_name(index: int) -> str:
    """Name of the ``index``-th positional bind parameter."""
    return f"p{index}"


def bind_params(binds: Sequence[Any]) -> Dict[str, Any]:
    """Map a positional bind list onto ``{"p0": ..., "p1": ...}``."""
    return {bind_name(i): value for i, value in enumerate(binds)}


def _type_name(col_type: TypeEngine) -> str:
    try:
        return str(col_type)
    except CompileError:
        return type(col_type).__name__.upper()


class Database:
    """
    SQLAlchemy-backed database collaborator.

    Accepts either a ready ``Engine`` (the host application's pool) or a
    database URL from which one is created.
    """

    def __init__(self, engine: Union[Engine, str], **engine_kwargs: Any) -> None:
        if isinstance(engine, str):
            engine = create_engine(engine, **engine_kwargs)
        self.engine: Engine = engine
        self._preparer = engine.dialect.identifier_preparer

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    # -- Identifiers --------------------------------------------------------

    def quote_identifier(self, name: str) -> str:
        """Quote *name* unconditionally for the connected dialect."""
        return self._preparer.quote_identifier(name)

    def qualify(self, table: str, column: str) -> str:
        return f"{self.quote_identifier(table)}.{self.quote_identifier(column)}"

    # -- Reads --------------------------------------------------------------

    def execute(self, sql: str, binds: Sequence[Any] = ()) -> Iterator[Dict[str, Any]]:
        """
        Run a SELECT and yield each row as a dict keyed by output column.

        The cursor is lazy and single-pass; iterating again requires a new
        call.  Database failures surface as ``SchemaError``.
        """
        params: Dict[str, Any] = bind_params(binds)
        logger.debug("SQL: %s | binds: %r", sql, list(binds))
        try:
            with self.engine.connect() as conn:
                result = conn.execute(text(sql), params)
                for row in result.mappings():
                    yield dict(row)
        except SQLAlchemyError as exc:
            logger.error("Query failed: %s", exc)
            raise SchemaError(f"Query failed: {exc}") from exc

    def fetch_one(
        self, table: str, key_column: str, value: Any
    ) -> Optional[Dict[str, Any]]:
        """Return the record whose *key_column* equals *value*, or None."""
        sql: str = (
            f"SELECT * FROM {self.quote_identifier(table)} "
            f"WHERE {self.quote_identifier(key_column)} = :{bind_name(0)}"
        )
        for row in self.execute(sql, [value]):
            return row
        return None

    def label_options(
        self, table: str, key_column: str, label_column: str
    ) -> List[Tuple[Any, Any]]:
        """``(key, label)`` pairs of a related table, ordered by label."""
        label: str = self.quote_identifier(label_column)
        sql: str = (
            f"SELECT {self.quote_identifier(key_column)} AS {self.quote_identifier('key')}, "
            f"{label} AS {self.quote_identifier('label')} "
            f"FROM {self.quote_identifier(table)} ORDER BY {label}"
        )
        return [(row["key"], row["label"]) for row in self.execute(sql)]

    def column_metadata(self, table: str) -> List[ColumnDescriptor]:
        """
        Describe *table*'s columns in physical (ordinal) order.

        Raises ``NoSuchTableError`` when the table does not exist; other
        SQLAlchemy errors propagate unchanged.
        """
        inspector = inspect(self.engine)
        if not inspector.has_table(table):
            raise NoSuchTableError(table)
        descriptors: List[ColumnDescriptor] = []
        for position, col in enumerate(inspector.get_columns(table), start=1):
            col_type: TypeEngine = col["type"]
            enum_values: Optional[Tuple[str, ...]] = None
            if isinstance(col_type, SQLEnum) and col_type.enums:
                enum_values = tuple(col_type.enums)
            descriptors.append(
                ColumnDescriptor(
                    name=col["name"],
                    ordinal_position=position,
                    type_name=_type_name(col_type),
                    nullable=bool(col.get("nullable", True)),
                    enum_values=enum_values,
                )
            )
        return descriptors

    # -- Writes -------------------------------------------------------------

    def insert(self, table: str, fields: Mapping[str, Any]) -> bool:
        columns: List[str] = list(fields)
        column_sql: str = ", ".join(self.quote_identifier(c) for c in columns)
        placeholders: str = ", ".join(f":{bind_name(i)}" for i in range(len(columns)))
        sql: str = (
            f"INSERT INTO {self.quote_identifier(table)} ({column_sql}) "
            f"VALUES ({placeholders})"
        )
        return self._write("insert", table, sql, [fields[c] for c in columns])

    def update(
        self, table: str, where: Mapping[str, Any], fields: Mapping[str, Any]
    ) -> bool:
        binds: List[Any] = []
        assignments: List[str] = []
        for column, value in fields.items():
            assignments.append(f"{self.quote_identifier(column)} = :{bind_name(len(binds))}")
            binds.append(value)
        if not assignments:
            return True
        where_sql: str = self._where_sql(where, binds)
        sql: str = (
            f"UPDATE {self.quote_identifier(table)} SET {', '.join(assignments)}"
            f" WHERE {where_sql}"
        )
        return self._write("update", table, sql, binds)

    def delete(self, table: str, where: Mapping[str, Any]) -> bool:
        """Delete matching rows; succeeds only if at least one row went away."""
        binds: List[Any] = []
        where_sql: str = self._where_sql(where, binds)
        sql: str = f"DELETE FROM {self.quote_identifier(table)} WHERE {where_sql}"
        return self._write("delete", table, sql, binds, require_rows=True)

    def _where_sql(self, where: Mapping[str, Any], binds: List[Any]) -> str:
        if not where:
            raise ValueError("Refusing to write without a WHERE condition.")
        parts: List[str] = []
        for column, value in where.items():
            parts.append(f"{self.quote_identifier(column)} = :{bind_name(len(binds))}")
            binds.append(value)
        return " AND ".join(parts)

    def _write(
        self,
        action: str,
        table: str,
        sql: str,
        binds: Sequence[Any],
        require_rows: bool = False,
    ) -> bool:
        logger.debug("SQL: %s | binds: %r", sql, list(binds))
        try:
            with self.engine.begin() as conn:
                result = conn.execute(text(sql), bind_params(binds))
        except SQLAlchemyError as exc:
            logger.warning("Failed to %s into/from '%s': %s", action, table, exc)
            return False
        if require_rows and result.rowcount == 0:
            logger.warning("%s on '%s' matched no rows.", action.capitalize(), table)
            return False
        return True

    def __repr__(self) -> str:
        return f"<Database {self.engine.url.render_as_string(hide_password=True)}>"


__all__: List[str] = ["Database", "bind_name", "bind_params"]
