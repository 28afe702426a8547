# File: simplecrud/introspect.py
"""
SimpleCRUD - Schema Introspector
=================================
Answers "what columns does this table have, in what order, with what
properties" and caches the answer per table name.

The cache is filled lazily on first use and read-only afterwards.  Two
requests racing to fill the same entry compute identical lists, so the
last writer wins without harm.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from simplecrud.database import Database
from simplecrud.errors import SchemaError
from simplecrud.models import ColumnDescriptor

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.introspect")


class SchemaIntrospector:
    """Cached column metadata for the tables a CRUD endpoint touches."""

    __slots__ = ("_database", "_cache")

    def __init__(self, database: Database) -> None:
        self._database: Database = database
        self._cache: Dict[str, List[ColumnDescriptor]] = {}

    def columns_of(self, table: str) -> List[ColumnDescriptor]:
        """
        Columns of *table* ordered by ordinal position.

        Raises:
            SchemaError: the table does not exist or cannot be described.
        """
        cached = self._cache.get(table)
        if cached is not None:
            return cached
        try:
            columns: List[ColumnDescriptor] = self._database.column_metadata(table)
        except NoSuchTableError as exc:
            logger.error("Table '%s' does not exist.", table)
            raise SchemaError(f"Table '{table}' does not exist.") from exc
        except SQLAlchemyError as exc:
            logger.error("Could not describe table '%s': %s", table, exc)
            raise SchemaError(f"Could not describe table '{table}': {exc}") from exc
        if not columns:
            raise SchemaError(f"Table '{table}' has no columns.")
        columns = sorted(columns, key=lambda c: c.ordinal_position)
        self._cache[table] = columns
        logger.debug(
            "Introspected '%s': %s", table, ", ".join(c.name for c in columns)
        )
        return columns

    def column_names(self, table: str) -> List[str]:
        return [c.name for c in self.columns_of(table)]

    def column_map(self, table: str) -> Dict[str, ColumnDescriptor]:
        return {c.name: c for c in self.columns_of(table)}

    def clear_cache(self) -> None:
        """Forget every cached table (after a migration, or between tests)."""
        self._cache.clear()


__all__: List[str] = ["SchemaIntrospector"]
