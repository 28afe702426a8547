# File: simplecrud/query.py
"""
SimpleCRUD - Query Compiler
============================
Turns a ``CrudSpec`` plus the per-request ``RequestState`` into one
parameterised SELECT, described by a ``QueryPlan``.

Pipeline (one pass per request, no database round trip except the cached
column lookup):
    1. Display columns, each qualified by the base table.
    2. Foreign-key columns swapped for the related table's label column
       through a LEFT JOIN; the output keeps the raw column's name.
    3. Declared joins, appending their selected columns.
    4. Custom columns: replace a same-named output column in place, else
       append.
    5. ``actions`` sentinel (the key column) when the CrudSpec is editable.
    6. WHERE: static/computed ``where_filter`` AND the active search.
    7. ORDER BY: validated sort column, else the key column ascending.
    8. LIMIT/OFFSET when paginated.

Every identifier reaching SQL text has passed the ``[A-Za-z0-9_-]`` check
and is quoted through the database dialect; every user-supplied value is a
bind parameter.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set

from simplecrud.database import Database, bind_name
from simplecrud.errors import ConfigurationError
from simplecrud.introspect import SchemaIntrospector
from simplecrud.models import (
    ColumnDescriptor,
    CrudSpec,
    JoinKind,
    RequestState,
    SearchType,
    SortDirection,
)
from simplecrud.utils import split_qualified

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.query")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ACTIONS_COLUMN: str = "actions"

LIKE_ESCAPE: str = "!"

_PLACEHOLDER_RE: re.Pattern[str] = re.compile(r"\?")

_COMPARISON_OPERATORS: Dict[str, str] = {
    SearchType.EQUALS.value: "=",
    SearchType.NOT_EQUALS.value: "!=",
    SearchType.LESS_THAN.value: "<",
    SearchType.LESS_OR_EQUAL.value: "<=",
    SearchType.GREATER_THAN.value: ">",
    SearchType.GREATER_OR_EQUAL.value: ">=",
}

_LIKE_OPERATORS: Dict[str, str] = {
    SearchType.CONTAINS.value: "LIKE",
    SearchType.NOT_CONTAINS.value: "NOT LIKE",
}


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


# ---------------------------------------------------------------------------
# Plan data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SelectColumn:
    """One output column: ``expression AS alias``."""

    expression: str
    alias: str
    kind: str  # "column" | "foreign_key" | "join" | "custom" | "actions"
    source: str


@dataclass
class QueryPlan:
    """
    A compiled list (or single-record) query.

    ``where`` fragments and ``binds`` grow together through ``add_where``
    so the n-th ``:pN`` placeholder always refers to ``binds[n]``.
    """

    table: str
    from_sql: str
    state: RequestState
    select: List[SelectColumn] = field(default_factory=list)
    joins: List[str] = field(default_factory=list)
    where: List[str] = field(default_factory=list)
    binds: List[Any] = field(default_factory=list)
    order_by: Optional[str] = None
    order_column: Optional[str] = None
    order_direction: str = SortDirection.ASC.value
    page_size: Optional[int] = None
    page_number: int = 0

    @property
    def output_names(self) -> List[str]:
        return [c.alias for c in self.select]

    @property
    def data_names(self) -> List[str]:
        """Output names without the ``actions`` sentinel."""
        return [c.alias for c in self.select if c.kind != "actions"]

    def applied_state(self) -> RequestState:
        """``state`` with the sort this plan actually applied; an ignored ``o`` is dropped."""
        honoured: bool = (
            self.state.order_column is not None
            and self.state.order_column == self.order_column
        )
        return self.state.model_copy(
            update={
                "order_column": self.order_column if honoured else None,
                "order_direction": self.order_direction,
            }
        )

    def column(self, alias: str) -> Optional[SelectColumn]:
        for col in self.select:
            if col.alias == alias:
                return col
        return None

    def add_where(self, template: str, values: Sequence[Any] = ()) -> None:
        """Append a WHERE fragment written with ``?`` placeholders."""
        values = list(values)
        if template.count("?") != len(values):
            raise ValueError(
                f"WHERE fragment {template!r} expects {template.count('?')} "
                f"values, got {len(values)}."
            )
        start: int = len(self.binds)
        counter = iter(range(start, start + len(values)))
        self.where.append(
            _PLACEHOLDER_RE.sub(lambda _m: ":" + bind_name(next(counter)), template)
        )
        self.binds.extend(values)

    @property
    def offset(self) -> int:
        if self.page_size is None:
            return 0
        return self.page_size * self.page_number

    def to_sql(self, quote: Callable[[str], str]) -> str:
        columns: str = ", ".join(
            f"{c.expression} AS {quote(c.alias)}" for c in self.select
        )
        parts: List[str] = [f"SELECT {columns}", f"FROM {self.from_sql}"]
        parts.extend(self.joins)
        if self.where:
            parts.append("WHERE " + " AND ".join(f"({w})" for w in self.where))
        if self.order_by:
            parts.append(f"ORDER BY {self.order_by}")
        if self.page_size is not None:
            parts.append(f"LIMIT {int(self.page_size)} OFFSET {int(self.offset)}")
        return " ".join(parts)


class _AliasAllocator:
    """Hands out table aliases; a repeated table gets ``table_2``, ``table_3``..."""

    __slots__ = ("_used",)

    def __init__(self, base_table: str) -> None:
        self._used: Set[str] = {base_table}

    def allocate(self, table: str) -> str:
        if table not in self._used:
            self._used.add(table)
            return table
        n: int = 2
        while f"{table}_{n}" in self._used:
            n += 1
        alias: str = f"{table}_{n}"
        self._used.add(alias)
        return alias


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------


class QueryCompiler:
    """Compiles list-view and single-record SELECTs for a ``CrudSpec``."""

    def __init__(self, database: Database, introspector: SchemaIntrospector) -> None:
        self.database: Database = database
        self.introspector: SchemaIntrospector = introspector

    # -- Public API ---------------------------------------------------------

    def compile(
        self, spec: CrudSpec, state: RequestState, request: Any = None
    ) -> QueryPlan:
        columns: Dict[str, ColumnDescriptor] = self.introspector.column_map(spec.table)
        display: List[str] = list(spec.display_columns or columns)

        plan: QueryPlan = QueryPlan(
            table=spec.table,
            from_sql=self._q(spec.table),
            state=state,
            page_size=spec.paginate_size,
            page_number=state.page_number if spec.paginate_size else 0,
        )
        aliases = _AliasAllocator(spec.table)

        self._add_base_columns(plan, spec, display, aliases)
        self._add_joins(plan, spec, aliases)
        self._add_custom_columns(plan, spec)
        if spec.editable:
            plan.select.append(
                SelectColumn(
                    expression=self.database.qualify(spec.table, spec.key_column),
                    alias=ACTIONS_COLUMN,
                    kind="actions",
                    source=spec.key_column,
                )
            )

        self._add_where_filter(plan, spec, request)
        if spec.searchable:
            self._add_search(plan, spec, state, columns)
        self._add_order(plan, spec, state, columns)

        logger.debug(
            "Compiled %s: %s | binds=%r",
            spec.prefix,
            plan.to_sql(self._q),
            plan.binds,
        )
        return plan

    def compile_record(
        self, spec: CrudSpec, record_id: Any, request: Any = None
    ) -> QueryPlan:
        """SELECT every column of one record, foreign keys shown by label."""
        columns: Dict[str, ColumnDescriptor] = self.introspector.column_map(spec.table)
        plan: QueryPlan = QueryPlan(
            table=spec.table,
            from_sql=self._q(spec.table),
            state=RequestState(),
        )
        self._add_base_columns(plan, spec, list(columns), _AliasAllocator(spec.table))
        self._add_where_filter(plan, spec, request)
        plan.add_where(
            f"{self.database.qualify(spec.table, spec.key_column)} = ?", [record_id]
        )
        return plan

    def run(self, plan: QueryPlan):
        """Execute *plan*, returning the database's lazy row cursor."""
        return self.database.execute(plan.to_sql(self._q), plan.binds)

    # -- Steps --------------------------------------------------------------

    def _q(self, name: str) -> str:
        return self.database.quote_identifier(name)

    def _qualified(self, name: str, default_table: str) -> str:
        table, column = split_qualified(name)
        return self.database.qualify(table or default_table, column)

    def _add_base_columns(
        self,
        plan: QueryPlan,
        spec: CrudSpec,
        names: Sequence[str],
        aliases: _AliasAllocator,
    ) -> None:
        for name in names:
            fk = spec.foreign_keys.get(name)
            if fk is None:
                plan.select.append(
                    SelectColumn(
                        expression=self.database.qualify(spec.table, name),
                        alias=name,
                        kind="column",
                        source=name,
                    )
                )
                continue
            alias: str = aliases.allocate(fk.table)
            table_sql: str = self._q(fk.table)
            if alias != fk.table:
                table_sql += f" {self._q(alias)}"
            plan.joins.append(
                f"LEFT JOIN {table_sql} ON "
                f"{self.database.qualify(spec.table, name)} = "
                f"{self.database.qualify(alias, fk.key_column)}"
            )
            plan.select.append(
                SelectColumn(
                    expression=self.database.qualify(alias, fk.label_column),
                    alias=name,
                    kind="foreign_key",
                    source=name,
                )
            )

    def _add_joins(
        self, plan: QueryPlan, spec: CrudSpec, aliases: _AliasAllocator
    ) -> None:
        for join in spec.joins:
            alias: str = aliases.allocate(join.table)
            table_sql: str = self._q(join.table)
            if alias != join.table:
                table_sql += f" {self._q(alias)}"
            keyword: str = "INNER JOIN" if join.join_kind == JoinKind.INNER else "LEFT JOIN"

            local_sql: str = self._qualified(join.local_key, spec.table)
            remote_table, remote_column = split_qualified(join.remote_key)
            if remote_table is None or remote_table == join.table:
                remote_sql: str = self.database.qualify(alias, remote_column)
            else:
                remote_sql = self.database.qualify(remote_table, remote_column)
            plan.joins.append(f"{keyword} {table_sql} ON {local_sql} = {remote_sql}")

            for column in join.selected_columns:
                out_name: str = self._join_output_name(plan, alias, column)
                plan.select.append(
                    SelectColumn(
                        expression=self.database.qualify(alias, column),
                        alias=out_name,
                        kind="join",
                        source=column,
                    )
                )

    @staticmethod
    def _join_output_name(plan: QueryPlan, alias: str, column: str) -> str:
        """
        *column*, else ``<alias>_<column>``, else that with a numeric suffix;
        the first name not yet taken in *plan* (``actions`` is always taken).
        """
        taken: Set[str] = set(plan.output_names) | {ACTIONS_COLUMN}
        if column not in taken:
            return column
        candidate: str = f"{alias}_{column}"
        suffix: int = 2
        while candidate in taken:
            candidate = f"{alias}_{column}_{suffix}"
            suffix += 1
        return candidate

    def _add_custom_columns(self, plan: QueryPlan, spec: CrudSpec) -> None:
        for custom in spec.custom_columns:
            selected = SelectColumn(
                expression=self._qualified(custom.source_column, spec.table),
                alias=custom.name,
                kind="custom",
                source=custom.source_column,
            )
            names: List[str] = plan.output_names
            if custom.name in names:
                plan.select[names.index(custom.name)] = selected
            else:
                plan.select.append(selected)

    def _add_where_filter(self, plan: QueryPlan, spec: CrudSpec, request: Any) -> None:
        conditions = spec.where_filter
        if conditions is None:
            return
        if callable(conditions):
            conditions = conditions(request)
            if conditions is None:
                return
            if not isinstance(conditions, Mapping):
                raise ConfigurationError(
                    f"where_filter for '{spec.prefix}' must return a mapping, "
                    f"got {type(conditions).__name__}."
                )
        for name, value in conditions.items():
            expr: str = self._qualified(name, spec.table)
            if value is None:
                plan.add_where(f"{expr} IS NULL")
            elif isinstance(value, (list, tuple, set, frozenset)):
                values: List[Any] = list(value)
                if not values:
                    plan.add_where("1 = 0")
                else:
                    marks: str = ", ".join("?" for _ in values)
                    plan.add_where(f"{expr} IN ({marks})", values)
            else:
                plan.add_where(f"{expr} = ?", [value])

    def _add_search(
        self,
        plan: QueryPlan,
        spec: CrudSpec,
        state: RequestState,
        columns: Mapping[str, ColumnDescriptor],
    ) -> None:
        if state.query_text is None:
            return
        field_name: str = spec.key_column
        if state.search_field in columns:
            field_name = state.search_field
        elif state.search_field is not None:
            logger.debug(
                "Unknown search field %r on %s; searching %s.",
                state.search_field,
                spec.prefix,
                spec.key_column,
            )
        expr: str = self.database.qualify(spec.table, field_name)
        search_type: str = SearchType.parse(state.search_type).value

        if search_type in _LIKE_OPERATORS:
            plan.add_where(
                f"{expr} {_LIKE_OPERATORS[search_type]} ? ESCAPE '{LIKE_ESCAPE}'",
                [f"%{escape_like(state.query_text)}%"],
            )
        else:
            plan.add_where(
                f"{expr} {_COMPARISON_OPERATORS[search_type]} ?", [state.query_text]
            )

    def _add_order(
        self,
        plan: QueryPlan,
        spec: CrudSpec,
        state: RequestState,
        columns: Mapping[str, ColumnDescriptor],
    ) -> None:
        key_expr: str = self.database.qualify(spec.table, spec.key_column)
        plan.order_column = spec.key_column
        plan.order_direction = SortDirection.ASC.value
        plan.order_by = f"{key_expr} ASC"
        if not spec.sortable or state.order_column is None:
            return

        requested: str = state.order_column
        expression: Optional[str] = None
        selected = plan.column(requested)
        if selected is not None and selected.kind != "actions":
            expression = selected.expression
        elif requested in columns:
            expression = self.database.qualify(spec.table, requested)

        if expression is None:
            logger.debug(
                "Ignoring unknown sort column %r on %s.", requested, spec.prefix
            )
            return
        direction: str = SortDirection.parse(state.order_direction).value
        plan.order_column = requested
        plan.order_direction = direction
        plan.order_by = f"{expression} {direction.upper()}"


__all__: List[str] = [
    "ACTIONS_COLUMN",
    "SelectColumn",
    "QueryPlan",
    "QueryCompiler",
    "escape_like",
]
