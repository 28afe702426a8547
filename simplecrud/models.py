# File: simplecrud/models.py
"""
SimpleCRUD - Core Data Models
==============================
Pydantic V2 models describing one registered CRUD endpoint set
(``CrudSpec``), the introspected shape of a table (``ColumnDescriptor``)
and the per-request list-view state parsed from the query string
(``RequestState``).

These models are the single source of truth for the whole request
pipeline: Registration → Query Compilation → Rendering / Export / Forms.
``CrudSpec`` is frozen: it is built once at application setup and then
shared, read-only, by every concurrent request.

Per-field safety lives here (every identifier that may reach SQL text is
checked against ``[A-Za-z0-9_-]``).  Checks that need the live table
columns live in ``simplecrud.validators``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from simplecrud.utils import (
    blank_to_none,
    check_identifier,
    check_qualified,
    parse_page_number,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.models")

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SearchType(str, Enum):
    """Comparison applied by the list-view search box (``searchtype``)."""

    EQUALS = "e"
    CONTAINS = "c"
    NOT_EQUALS = "ne"
    NOT_CONTAINS = "nc"
    LESS_THAN = "lt"
    LESS_OR_EQUAL = "lte"
    GREATER_THAN = "gt"
    GREATER_OR_EQUAL = "gte"

    @classmethod
    def parse(cls, raw: Any) -> "SearchType":
        """Map a query-string value (code or long name) to a member; default EQUALS."""
        if raw is None:
            return cls.EQUALS
        key: str = str(raw).strip().lower()
        return _SEARCH_TYPE_ALIASES.get(key, cls.EQUALS)

    @property
    def description(self) -> str:
        return _SEARCH_TYPE_LABELS[self.value]


_SEARCH_TYPE_ALIASES: Dict[str, SearchType] = {
    "e": SearchType.EQUALS,
    "eq": SearchType.EQUALS,
    "equals": SearchType.EQUALS,
    "c": SearchType.CONTAINS,
    "like": SearchType.CONTAINS,
    "contains": SearchType.CONTAINS,
    "ne": SearchType.NOT_EQUALS,
    "not-equals": SearchType.NOT_EQUALS,
    "nc": SearchType.NOT_CONTAINS,
    "not-contains": SearchType.NOT_CONTAINS,
    "lt": SearchType.LESS_THAN,
    "lte": SearchType.LESS_OR_EQUAL,
    "gt": SearchType.GREATER_THAN,
    "gte": SearchType.GREATER_OR_EQUAL,
}

_SEARCH_TYPE_LABELS: Dict[str, str] = {
    "e": "Equals",
    "c": "Contains",
    "ne": "Does not equal",
    "nc": "Does not contain",
    "lt": "Less than",
    "lte": "Less than or equal to",
    "gt": "Greater than",
    "gte": "Greater than or equal to",
}


class SortDirection(str, Enum):
    """ORDER BY direction (``d`` query parameter)."""

    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, raw: Any) -> "SortDirection":
        if raw is not None and str(raw).strip().lower() == "desc":
            return cls.DESC
        return cls.ASC

    def toggled(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


class JoinKind(str, Enum):
    """SQL join flavour for a declared join."""

    INNER = "inner"
    LEFT = "left"


class ExportFormat(str, Enum):
    """Download formats offered on the list view (``format`` parameter)."""

    CSV = "csv"
    TABULAR = "tabular"
    JSON = "json"
    XML = "xml"


class InputType(str, Enum):
    """Form widget kinds the form compiler can emit."""

    TEXT = "text"
    PASSWORD = "password"
    TEXTAREA = "textarea"
    SELECT = "select"


# ---------------------------------------------------------------------------
# Mixin: shared model configuration
# ---------------------------------------------------------------------------

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    use_enum_values=True,
    frozen=True,
    extra="forbid",
)


# ---------------------------------------------------------------------------
# Introspected schema
# ---------------------------------------------------------------------------

_TEXT_TYPES = frozenset({"TEXT", "TINYTEXT", "MEDIUMTEXT", "LONGTEXT", "CLOB", "NTEXT"})
_NUMERIC_TYPES = frozenset({
    "INTEGER", "INT", "BIGINT", "SMALLINT", "TINYINT", "MEDIUMINT",
    "SERIAL", "BIGSERIAL", "NUMERIC", "DECIMAL", "FLOAT", "REAL",
    "DOUBLE", "DOUBLE PRECISION",
})


class ColumnDescriptor(BaseModel):
    """
    Introspected metadata for one table column.

    Created by ``SchemaIntrospector`` on first use per table and cached
    for the process lifetime.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Column name.")
    ordinal_position: int = Field(..., ge=1, description="1-based physical position.")
    type_name: str = Field(default="", description="SQL type name as reported by the DB.")
    nullable: bool = Field(default=True, description="Whether the column allows NULL.")
    enum_values: Optional[Tuple[str, ...]] = Field(
        default=None, description="Declared value set of an ENUM-like column."
    )

    @property
    def base_type(self) -> str:
        return self.type_name.upper().split("(")[0].strip()

    @computed_field  # type: ignore[misc]
    @property
    def is_text(self) -> bool:
        """True for long-text columns that deserve a multi-line widget."""
        return self.base_type in _TEXT_TYPES

    @computed_field  # type: ignore[misc]
    @property
    def is_numeric(self) -> bool:
        return self.base_type in _NUMERIC_TYPES

    @computed_field  # type: ignore[misc]
    @property
    def is_enum(self) -> bool:
        return bool(self.enum_values)

    def __repr__(self) -> str:
        null_flag: str = " NULL" if self.nullable else " NOT NULL"
        return f"<Column #{self.ordinal_position} {self.name} {self.type_name}{null_flag}>"


# ---------------------------------------------------------------------------
# CrudSpec building blocks
# ---------------------------------------------------------------------------


class CustomColumn(BaseModel):
    """
    A computed list-view column.

    ``source_column`` is selected in SQL under ``name``; the renderer then
    calls ``transform(raw_value, full_row)``.  Configuration files cannot
    carry callables, so ``format`` (``"Hello, id: {value}"``) is accepted as
    an alternative; row columns are available by name in the format string.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., description="Output column name.")
    source_column: str = Field(
        ..., alias="raw_column", description="Selected column, bare or table.column."
    )
    transform: Optional[Callable[[Any, Mapping[str, Any]], Any]] = Field(
        default=None, description="Callback producing the cell value."
    )
    format: Optional[str] = Field(
        default=None, description="str.format template used when no transform is given."
    )
    column_class: Optional[str] = Field(
        default=None, description="CSS class put on every cell of this column."
    )

    @field_validator("name")
    @classmethod
    def _safe_name(cls, v: str) -> str:
        return check_identifier(v, "custom column name")

    @field_validator("source_column")
    @classmethod
    def _safe_source(cls, v: str) -> str:
        return check_qualified(v, "custom column source")

    @model_validator(mode="after")
    def _one_transform(self) -> "CustomColumn":
        if self.transform is not None and self.format is not None:
            raise ValueError(
                f"Custom column '{self.name}' has both 'transform' and 'format'; "
                "pick one."
            )
        return self

    def apply(self, value: Any, row: Mapping[str, Any]) -> Any:
        """Compute the displayed value for one row."""
        if self.transform is not None:
            return self.transform(value, row)
        if self.format is not None:
            return self.format.format_map(
                {**row, "value": "" if value is None else value}
            )
        return value


class ForeignKey(BaseModel):
    """Shows ``table.label_column`` instead of a raw foreign id."""

    model_config = _SHARED_CONFIG

    table: str = Field(..., description="Related table.")
    key_column: str = Field(default="id", description="Related table's key column.")
    label_column: str = Field(..., description="Related column shown to the user.")

    @field_validator("table", "key_column", "label_column")
    @classmethod
    def _safe(cls, v: str) -> str:
        return check_identifier(v, "foreign key identifier")


class Join(BaseModel):
    """A declared join contributing extra columns to the list view."""

    model_config = _SHARED_CONFIG

    table: str = Field(..., alias="db_table", description="Joined table.")
    join_kind: JoinKind = Field(
        default=JoinKind.LEFT, alias="join_style", description="INNER or LEFT."
    )
    selected_columns: List[str] = Field(
        ..., min_length=1, alias="select_columns", description="Columns to display."
    )
    local_key: str = Field(..., description="Base-table column (bare or qualified).")
    remote_key: str = Field(..., description="Joined-table column (bare or qualified).")

    @field_validator("join_kind", mode="before")
    @classmethod
    def _normalise_kind(cls, v: Any) -> Any:
        if isinstance(v, str):
            key: str = v.strip().lower().replace(" join", "")
            if key in ("join", "inner"):
                return JoinKind.INNER
            if key in ("left", "left outer"):
                return JoinKind.LEFT
        return v

    @field_validator("table")
    @classmethod
    def _safe_table(cls, v: str) -> str:
        return check_identifier(v, "join table")

    @field_validator("selected_columns")
    @classmethod
    def _safe_columns(cls, v: List[str]) -> List[str]:
        for name in v:
            check_identifier(name, "join column")
        if len(v) != len(set(v)):
            raise ValueError(f"Duplicate join columns: {v}")
        return v

    @field_validator("local_key", "remote_key")
    @classmethod
    def _safe_keys(cls, v: str) -> str:
        return check_qualified(v, "join key")


class AuthRule(BaseModel):
    """Requirements for one action (view or edit)."""

    model_config = _SHARED_CONFIG

    require_login: bool = Field(default=False)
    require_role: Optional[str] = Field(default=None, min_length=1)

    @property
    def is_open(self) -> bool:
        return not self.require_login and self.require_role is None


class AuthPolicy(BaseModel):
    """Per-action access policy; a missing rule means unconditional access."""

    model_config = _SHARED_CONFIG

    view: Optional[AuthRule] = Field(default=None)
    edit: Optional[AuthRule] = Field(default=None)

    def rules_for(self, action: str) -> List[AuthRule]:
        """Editing also requires whatever viewing requires."""
        rules: List[Optional[AuthRule]] = [self.view]
        if action == "edit":
            rules.append(self.edit)
        return [r for r in rules if r is not None and not r.is_open]


# ---------------------------------------------------------------------------
# Save hooks
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class SaveContext:
    """
    Passed to every ``before_save`` / ``after_save`` hook.

    ``fields`` holds the projected, editable values and may be modified by
    ``before_save`` hooks.  ``success`` is None before the write.
    """

    table: str
    key_column: str
    fields: Dict[str, Any]
    record_id: Optional[Any] = None
    success: Optional[bool] = None

    @property
    def is_new(self) -> bool:
        return self.record_id is None


SaveHook = Callable[[SaveContext], Any]


# ---------------------------------------------------------------------------
# CrudSpec
# ---------------------------------------------------------------------------


class CrudSpec(BaseModel):
    """
    Declarative configuration for one CRUD endpoint set.

    One ``CrudSpec`` drives the list, add, edit, view and delete routes
    under ``prefix`` for ``table``.
    """

    model_config = _SHARED_CONFIG

    # -- Identity -----------------------------------------------------------
    prefix: str = Field(..., min_length=1, description="URL path root, e.g. '/users'.")
    table: str = Field(..., alias="db_table", description="Target table name.")
    key_column: str = Field(default="id", description="Primary key column.")
    record_title: str = Field(
        default="record", min_length=1, description="Singular noun used in titles."
    )

    # -- Feature toggles ----------------------------------------------------
    editable: bool = Field(default=True)
    addable: bool = Field(default=True)
    deletable: bool = Field(default=False, alias="deleteable")
    sortable: bool = Field(default=True)
    searchable: bool = Field(default=True)
    downloadable: bool = Field(default=True)

    # -- List view ----------------------------------------------------------
    display_columns: Optional[List[str]] = Field(default=None)
    labels: Dict[str, str] = Field(default_factory=dict, alias="field_labels")
    prettify_headers: bool = Field(default=False)
    custom_columns: List[CustomColumn] = Field(default_factory=list)
    foreign_keys: Dict[str, ForeignKey] = Field(default_factory=dict)
    joins: List[Join] = Field(default_factory=list)
    where_filter: Optional[
        Union[Dict[str, Any], Callable[..., Mapping[str, Any]]]
    ] = Field(default=None)
    paginate_size: Optional[int] = Field(default=None, ge=1, alias="paginate")
    table_css_class: Optional[str] = Field(default=None, alias="table_class")
    template: Optional[str] = Field(default=None, description="Host template name.")

    # -- Forms --------------------------------------------------------------
    editable_columns: Optional[List[str]] = Field(default=None)
    not_editable_columns: List[str] = Field(default_factory=list)
    required: Optional[List[str]] = Field(default=None)
    validation: Dict[str, str] = Field(default_factory=dict)
    acceptable_values: Dict[str, List[str]] = Field(default_factory=dict)
    input_types: Dict[str, InputType] = Field(default_factory=dict)
    default_value: Dict[str, Any] = Field(default_factory=dict)
    messages: Dict[str, str] = Field(default_factory=dict)
    before_save: List[SaveHook] = Field(default_factory=list)
    after_save: List[SaveHook] = Field(default_factory=list)

    # -- Access -------------------------------------------------------------
    auth: Optional[AuthPolicy] = Field(default=None)

    # -- Validators ---------------------------------------------------------

    @field_validator("prefix")
    @classmethod
    def _normalise_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/"):
            v = "/" + v
        v = v.rstrip("/")
        if not v:
            raise ValueError("prefix must name a path below '/'.")
        for segment in v.strip("/").split("/"):
            check_identifier(segment, "prefix segment")
        return v

    @field_validator("table", "key_column")
    @classmethod
    def _safe_identifier(cls, v: str) -> str:
        return check_identifier(v, "table name/key column")

    @field_validator(
        "display_columns", "editable_columns", "not_editable_columns", "required"
    )
    @classmethod
    def _safe_column_lists(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        for name in v:
            check_identifier(name, "column")
        if len(v) != len(set(v)):
            raise ValueError(f"Duplicate columns: {v}")
        return v

    @field_validator("foreign_keys")
    @classmethod
    def _safe_fk_columns(cls, v: Dict[str, ForeignKey]) -> Dict[str, ForeignKey]:
        for name in v:
            check_identifier(name, "foreign key column")
        return v

    @field_validator("where_filter")
    @classmethod
    def _safe_filter_columns(cls, v: Any) -> Any:
        if isinstance(v, dict):
            for name in v:
                check_qualified(name, "where_filter column")
        return v

    @field_validator("custom_columns")
    @classmethod
    def _unique_custom_names(cls, v: List[CustomColumn]) -> List[CustomColumn]:
        names: List[str] = [c.name for c in v]
        if len(names) != len(set(names)):
            dupes: List[str] = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate custom column names: {dupes}")
        return v

    @model_validator(mode="after")
    def _warn_unused_toggles(self) -> "CrudSpec":
        if self.addable and not self.editable:
            logger.debug(
                "CRUD '%s': addable has no effect while editable is off.",
                self.prefix,
            )
        return self

    # -- Helpers ------------------------------------------------------------

    @property
    def can_add(self) -> bool:
        return self.editable and self.addable

    def label_for(self, column: str) -> Optional[str]:
        """The configured label override, if any."""
        return self.labels.get(column)

    def custom_column(self, name: str) -> Optional[CustomColumn]:
        for custom in self.custom_columns:
            if custom.name == name:
                return custom
        return None

    def __repr__(self) -> str:
        return f"<CrudSpec {self.prefix} → {self.table} (key {self.key_column})>"


# ---------------------------------------------------------------------------
# Per-request list state
# ---------------------------------------------------------------------------


class RequestState(BaseModel):
    """
    List-view state parsed from the query string.

    Links emitted by the renderer are built from a copy of this state with
    exactly one dimension changed, so search, sort and paging survive every
    click.  Values are stored as plain strings (search-type codes and
    ``asc``/``desc``) to keep query strings stable.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    search_field: Optional[str] = None
    search_type: str = SearchType.EQUALS.value
    query_text: Optional[str] = None
    order_column: Optional[str] = None
    order_direction: str = SortDirection.ASC.value
    page_number: int = 0
    download_format: Optional[str] = None

    @classmethod
    def from_query(cls, params: Mapping[str, Any]) -> "RequestState":
        """Parse ``q``, ``searchfield``, ``searchtype``, ``o``, ``d``, ``p``, ``format``."""
        fmt: Optional[str] = blank_to_none(params.get("format"))
        return cls(
            search_field=blank_to_none(params.get("searchfield")),
            search_type=SearchType.parse(params.get("searchtype")).value,
            query_text=blank_to_none(params.get("q")),
            order_column=blank_to_none(params.get("o")),
            order_direction=SortDirection.parse(params.get("d")).value,
            page_number=parse_page_number(params.get("p")),
            download_format=fmt.strip().lower() if fmt else None,
        )

    @property
    def has_search(self) -> bool:
        return self.query_text is not None

    # -- Derived states (one dimension changed) -----------------------------

    def with_sort(self, column: str, direction: str) -> "RequestState":
        return self.model_copy(
            update={"order_column": column, "order_direction": direction}
        )

    def with_page(self, page_number: int) -> "RequestState":
        return self.model_copy(update={"page_number": max(0, page_number)})

    def with_format(self, fmt: Optional[str]) -> "RequestState":
        return self.model_copy(update={"download_format": fmt})

    def without_search(self) -> "RequestState":
        return self.model_copy(
            update={
                "search_field": None,
                "search_type": SearchType.EQUALS.value,
                "query_text": None,
            }
        )

    def sort_toggle(
        self, column: str, active_column: str, active_direction: str
    ) -> "RequestState":
        """
        State for a header's sort link.

        Clicking the active column flips its direction; any other column
        starts ascending.
        """
        if column == active_column:
            direction: str = SortDirection.parse(active_direction).toggled().value
        else:
            direction = SortDirection.ASC.value
        return self.with_sort(column, direction)

    def to_query_items(self) -> List[Tuple[str, str]]:
        """Ordered query-string pairs; unset dimensions are omitted."""
        items: List[Tuple[str, str]] = []
        if self.query_text is not None:
            items.append(("q", self.query_text))
        if self.search_field is not None:
            items.append(("searchfield", self.search_field))
        if self.query_text is not None or self.search_field is not None:
            items.append(("searchtype", self.search_type))
        if self.order_column is not None:
            items.append(("o", self.order_column))
            items.append(("d", self.order_direction))
        if self.page_number:
            items.append(("p", str(self.page_number)))
        if self.download_format is not None:
            items.append(("format", self.download_format))
        return items


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "SearchType",
    "SortDirection",
    "JoinKind",
    "ExportFormat",
    "InputType",
    "ColumnDescriptor",
    "CustomColumn",
    "ForeignKey",
    "Join",
    "AuthRule",
    "AuthPolicy",
    "SaveContext",
    "SaveHook",
    "CrudSpec",
    "RequestState",
]

logger.debug("simplecrud.models loaded - %d public symbols.", len(__all__))
