# File: simplecrud/validators.py
"""
SimpleCRUD - Configuration Validators
======================================
This module provides a **pure-function validation pipeline** that checks a
``CrudSpec`` against the live schema before its routes are registered.

Pydantic's built-in validators handle per-field structural correctness
(identifier safety, duplicates).  This module adds **cross-checks against
the database**: every column, join, foreign key, filter and form override
must name something that actually exists.

Each validator takes a CrudSpec and a column lookup
(``table -> {name: ColumnDescriptor}``, normally
``SchemaIntrospector.column_map``) and returns a ``ValidationResult``.

Usage by downstream modules:
    from simplecrud.validators import validate_spec
    result = validate_spec(spec, introspector.column_map)
    if result.has_errors:
        raise ConfigurationError(result.format_report())
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from simplecrud.errors import ConfigurationError, SchemaError
from simplecrud.models import ColumnDescriptor, CrudSpec
from simplecrud.utils import split_qualified

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.validators")

ColumnLookup = Callable[[str], Mapping[str, ColumnDescriptor]]

_NAMED_RULES: Set[str] = {"EMAIL", "INT", "NUM"}

# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------

ERROR: str = "error"
WARNING: str = "warning"


@dataclass(frozen=True)
class ConfigIssue:
    """One problem found in a CrudSpec; ``context`` names the offending parts."""

    level: str
    code: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.level == ERROR

    def __str__(self) -> str:
        return f"[{self.level}] {self.code}: {self.message}"


@dataclass
class ValidationResult:
    """Issues collected by the validators; truthy while nothing is an error."""

    issues: List[ConfigIssue] = field(default_factory=list)

    def add_error(
        self, code: str, message: str, context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.issues.append(ConfigIssue(ERROR, code, message, dict(context or {})))

    def add_warning(
        self, code: str, message: str, context: Optional[Dict[str, Any]] = None
    ) -> None:
        self.issues.append(ConfigIssue(WARNING, code, message, dict(context or {})))

    def merge(self, other: "ValidationResult") -> None:
        self.issues.extend(other.issues)

    @property
    def errors(self) -> List[ConfigIssue]:
        return [i for i in self.issues if i.is_error]

    @property
    def warnings(self) -> List[ConfigIssue]:
        return [i for i in self.issues if not i.is_error]

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def summary(self) -> str:
        return f"Validation: {self.error_count} error(s), {self.warning_count} warning(s)."

    def __bool__(self) -> bool:
        return self.is_valid

    def __len__(self) -> int:
        return len(self.issues)

    def format_report(self) -> str:
        """Summary line followed by one indented line per issue."""
        return "\n".join([self.summary()] + [f"  {issue}" for issue in self.issues])


# ---------------------------------------------------------------------------
# Spec construction
# ---------------------------------------------------------------------------


def build_spec(raw: Any) -> CrudSpec:
    """
    Accept a ``CrudSpec`` or a plain mapping; structural problems become
    ``ConfigurationError``.
    """
    if isinstance(raw, CrudSpec):
        return raw
    if not isinstance(raw, Mapping):
        raise ConfigurationError(
            f"CRUD configuration must be a mapping, got {type(raw).__name__}."
        )
    try:
        return CrudSpec.model_validate(dict(raw))
    except PydanticValidationError as exc:
        where: str = str(raw.get("prefix", "?"))
        details: str = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'spec'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(
            f"Invalid CRUD configuration for '{where}': {details}"
        ) from exc


def _related_columns(
    lookup: ColumnLookup, table: str, result: ValidationResult, ctx: Dict[str, Any]
) -> Optional[Mapping[str, ColumnDescriptor]]:
    try:
        return lookup(table)
    except SchemaError as exc:
        result.add_error("UNKNOWN_TABLE", exc.message, {**ctx, "table": table})
        return None


# ---------------------------------------------------------------------------
# Individual validation functions
# ---------------------------------------------------------------------------


def validate_list_columns(spec: CrudSpec, lookup: ColumnLookup) -> ValidationResult:
    """Key column and display columns exist in the base table."""
    result: ValidationResult = ValidationResult()
    columns: Mapping[str, ColumnDescriptor] = lookup(spec.table)
    ctx: Dict[str, Any] = {"prefix": spec.prefix, "table": spec.table}

    if spec.key_column not in columns:
        result.add_error(
            "UNKNOWN_KEY_COLUMN",
            f"Key column '{spec.key_column}' does not exist in '{spec.table}'.",
            ctx,
        )
    for name in spec.display_columns or []:
        if name not in columns:
            result.add_error(
                "UNKNOWN_DISPLAY_COLUMN",
                f"Display column '{name}' does not exist in '{spec.table}'.",
                {**ctx, "column": name},
            )
    return result


def validate_foreign_keys(spec: CrudSpec, lookup: ColumnLookup) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    columns: Mapping[str, ColumnDescriptor] = lookup(spec.table)

    for name, fk in spec.foreign_keys.items():
        ctx: Dict[str, Any] = {"prefix": spec.prefix, "column": name}
        if name not in columns:
            result.add_error(
                "UNKNOWN_FK_COLUMN",
                f"Foreign key column '{name}' does not exist in '{spec.table}'.",
                ctx,
            )
        related = _related_columns(lookup, fk.table, result, ctx)
        if related is not None:
            for attr in ("key_column", "label_column"):
                target: str = getattr(fk, attr)
                if target not in related:
                    result.add_error(
                        "UNKNOWN_FK_TARGET",
                        f"Foreign key '{name}': column '{target}' does not exist "
                        f"in '{fk.table}'.",
                        ctx,
                    )
        if spec.display_columns is not None and name not in spec.display_columns:
            result.add_warning(
                "FK_NOT_DISPLAYED",
                f"Foreign key '{name}' is configured but not among the display columns.",
                ctx,
            )
    return result


def validate_joins(spec: CrudSpec, lookup: ColumnLookup) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    base: Mapping[str, ColumnDescriptor] = lookup(spec.table)

    for join in spec.joins:
        ctx: Dict[str, Any] = {"prefix": spec.prefix, "join": join.table}
        joined = _related_columns(lookup, join.table, result, ctx)
        if joined is None:
            continue
        for name in join.selected_columns:
            if name not in joined:
                result.add_error(
                    "UNKNOWN_JOIN_COLUMN",
                    f"Join column '{name}' does not exist in '{join.table}'.",
                    ctx,
                )
        local_table, local_column = split_qualified(join.local_key)
        local = base if local_table in (None, spec.table) else _related_columns(
            lookup, local_table or spec.table, result, ctx
        )
        if local is not None and local_column not in local:
            result.add_error(
                "UNKNOWN_JOIN_KEY",
                f"Join local key '{join.local_key}' does not exist.",
                ctx,
            )
        remote_table, remote_column = split_qualified(join.remote_key)
        remote = joined if remote_table in (None, join.table) else _related_columns(
            lookup, remote_table or join.table, result, ctx
        )
        if remote is not None and remote_column not in remote:
            result.add_error(
                "UNKNOWN_JOIN_KEY",
                f"Join remote key '{join.remote_key}' does not exist.",
                ctx,
            )
    return result


def validate_custom_columns(spec: CrudSpec, lookup: ColumnLookup) -> ValidationResult:
    result: ValidationResult = ValidationResult()
    known_tables: Set[str] = (
        {spec.table}
        | {fk.table for fk in spec.foreign_keys.values()}
        | {j.table for j in spec.joins}
    )

    for custom in spec.custom_columns:
        ctx: Dict[str, Any] = {"prefix": spec.prefix, "custom_column": custom.name}
        table, column = split_qualified(custom.source_column)
        table = table or spec.table
        if table not in known_tables:
            result.add_error(
                "UNJOINED_CUSTOM_SOURCE",
                f"Custom column '{custom.name}' reads from '{table}', which is "
                "neither the base table nor a joined table.",
                ctx,
            )
            continue
        columns = _related_columns(lookup, table, result, ctx)
        if columns is not None and column not in columns:
            result.add_error(
                "UNKNOWN_CUSTOM_SOURCE",
                f"Custom column '{custom.name}': '{custom.source_column}' does not exist.",
                ctx,
            )
    return result


def validate_where_filter(spec: CrudSpec, lookup: ColumnLookup) -> ValidationResult:
    """Static filters only; a callable filter is checked when it runs."""
    result: ValidationResult = ValidationResult()
    if not isinstance(spec.where_filter, Mapping):
        return result
    columns: Mapping[str, ColumnDescriptor] = lookup(spec.table)
    for name in spec.where_filter:
        table, column = split_qualified(name)
        if table not in (None, spec.table):
            continue
        if column not in columns:
            result.add_error(
                "UNKNOWN_FILTER_COLUMN",
                f"where_filter column '{name}' does not exist in '{spec.table}'.",
                {"prefix": spec.prefix, "column": name},
            )
    return result


def validate_form_overrides(spec: CrudSpec, lookup: ColumnLookup) -> ValidationResult:
    """Per-field form settings name real columns; regex rules compile."""
    result: ValidationResult = ValidationResult()
    columns: Mapping[str, ColumnDescriptor] = lookup(spec.table)
    ctx: Dict[str, Any] = {"prefix": spec.prefix}

    named_lists: Dict[str, List[str]] = {
        "editable_columns": spec.editable_columns or [],
        "not_editable_columns": spec.not_editable_columns,
        "required": spec.required or [],
        "validation": list(spec.validation),
        "acceptable_values": list(spec.acceptable_values),
        "input_types": list(spec.input_types),
        "default_value": list(spec.default_value),
        "messages": list(spec.messages),
    }
    for setting, names in named_lists.items():
        for name in names:
            if name not in columns:
                result.add_error(
                    "UNKNOWN_FORM_COLUMN",
                    f"{setting}: column '{name}' does not exist in '{spec.table}'.",
                    {**ctx, "setting": setting, "column": name},
                )

    for name, rule in spec.validation.items():
        if rule.upper() in _NAMED_RULES:
            continue
        try:
            re.compile(rule)
        except re.error as exc:
            result.add_error(
                "INVALID_VALIDATION_RULE",
                f"validation for '{name}' is not a valid regular expression: {exc}",
                {**ctx, "column": name},
            )

    editable: List[str] = spec.editable_columns or []
    if spec.editable and spec.key_column in editable:
        result.add_warning(
            "KEY_COLUMN_EDITABLE",
            f"Key column '{spec.key_column}' is listed as editable.",
            ctx,
        )
    return result


# ---------------------------------------------------------------------------
# Master validation entry point
# ---------------------------------------------------------------------------


def validate_spec(spec: CrudSpec, lookup: ColumnLookup) -> ValidationResult:
    """
    Run every validator against *spec*.

    A missing base table is reported as a single error; nothing else can be
    checked without it.
    """
    result: ValidationResult = ValidationResult()
    if _related_columns(lookup, spec.table, result, {"prefix": spec.prefix}) is None:
        return result

    validators: List[Callable[[CrudSpec, ColumnLookup], ValidationResult]] = [
        validate_list_columns,
        validate_foreign_keys,
        validate_joins,
        validate_custom_columns,
        validate_where_filter,
        validate_form_overrides,
    ]
    for validator_fn in validators:
        logger.debug("Running validator: %s", validator_fn.__name__)
        result.merge(validator_fn(spec, lookup))

    for warning in result.warnings:
        logger.warning("%s: %s", spec.prefix, warning.message)
    if result.has_errors:
        logger.error("Validation of %s FAILED: %s", spec.prefix, result.summary())
    else:
        logger.debug("Validation of %s passed. %s", spec.prefix, result.summary())
    return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ConfigIssue",
    "ValidationResult",
    "build_spec",
    "validate_list_columns",
    "validate_foreign_keys",
    "validate_joins",
    "validate_custom_columns",
    "validate_where_filter",
    "validate_form_overrides",
    "validate_spec",
]
