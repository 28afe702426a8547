# File: simplecrud/forms.py
"""
SimpleCRUD - Form Compiler
===========================
Builds add/edit forms from the introspected column set, validates
submissions, and performs the INSERT/UPDATE.

Field inference is a pure function of the column metadata and the
``CrudSpec`` (``infer_field_spec``); explicit configuration always wins
over the inferred default.  Foreign-key columns become selects whose
options are loaded from the related table on each render.

Submissions are checked by a Pydantic model created per form with
``pydantic.create_model``: every field is an optional string carrying an
``AfterValidator`` for the required flag, the allowed option values and
the validation rule.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import (
    Annotated,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
)

from jinja2 import Environment
from markupsafe import Markup
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, create_model
from pydantic import ValidationError as PydanticValidationError

from simplecrud.database import Database
from simplecrud.errors import NotFoundError, ValidationError, WriteError
from simplecrud.introspect import SchemaIntrospector
from simplecrud.models import ColumnDescriptor, CrudSpec, InputType, SaveContext
from simplecrud.utils import is_numeric_id, sanitize_token, to_title_human

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.forms")

# ---------------------------------------------------------------------------
# Inference rules
# ---------------------------------------------------------------------------

PASSWORD_NAME_RE: re.Pattern[str] = re.compile(r"pass(wd|word)?$", re.IGNORECASE)

NAMED_RULES: Dict[str, re.Pattern[str]] = {
    "EMAIL": re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$"),
    "INT": re.compile(r"^-?\d+$"),
    "NUM": re.compile(r"^-?(\d+(\.\d*)?|\.\d+)$"),
}

REQUIRED_MESSAGE: str = "This field is required"
OPTION_MESSAGE: str = "Please choose one of the listed values"


def rule_matches(rule: str, value: str) -> bool:
    """Apply a named rule (``EMAIL``/``INT``/``NUM``) or search a regex."""
    named: Optional[re.Pattern[str]] = NAMED_RULES.get(rule.upper())
    if named is not None:
        return bool(named.match(value.strip()))
    return re.search(rule, value) is not None


# ---------------------------------------------------------------------------
# Field description
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldSpec:
    """Everything needed to render and check one form field."""

    name: str
    label: str
    input_type: str
    required: bool
    nullable: bool = True
    validation: Optional[str] = None
    options: Optional[Tuple[Tuple[str, str], ...]] = None
    message: Optional[str] = None
    explicit_type: bool = False


def infer_field_spec(column: ColumnDescriptor, spec: CrudSpec) -> FieldSpec:
    """
    Derive the form field for *column*.

    Inferred defaults:
        required    column is NOT NULL
        validation  ``EMAIL`` when the name contains "email"
        options     ``acceptable_values``, else the ENUM value set
        input type  select when options exist, password for names ending in
                    pass/passwd/password, textarea for long-text columns,
                    text otherwise
    Configured ``required``/``validation``/``input_types`` replace them.
    """
    name: str = column.name

    if spec.required is not None:
        required: bool = name in spec.required
    else:
        required = not column.nullable

    validation: Optional[str] = spec.validation.get(name)
    if validation is None and "email" in name.lower():
        validation = "EMAIL"

    options: Optional[Tuple[Tuple[str, str], ...]] = None
    if name in spec.acceptable_values:
        options = tuple((str(v), str(v)) for v in spec.acceptable_values[name])
    elif column.enum_values:
        options = tuple((v, v) for v in column.enum_values)

    explicit: Optional[str] = spec.input_types.get(name)
    if explicit is not None:
        input_type: str = InputType(explicit).value
    elif options is not None:
        input_type = InputType.SELECT.value
    elif PASSWORD_NAME_RE.search(name):
        input_type = InputType.PASSWORD.value
    elif column.is_text:
        input_type = InputType.TEXTAREA.value
    else:
        input_type = InputType.TEXT.value

    label: Optional[str] = spec.label_for(name)
    return FieldSpec(
        name=name,
        label=label if label is not None else to_title_human(name),
        input_type=input_type,
        required=required,
        nullable=column.nullable,
        validation=validation,
        options=options,
        message=spec.messages.get(name),
        explicit_type=explicit is not None,
    )


def editable_columns(
    spec: CrudSpec, columns: Sequence[ColumnDescriptor]
) -> List[ColumnDescriptor]:
    """``editable_columns`` (or every non-key column) minus ``not_editable_columns``."""
    by_name: Dict[str, ColumnDescriptor] = {c.name: c for c in columns}
    if spec.editable_columns is not None:
        names: List[str] = [n for n in spec.editable_columns if n in by_name]
    else:
        names = [c.name for c in columns if c.name != spec.key_column]
    excluded = set(spec.not_editable_columns)
    return [by_name[n] for n in names if n not in excluded]


# ---------------------------------------------------------------------------
# Submitted values
# ---------------------------------------------------------------------------


class FieldValueSource:
    """
    Read/write view of submitted form parameters.

    Built fresh for every request, so nothing leaks between requests.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = dict(values or {})

    @classmethod
    def from_form(cls, form: Any) -> "FieldValueSource":
        """Wrap a Starlette ``FormData`` (or any mapping)."""
        return cls({key: form.get(key) for key in form.keys()})

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self._values[name] = value

    def names(self) -> List[str]:
        return list(self._values)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)


# ---------------------------------------------------------------------------
# Validation model
# ---------------------------------------------------------------------------


def _make_checker(field: FieldSpec) -> Callable[[Optional[str]], Optional[str]]:
    allowed = None
    if field.options is not None:
        allowed = {value for value, _label in field.options}

    def check(value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            if field.required:
                raise ValueError(REQUIRED_MESSAGE)
            return value
        if allowed is not None and value not in allowed:
            raise ValueError(OPTION_MESSAGE)
        if field.validation and not rule_matches(field.validation, value):
            raise ValueError(field.message or f"Invalid value for {field.label}")
        return value

    return check


def build_validation_model(table: str, fields: Sequence[FieldSpec]) -> Type[BaseModel]:
    """Pydantic model validating a submission for *fields*, keyed by column name."""
    definitions: Dict[str, Any] = {}
    for index, field in enumerate(fields):
        definitions[f"field_{index}"] = (
            Annotated[Optional[str], AfterValidator(_make_checker(field))],
            Field(default=None, alias=field.name, validate_default=True),
        )
    return create_model(
        f"{sanitize_token(table).title().replace('_', '').replace('-', '')}Form",
        __config__=ConfigDict(extra="ignore", str_strip_whitespace=False),
        **definitions,
    )


def _error_message(error: Mapping[str, Any]) -> str:
    ctx: Mapping[str, Any] = error.get("ctx") or {}
    if "error" in ctx:
        return str(ctx["error"])
    return str(error.get("msg", "Invalid value"))


def _display_value(value: Any) -> str:
    return "" if value is None else str(value)


# ---------------------------------------------------------------------------
# Form template
# ---------------------------------------------------------------------------

_jinja_env: Environment = Environment(autoescape=True, trim_blocks=True, lstrip_blocks=True)

_FORM_TEMPLATE = _jinja_env.from_string(
    """\
<form method="post" action="{{ action }}" class="simplecrud-form">
{% if message %}
<p class="simplecrud-error">{{ message }}</p>
{% endif %}
<table>
{% for field in fields %}
<tr>
<th><label for="{{ field.name }}">{{ field.label }}{% if field.required %} *{% endif %}</label></th>
<td>
{% if field.input_type == "select" %}
<select name="{{ field.name }}" id="{{ field.name }}">
{% if not field.required %}
<option value=""></option>
{% endif %}
{% for value, label in field.options or () %}
<option value="{{ value }}"{% if value == values[field.name] %} selected{% endif %}>{{ label }}</option>
{% endfor %}
</select>
{% elif field.input_type == "textarea" %}
<textarea name="{{ field.name }}" id="{{ field.name }}">{{ values[field.name] }}</textarea>
{% else %}
<input type="{{ field.input_type }}" name="{{ field.name }}" id="{{ field.name }}" value="{{ values[field.name] }}">
{% endif %}
{% if field.message %}
<span class="simplecrud-help">{{ field.message }}</span>
{% endif %}
{% for error in errors.get(field.name, ()) %}
<span class="simplecrud-field-error">{{ error }}</span>
{% endfor %}
</td>
</tr>
{% endfor %}
</table>
<input type="submit" value="{{ submit_label }}">
</form>
"""
)


# ---------------------------------------------------------------------------
# Form compiler
# ---------------------------------------------------------------------------


class FormCompiler:
    """Form building, validation and persistence for registered CRUDs."""

    def __init__(self, database: Database, introspector: SchemaIntrospector) -> None:
        self.database: Database = database
        self.introspector: SchemaIntrospector = introspector

    # -- Fields -------------------------------------------------------------

    def field_specs(self, spec: CrudSpec) -> List[FieldSpec]:
        """Inferred fields for the editable set, with foreign-key options loaded."""
        fields: List[FieldSpec] = []
        for column in editable_columns(spec, self.introspector.columns_of(spec.table)):
            field: FieldSpec = infer_field_spec(column, spec)
            fk = spec.foreign_keys.get(column.name)
            wants_select: bool = (
                not field.explicit_type or field.input_type == InputType.SELECT.value
            )
            if fk is not None and field.options is None and wants_select:
                options = tuple(
                    (_display_value(key), _display_value(label))
                    for key, label in self.database.label_options(
                        fk.table, fk.key_column, fk.label_column
                    )
                )
                field = replace(field, options=options, input_type=InputType.SELECT.value)
            fields.append(field)
        return fields

    # -- Records ------------------------------------------------------------

    def load_record(self, spec: CrudSpec, raw_id: Any) -> Dict[str, Any]:
        """
        Fetch the record addressed by *raw_id*.

        Raises:
            NotFoundError: the id is malformed for a numeric key, or no
                such record exists.
        """
        columns: Dict[str, ColumnDescriptor] = self.introspector.column_map(spec.table)
        key: Optional[ColumnDescriptor] = columns.get(spec.key_column)
        if key is not None and key.is_numeric and not is_numeric_id(raw_id):
            raise NotFoundError(f"No such {spec.record_title}: {raw_id}")
        record: Optional[Dict[str, Any]] = self.database.fetch_one(
            spec.table, spec.key_column, raw_id
        )
        if record is None:
            raise NotFoundError(f"No such {spec.record_title}: {raw_id}")
        return record

    def initial_values(
        self,
        spec: CrudSpec,
        fields: Iterable[FieldSpec],
        record: Optional[Mapping[str, Any]] = None,
        submitted: Optional[FieldValueSource] = None,
    ) -> Dict[str, str]:
        """
        Value shown in each field.

        Highest first: the stored value (edit), the resubmitted value
        (validation-failure redisplay), ``default_value``, empty.
        """
        values: Dict[str, str] = {}
        for field in fields:
            if record is not None and field.name in record:
                value: Any = record[field.name]
            elif submitted is not None and field.name in submitted:
                value = submitted.get(field.name)
            elif field.name in spec.default_value:
                value = spec.default_value[field.name]
            else:
                value = None
            values[field.name] = _display_value(value)
        return values

    def build_form(
        self,
        spec: CrudSpec,
        record_id: Any = None,
        submitted: Optional[FieldValueSource] = None,
        action: str = "",
        errors: Optional[Mapping[str, List[str]]] = None,
        message: Optional[str] = None,
    ) -> Markup:
        """Render the add form (``record_id`` None) or the edit form."""
        record: Optional[Dict[str, Any]] = None
        if record_id is not None:
            record = self.load_record(spec, record_id)
        fields: List[FieldSpec] = self.field_specs(spec)
        values: Dict[str, str] = self.initial_values(spec, fields, record, submitted)
        verb: str = "Add" if record_id is None else "Save"
        return Markup(
            _FORM_TEMPLATE.render(
                action=action,
                fields=fields,
                values=values,
                errors=dict(errors or {}),
                message=message,
                submit_label=f"{verb} {spec.record_title}",
            )
        )

    # -- Submission ---------------------------------------------------------

    def validate(
        self, spec: CrudSpec, fields: Sequence[FieldSpec], submitted: FieldValueSource
    ) -> Dict[str, Optional[str]]:
        """
        Check *submitted* against *fields*; unknown parameters are ignored.

        Raises:
            ValidationError: one or more fields failed, with per-field messages.
        """
        model: Type[BaseModel] = build_validation_model(spec.table, fields)
        try:
            checked: BaseModel = model.model_validate(submitted.as_dict())
        except PydanticValidationError as exc:
            field_errors: Dict[str, List[str]] = {}
            for error in exc.errors():
                loc: Tuple[Any, ...] = tuple(error.get("loc") or ("__form__",))
                field_errors.setdefault(str(loc[0]), []).append(_error_message(error))
            logger.info(
                "Rejected submission for %s: %s", spec.prefix, sorted(field_errors)
            )
            raise ValidationError(field_errors) from exc
        return checked.model_dump(by_alias=True)

    def save(
        self,
        spec: CrudSpec,
        submitted: FieldValueSource,
        record_id: Any = None,
    ) -> SaveContext:
        """
        Validate, run hooks, and INSERT (``record_id`` None) or UPDATE.

        Raises:
            ValidationError: the submission failed a field rule.
            WriteError: the database rejected the write.
        """
        fields: List[FieldSpec] = self.field_specs(spec)
        cleaned: Dict[str, Optional[str]] = self.validate(spec, fields, submitted)

        values: Dict[str, Any] = {}
        for field in fields:
            value: Optional[str] = cleaned.get(field.name)
            if value is None or value == "":
                value = None if field.nullable else ""
            values[field.name] = value

        context = SaveContext(
            table=spec.table,
            key_column=spec.key_column,
            fields=values,
            record_id=record_id,
        )
        for hook in spec.before_save:
            hook(context)

        if context.is_new:
            success: bool = self.database.insert(spec.table, context.fields)
        else:
            success = self.database.update(
                spec.table, {spec.key_column: record_id}, context.fields
            )
        context.success = success

        for hook in spec.after_save:
            hook(context)

        if not success:
            verb: str = "create" if context.is_new else "update"
            raise WriteError(f"Unable to {verb} {spec.record_title}")
        logger.info(
            "%s %s in '%s'.",
            "Created" if context.is_new else "Updated",
            spec.record_title,
            spec.table,
        )
        return context


__all__: List[str] = [
    "FieldSpec",
    "FieldValueSource",
    "FormCompiler",
    "build_validation_model",
    "editable_columns",
    "infer_field_spec",
    "rule_matches",
]
