"""
tests/test_forms.py
Tests for simplecrud.forms: field inference, form rendering, validation
and persistence.

Tests cover:
- Pure field inference from column metadata and overrides
- Editable column selection
- Foreign-key select options
- Initial value precedence
- Per-field validation messages
- INSERT / UPDATE with save hooks and write failures
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List

import pytest

from simplecrud.database import Database
from simplecrud.errors import NotFoundError, ValidationError, WriteError
from simplecrud.forms import (
    OPTION_MESSAGE,
    REQUIRED_MESSAGE,
    FieldValueSource,
    FormCompiler,
    editable_columns,
    infer_field_spec,
    rule_matches,
)
from simplecrud.introspect import SchemaIntrospector
from simplecrud.models import ColumnDescriptor, CrudSpec, SaveContext


def _col(name: str, type_name: str = "VARCHAR(32)", nullable: bool = True,
         position: int = 1, **extra: Any) -> ColumnDescriptor:
    return ColumnDescriptor(
        name=name, ordinal_position=position, type_name=type_name,
        nullable=nullable, **extra,
    )


def _users(**overrides: Any) -> CrudSpec:
    raw: Dict[str, Any] = {"prefix": "/users", "db_table": "users", "record_title": "user"}
    raw.update(overrides)
    return CrudSpec.model_validate(raw)


def _people(**overrides: Any) -> CrudSpec:
    raw: Dict[str, Any] = {"prefix": "/people", "db_table": "people", "record_title": "person"}
    raw.update(overrides)
    return CrudSpec.model_validate(raw)


@pytest.fixture()
def forms(database: Database, introspector: SchemaIntrospector) -> FormCompiler:
    return FormCompiler(database, introspector)


# ===================================================================
# Field inference
# ===================================================================


class TestInferFieldSpec:

    def test_plain_text(self) -> None:
        field = infer_field_spec(_col("username", nullable=False), _users())
        assert field.input_type == "text"
        assert field.required is True
        assert field.label == "Username"
        assert field.validation is None

    @pytest.mark.parametrize("name", ["password", "pass", "user_passwd", "PASSWORD"])
    def test_password_names(self, name: str) -> None:
        assert infer_field_spec(_col(name), _users()).input_type == "password"

    def test_passphrase_is_not_password(self) -> None:
        assert infer_field_spec(_col("passphrase"), _users()).input_type == "text"

    def test_long_text_is_textarea(self) -> None:
        assert infer_field_spec(_col("bio", "TEXT"), _users()).input_type == "textarea"

    def test_enum_is_select(self) -> None:
        field = infer_field_spec(
            _col("gender", enum_values=("male", "female")), _users()
        )
        assert field.input_type == "select"
        assert field.options == (("male", "male"), ("female", "female"))

    def test_acceptable_values_beat_enum(self) -> None:
        spec = _users(acceptable_values={"gender": ["x", "y"]})
        field = infer_field_spec(_col("gender", enum_values=("male", "female")), spec)
        assert field.options == (("x", "x"), ("y", "y"))

    def test_email_validation_inferred(self) -> None:
        assert infer_field_spec(_col("work_email"), _users()).validation == "EMAIL"

    def test_overrides_win(self) -> None:
        spec = _users(
            required=["password"],
            validation={"username": "^[a-z]+$"},
            input_types={"password": "text", "username": "textarea"},
            field_labels={"username": "Login"},
            messages={"username": "Lowercase letters only"},
        )
        username = infer_field_spec(_col("username", nullable=False), spec)
        password = infer_field_spec(_col("password"), spec)
        assert username.required is False
        assert password.required is True
        assert username.validation == "^[a-z]+$"
        assert username.input_type == "textarea"
        assert username.label == "Login"
        assert username.message == "Lowercase letters only"
        assert password.input_type == "text"
        assert password.explicit_type is True


class TestEditableColumns:

    def _columns(self) -> List[ColumnDescriptor]:
        return [_col("id", "INTEGER", position=1), _col("username", position=2),
                _col("password", position=3)]

    def test_default_excludes_key(self) -> None:
        names = [c.name for c in editable_columns(_users(), self._columns())]
        assert names == ["username", "password"]

    def test_explicit_list_and_exclusions(self) -> None:
        spec = _users(editable_columns=["password", "username"],
                      not_editable_columns=["username"])
        assert [c.name for c in editable_columns(spec, self._columns())] == ["password"]


class TestRules:

    @pytest.mark.parametrize(
        "rule, value, expected",
        [
            ("EMAIL", "a@b.com", True), ("EMAIL", "nope", False),
            ("INT", "-12", True), ("INT", "1.5", False),
            ("NUM", "1.5", True), ("NUM", "abc", False),
            ("^[a-z]+$", "abc", True), ("^[a-z]+$", "ABC", False),
        ],
    )
    def test_rule_matches(self, rule: str, value: str, expected: bool) -> None:
        assert rule_matches(rule, value) is expected


# ===================================================================
# Rendering
# ===================================================================


class TestBuildForm:

    def test_edit_form_shows_stored_values(self, forms: FormCompiler) -> None:
        html = str(forms.build_form(_users(), "0", action="/users/edit/0"))
        assert 'action="/users/edit/0"' in html
        assert 'type="password" name="password" id="password" value="nobodyhasaplaintextpassword!"' in html
        assert 'name="username" id="username" value="nobody"' in html
        assert 'name="id"' not in html
        assert 'value="Save user"' in html

    def test_add_form_uses_defaults(self, forms: FormCompiler) -> None:
        html = str(forms.build_form(_users(default_value={"username": "guest"})))
        assert 'name="username" id="username" value="guest"' in html
        assert 'name="password" id="password" value=""' in html
        assert 'value="Add user"' in html

    def test_foreign_key_select(self, forms: FormCompiler) -> None:
        spec = _people(
            foreign_keys={"manager_id": {"table": "people", "label_column": "name"}}
        )
        fields = {f.name: f for f in forms.field_specs(spec)}
        assert fields["manager_id"].input_type == "select"
        assert fields["manager_id"].options == (("1", "Ada"), ("2", "Brian"), ("3", "Cleo"))
        html = str(forms.build_form(spec, "2"))
        assert '<option value="1" selected>Ada</option>' in html

    def test_textarea_and_errors(self, forms: FormCompiler) -> None:
        html = str(forms.build_form(
            _people(), errors={"bio": ["Too short"]}, message="Please fix"
        ))
        assert '<textarea name="bio" id="bio"></textarea>' in html
        assert '<span class="simplecrud-field-error">Too short</span>' in html
        assert '<p class="simplecrud-error">Please fix</p>' in html

    def test_values_are_escaped(self, forms: FormCompiler) -> None:
        submitted = FieldValueSource({"username": '"><script>x</script>'})
        html = str(forms.build_form(_users(), submitted=submitted))
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    @pytest.mark.parametrize("bad_id", ["100", "-50", "badger"])
    def test_missing_record(self, forms: FormCompiler, bad_id: str) -> None:
        with pytest.raises(NotFoundError):
            forms.build_form(_users(), bad_id)


class TestInitialValues:

    def test_precedence(self, forms: FormCompiler) -> None:
        spec = _users(default_value={"username": "default", "password": "default"})
        fields = forms.field_specs(spec)
        record = {"id": 1, "username": "stored"}
        submitted = FieldValueSource({"username": "typed", "password": "typed"})
        values = forms.initial_values(spec, fields, record, submitted)
        assert values == {"username": "stored", "password": "typed"}
        assert forms.initial_values(spec, fields) == {
            "username": "default", "password": "default",
        }


# ===================================================================
# Validation and saving
# ===================================================================


class TestValidate:

    def test_required_missing(self, forms: FormCompiler) -> None:
        spec = _users()
        with pytest.raises(ValidationError) as excinfo:
            forms.validate(spec, forms.field_specs(spec), FieldValueSource({"password": "x"}))
        assert excinfo.value.field_errors == {"username": [REQUIRED_MESSAGE]}

    def test_blank_counts_as_missing(self, forms: FormCompiler) -> None:
        spec = _users()
        with pytest.raises(ValidationError) as excinfo:
            forms.validate(spec, forms.field_specs(spec), FieldValueSource({"username": "  "}))
        assert "username" in excinfo.value.field_errors

    def test_email_rule(self, forms: FormCompiler) -> None:
        spec = _people()
        submitted = FieldValueSource({"name": "Dot", "email": "not-an-email", "archived": "0"})
        with pytest.raises(ValidationError) as excinfo:
            forms.validate(spec, forms.field_specs(spec), submitted)
        assert excinfo.value.field_errors == {"email": ["Invalid value for Email"]}

    def test_custom_message(self, forms: FormCompiler) -> None:
        spec = _people(messages={"email": "Give a real address"})
        submitted = FieldValueSource({"name": "Dot", "email": "nope", "archived": "0"})
        with pytest.raises(ValidationError) as excinfo:
            forms.validate(spec, forms.field_specs(spec), submitted)
        assert excinfo.value.field_errors["email"] == ["Give a real address"]

    def test_acceptable_values(self, forms: FormCompiler) -> None:
        spec = _people(acceptable_values={"gender": ["male", "female"]})
        submitted = FieldValueSource({"name": "Dot", "gender": "other", "archived": "0"})
        with pytest.raises(ValidationError) as excinfo:
            forms.validate(spec, forms.field_specs(spec), submitted)
        assert excinfo.value.field_errors == {"gender": [OPTION_MESSAGE]}

    def test_unknown_parameters_ignored(self, forms: FormCompiler) -> None:
        spec = _users()
        cleaned = forms.validate(
            spec, forms.field_specs(spec),
            FieldValueSource({"username": "x", "id": "99", "submit": "Add"}),
        )
        assert cleaned == {"username": "x", "password": None}


class TestSave:

    def test_insert(self, forms: FormCompiler, fetch: Callable[..., Any]) -> None:
        context = forms.save(_people(), FieldValueSource({
            "name": "Dot", "email": "", "bio": "Writes", "archived": "0",
        }))
        assert context.success is True
        assert context.is_new
        rows = fetch("SELECT * FROM people WHERE name = 'Dot'")
        assert len(rows) == 1
        assert rows[0]["email"] is None
        assert rows[0]["bio"] == "Writes"

    def test_update(self, forms: FormCompiler, fetch: Callable[..., Any]) -> None:
        forms.save(_users(), FieldValueSource({"username": "nobody2", "password": ""}), 0)
        rows = fetch("SELECT username, password FROM users WHERE id = 0")
        assert rows == [{"username": "nobody2", "password": None}]

    def test_not_null_blank_becomes_empty_string(
        self, forms: FormCompiler, fetch: Callable[..., Any]
    ) -> None:
        spec = _users(required=[])
        forms.save(spec, FieldValueSource({"username": "", "password": "pw"}), 1)
        assert fetch("SELECT username FROM users WHERE id = 1") == [{"username": ""}]

    def test_hooks_run_in_order(self, forms: FormCompiler, fetch: Callable[..., Any]) -> None:
        seen: List[str] = []

        def lower_username(context: SaveContext) -> None:
            seen.append("before")
            context.fields["username"] = context.fields["username"].lower()

        def record_outcome(context: SaveContext) -> None:
            seen.append(f"after:{context.success}:{context.record_id}")

        spec = _users(before_save=[lower_username], after_save=[record_outcome])
        forms.save(spec, FieldValueSource({"username": "SHOUTY"}), 5)
        assert seen == ["before", "after:True:5"]
        assert fetch("SELECT username FROM users WHERE id = 5") == [{"username": "shouty"}]

    def test_validation_failure_skips_hooks(self, forms: FormCompiler) -> None:
        called: List[SaveContext] = []
        spec = _users(before_save=[called.append])
        with pytest.raises(ValidationError):
            forms.save(spec, FieldValueSource({}))
        assert called == []

    def test_write_failure(self, forms: FormCompiler) -> None:
        outcomes: List[bool] = []

        def break_insert(context: SaveContext) -> None:
            context.fields["no_such_column"] = "x"

        spec = _users(
            before_save=[break_insert],
            after_save=[lambda context: outcomes.append(context.success)],
        )
        with pytest.raises(WriteError, match="Unable to create user"):
            forms.save(spec, FieldValueSource({"username": "ghost"}))
        assert outcomes == [False]
