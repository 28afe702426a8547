"""
tests/test_utils.py
Unit tests for simplecrud.utils.

Tests cover:
- Identifier safety checks (bare and table-qualified)
- Human-readable label conversion
- Query-string coercion of page numbers and record ids
- Filename token sanitising
"""

from __future__ import annotations

import pytest

from simplecrud.utils import (
    Timer,
    blank_to_none,
    check_identifier,
    check_qualified,
    is_numeric_id,
    is_safe_identifier,
    parse_page_number,
    sanitize_token,
    split_qualified,
    to_title_human,
)


# ===================================================================
# Identifier safety
# ===================================================================


class TestIdentifiers:
    """Only [A-Za-z0-9_-] names may reach SQL text."""

    @pytest.mark.parametrize("name", ["users", "user_roles", "Col-1", "id"])
    def test_safe_names_accepted(self, name: str) -> None:
        assert is_safe_identifier(name)
        assert check_identifier(name) == name

    @pytest.mark.parametrize(
        "name", ["", "users;", "a b", "name'", 'x"', "users.id", "users\n", None, 3]
    )
    def test_unsafe_names_rejected(self, name: object) -> None:
        assert not is_safe_identifier(name)

    def test_check_identifier_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="Invalid column"):
            check_identifier("id; DROP TABLE users", "column")

    def test_double_dash_rejected(self) -> None:
        with pytest.raises(ValueError):
            check_identifier("id--comment")

    def test_split_qualified(self) -> None:
        assert split_qualified("users.id") == ("users", "id")
        assert split_qualified("id") == (None, "id")

    def test_check_qualified_checks_both_parts(self) -> None:
        assert check_qualified("roles.role") == "roles.role"
        with pytest.raises(ValueError):
            check_qualified("ro les.role")
        with pytest.raises(ValueError):
            check_qualified("roles.ro'le")


# ===================================================================
# Labels and tokens
# ===================================================================


class TestLabels:

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("username", "Username"),
            ("first_name", "First Name"),
            ("createdAt", "Created At"),
            ("manager_id", "Manager Id"),
        ],
    )
    def test_to_title_human(self, name: str, expected: str) -> None:
        assert to_title_human(name) == expected

    def test_empty_name(self) -> None:
        assert to_title_human("") == ""

    def test_sanitize_token(self) -> None:
        assert sanitize_token("big presh!") == "big_presh"
        assert sanitize_token("/users/admin") == "users_admin"
        assert sanitize_token(None) == ""


# ===================================================================
# Query-string coercion
# ===================================================================


class TestCoercion:

    @pytest.mark.parametrize(
        "raw, expected",
        [(None, 0), ("", 0), ("3", 3), (" 2 ", 2), ("-1", 0), ("abc", 0), ("1.5", 0),
         ("\u0663", 0)],
    )
    def test_parse_page_number(self, raw: object, expected: int) -> None:
        assert parse_page_number(raw) == expected

    @pytest.mark.parametrize(
        "raw, expected",
        [("0", True), ("100", True), ("-50", False), ("badger", False), (None, False),
         ("5\n", False), ("\u0663", False), ("\uff15", False)],
    )
    def test_is_numeric_id(self, raw: object, expected: bool) -> None:
        assert is_numeric_id(raw) is expected

    def test_blank_to_none(self) -> None:
        assert blank_to_none("") is None
        assert blank_to_none("   ") is None
        assert blank_to_none("x") == "x"
        assert blank_to_none(0) == 0


class TestTimer:

    def test_elapsed_recorded(self) -> None:
        with Timer("noop") as t:
            sum(range(100))
        assert t.elapsed >= 0.0
        assert "noop" in repr(t)
