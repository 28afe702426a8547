# File: simplecrud/errors.py
"""
SimpleCRUD - Error Taxonomy
============================
Every failure the library raises derives from ``CrudError``.  Each class
carries the HTTP status the route layer answers with, so handlers can
convert an exception into a response without a lookup table.

    ConfigurationError  setup time, aborts application start-up
    SchemaError         table/column lookup or query failure      -> 500
    ValidationError     submitted form data fails a field rule    -> 200
    NotFoundError       edit/view target missing or malformed     -> 404
    WriteError          INSERT/UPDATE/DELETE rejected             -> 200
    AuthorizationError  view/edit permission denied               -> 302/403
"""

from __future__ import annotations

from typing import Dict, List, Optional


class CrudError(Exception):
    """Base class for all SimpleCRUD errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message


class ConfigurationError(CrudError):
    """A CrudSpec is incomplete, unsafe, or refers to unknown columns."""


class SchemaError(CrudError):
    """The database could not describe or query a table."""

    status_code = 500


class ValidationError(CrudError):
    """Submitted form values failed one or more field rules."""

    status_code = 200

    def __init__(self, field_errors: Dict[str, List[str]]) -> None:
        fields: str = ", ".join(sorted(field_errors))
        super().__init__(f"Invalid values for: {fields}")
        self.field_errors: Dict[str, List[str]] = field_errors


class NotFoundError(CrudError):
    """The requested record id does not exist or is malformed."""

    status_code = 404


class WriteError(CrudError):
    """The database rejected an insert, update, or delete."""

    status_code = 200


class AuthorizationError(CrudError):
    """
    The current user may not perform the requested action.

    ``login_required`` is True when the user is not logged in at all; the
    route layer then redirects to ``login_url`` instead of answering 403.
    """

    status_code = 403

    def __init__(
        self,
        message: str,
        login_required: bool = False,
        login_url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.login_required: bool = login_required
        self.login_url: Optional[str] = login_url


__all__: List[str] = [
    "CrudError",
    "ConfigurationError",
    "SchemaError",
    "ValidationError",
    "NotFoundError",
    "WriteError",
    "AuthorizationError",
]
