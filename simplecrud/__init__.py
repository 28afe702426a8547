# File: simplecrud/__init__.py
"""
SimpleCRUD - Database CRUD Pages for FastAPI
=============================================

Point SimpleCRUD at a database table and it registers pages to browse,
search, sort, paginate, download, add, edit, view and delete its rows.

Architecture overview::

    ┌──────────────┐     ┌───────────────┐     ┌──────────────────┐
    │  SimpleCRUD  │────▶│ QueryCompiler │────▶│  ResultRenderer  │
    │  (routes.py) │     │  (query.py)   │     │   (render.py)    │
    └──────┬───────┘     └───────┬───────┘     └──────────────────┘
           │                     │
           ▼                     ▼
    ┌──────────────┐     ┌───────────────┐     ┌──────────────────┐
    │ FormCompiler │────▶│   Database    │◀────│SchemaIntrospector│
    │  (forms.py)  │     │ (database.py) │     │  (introspect.py) │
    └──────────────┘     └───────────────┘     └──────────────────┘

Usage::

    # As a library
    from simplecrud import SimpleCRUD
    crud = SimpleCRUD("sqlite:///app.db")
    crud.register({"prefix": "/users", "db_table": "users", "deletable": True})
    app.include_router(crud.router)

    # From the command line
    python -m simplecrud serve --config app.yaml

Public API:
    - SimpleCRUD         - registers CRUD routes on an APIRouter
    - CrudSpec           - configuration of one CRUD
    - create_app         - standalone FastAPI application factory
    - load_config_file   - YAML/JSON application configuration
"""

from __future__ import annotations

__version__: str = "1.0.0"
__license__: str = "MIT"

from simplecrud.errors import (
    AuthorizationError,
    ConfigurationError,
    CrudError,
    NotFoundError,
    SchemaError,
    ValidationError,
    WriteError,
)
from simplecrud.models import (
    AuthPolicy,
    AuthRule,
    ColumnDescriptor,
    CrudSpec,
    CustomColumn,
    ForeignKey,
    Join,
    RequestState,
    SaveContext,
)
from simplecrud.database import Database
from simplecrud.introspect import SchemaIntrospector
from simplecrud.query import QueryCompiler, QueryPlan
from simplecrud.render import ResultRenderer
from simplecrud.forms import FieldValueSource, FormCompiler, infer_field_spec
from simplecrud.exporters import ExportResult, ExportSerializer
from simplecrud.auth import AuthGate, AuthProvider
from simplecrud.templating import JinjaTemplateRenderer, LayoutRenderer, TemplateRenderer
from simplecrud.routes import SimpleCRUD
from simplecrud.config import AppConfig, CrudSettings, load_config_file
from simplecrud.app import create_app, create_app_from_config

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__license__",
    # Registration
    "SimpleCRUD",
    "create_app",
    "create_app_from_config",
    # Models
    "AuthPolicy",
    "AuthRule",
    "ColumnDescriptor",
    "CrudSpec",
    "CustomColumn",
    "ForeignKey",
    "Join",
    "RequestState",
    "SaveContext",
    # Collaborators
    "Database",
    "SchemaIntrospector",
    "QueryCompiler",
    "QueryPlan",
    "ResultRenderer",
    "FormCompiler",
    "FieldValueSource",
    "infer_field_spec",
    "ExportSerializer",
    "ExportResult",
    "AuthGate",
    "AuthProvider",
    "TemplateRenderer",
    "LayoutRenderer",
    "JinjaTemplateRenderer",
    # Configuration
    "AppConfig",
    "CrudSettings",
    "load_config_file",
    # Errors
    "CrudError",
    "ConfigurationError",
    "SchemaError",
    "ValidationError",
    "NotFoundError",
    "WriteError",
    "AuthorizationError",
]
