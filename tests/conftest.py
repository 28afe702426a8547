"""
tests/conftest.py
Shared fixtures for the simplecrud test suite.

Every test gets its own SQLite database file inside pytest's tmp_path,
created and populated through SQLAlchemy.  No external mocking libraries
are used; HTTP-level tests go through FastAPI's TestClient.
"""

from __future__ import annotations

import pathlib
from html.parser import HTMLParser
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from simplecrud.app import create_app
from simplecrud.database import Database
from simplecrud.introspect import SchemaIntrospector
from simplecrud.query import QueryCompiler


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

SSHA_PASSWORD: str = "{SSHA}LfvBweDp3ieVPRjAUeWikwpaF6NoiTSK"
PLAIN_PASSWORD: str = "nobodyhasaplaintextpassword!"

USERS: List[Dict[str, Any]] = [
    {"id": 0, "username": "nobody", "password": PLAIN_PASSWORD},
    {"id": 1, "username": "sukria", "password": SSHA_PASSWORD},
    {"id": 2, "username": "bigpresh", "password": SSHA_PASSWORD},
    {"id": 3, "username": "badger", "password": SSHA_PASSWORD},
    {"id": 4, "username": "bodger", "password": SSHA_PASSWORD},
    {"id": 5, "username": "mousey", "password": SSHA_PASSWORD},
    {"id": 6, "username": "mystery2", "password": SSHA_PASSWORD},
    {"id": 7, "username": "mystery1", "password": SSHA_PASSWORD},
]

ROLES: List[Dict[str, Any]] = [
    {"id": 1, "role": "admin"},
    {"id": 2, "role": "editor"},
    {"id": 3, "role": "viewer"},
]

USER_ROLES: List[Dict[str, Any]] = [
    {"id": 1, "user_id": 1, "role_id": 1},
    {"id": 2, "user_id": 2, "role_id": 1},
    {"id": 3, "user_id": 2, "role_id": 2},
    {"id": 4, "user_id": 3, "role_id": 3},
]

PEOPLE: List[Dict[str, Any]] = [
    {"id": 1, "name": "Ada", "email": "ada@example.com", "bio": "Analyst",
     "gender": "female", "manager_id": None, "archived": 0},
    {"id": 2, "name": "Brian", "email": "brian@example.com", "bio": None,
     "gender": "male", "manager_id": 1, "archived": 0},
    {"id": 3, "name": "Cleo", "email": None, "bio": None,
     "gender": "female", "manager_id": 1, "archived": 1},
]

_SCHEMA: Sequence[str] = (
    "CREATE TABLE users ("
    " id INTEGER PRIMARY KEY,"
    " username VARCHAR(32) NOT NULL,"
    " password VARCHAR(64))",
    "CREATE TABLE roles ("
    " id INTEGER PRIMARY KEY,"
    " role VARCHAR(32) NOT NULL)",
    "CREATE TABLE user_roles ("
    " id INTEGER PRIMARY KEY,"
    " user_id INTEGER NOT NULL,"
    " role_id INTEGER NOT NULL)",
    "CREATE TABLE people ("
    " id INTEGER PRIMARY KEY,"
    " name VARCHAR(64) NOT NULL,"
    " email VARCHAR(128),"
    " bio TEXT,"
    " gender VARCHAR(10),"
    " manager_id INTEGER,"
    " archived INTEGER NOT NULL DEFAULT 0)",
)


def _insert(conn: Any, table: str, rows: List[Dict[str, Any]]) -> None:
    columns = list(rows[0])
    sql = (
        f"INSERT INTO {table} ({', '.join(columns)}) "
        f"VALUES ({', '.join(':' + c for c in columns)})"
    )
    conn.execute(text(sql), rows)


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def db_path(tmp_path: pathlib.Path) -> pathlib.Path:
    return tmp_path / "simplecrud_test.db"


@pytest.fixture()
def engine(db_path: pathlib.Path) -> Iterator[Engine]:
    """SQLite engine over a freshly created and populated database file."""
    eng = create_engine(f"sqlite:///{db_path}")
    with eng.begin() as conn:
        for statement in _SCHEMA:
            conn.execute(text(statement))
        _insert(conn, "users", USERS)
        _insert(conn, "roles", ROLES)
        _insert(conn, "user_roles", USER_ROLES)
        _insert(conn, "people", PEOPLE)
    yield eng
    eng.dispose()


@pytest.fixture()
def database(engine: Engine) -> Database:
    return Database(engine)


@pytest.fixture()
def introspector(database: Database) -> SchemaIntrospector:
    return SchemaIntrospector(database)


@pytest.fixture()
def compiler(database: Database, introspector: SchemaIntrospector) -> QueryCompiler:
    return QueryCompiler(database, introspector)


def fetch_all(engine: Engine, sql: str, **params: Any) -> List[Dict[str, Any]]:
    with engine.connect() as conn:
        return [dict(row) for row in conn.execute(text(sql), params).mappings()]


@pytest.fixture()
def fetch(engine: Engine) -> Callable[..., List[Dict[str, Any]]]:
    """``fetch(sql, **params)``: rows straight from the test database."""

    def _fetch(sql: str, **params: Any) -> List[Dict[str, Any]]:
        return fetch_all(engine, sql, **params)

    return _fetch


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


class HeaderAuthProvider:
    """Test auth: ``X-User`` means logged in, ``X-Roles`` lists roles."""

    def is_logged_in(self, request: Any) -> bool:
        return bool(request.headers.get("x-user"))

    def user_has_role(self, request: Any, role: str) -> bool:
        roles = request.headers.get("x-roles", "")
        return role in [r.strip() for r in roles.split(",") if r.strip()]


@pytest.fixture()
def header_auth() -> HeaderAuthProvider:
    return HeaderAuthProvider()


@pytest.fixture()
def make_client(database: Database) -> Callable[..., TestClient]:
    """Factory: ``make_client(spec, ...)`` builds an app and a non-redirecting client."""

    def _make(*specs: Dict[str, Any], auth: Optional[Any] = None) -> TestClient:
        app = create_app(database, list(specs), auth=auth)
        return TestClient(app, follow_redirects=False)

    return _make


# ---------------------------------------------------------------------------
# HTML helpers
# ---------------------------------------------------------------------------


class ParsedTable:
    """Cell texts of one <table>, split into header and body rows."""

    def __init__(self) -> None:
        self.head: List[List[str]] = []
        self.body: List[List[str]] = []
        self.cell_classes: List[List[Optional[str]]] = []

    @property
    def headers(self) -> List[str]:
        return self.head[0] if self.head else []


class TableExtractor(HTMLParser):
    """Collects every table's thead/tbody cell texts."""

    def __init__(self) -> None:
        super().__init__()
        self.tables: List[ParsedTable] = []
        self._section: Optional[str] = None
        self._row: Optional[List[str]] = None
        self._row_classes: List[Optional[str]] = []
        self._cell: Optional[List[str]] = None

    def handle_starttag(self, tag: str, attrs: List[Any]) -> None:
        if tag == "table":
            self.tables.append(ParsedTable())
        elif tag in ("thead", "tbody"):
            self._section = tag
        elif tag == "tr" and self.tables:
            self._row = []
            self._row_classes = []
        elif tag in ("td", "th") and self._row is not None:
            self._cell = []
            self._row_classes.append(dict(attrs).get("class"))

    def handle_endtag(self, tag: str) -> None:
        if tag in ("td", "th") and self._cell is not None and self._row is not None:
            self._row.append("".join(self._cell).strip())
            self._cell = None
        elif tag == "tr" and self._row is not None:
            table = self.tables[-1]
            if self._section == "thead":
                table.head.append(self._row)
            else:
                table.body.append(self._row)
                table.cell_classes.append(self._row_classes)
            self._row = None
        elif tag in ("thead", "tbody"):
            self._section = None

    def handle_data(self, data: str) -> None:
        if self._cell is not None:
            self._cell.append(data)


def parse_tables(html: str) -> List[ParsedTable]:
    parser = TableExtractor()
    parser.feed(html)
    return parser.tables


def first_table(html: str) -> ParsedTable:
    tables = parse_tables(html)
    assert tables, f"No <table> found in:\n{html}"
    return tables[0]


@pytest.fixture()
def table_of() -> Callable[[str], ParsedTable]:
    """``table_of(html)``: the first <table> of a page, parsed."""
    return first_table
