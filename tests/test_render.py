"""
tests/test_render.py
Tests for simplecrud.render: list-page HTML built from a compiled plan.

Tests cover:
- Header labels (raw, configured, prettified) and sort links
- Custom-column cells and CSS classes
- Action links by permission
- Search form, pagination and download links
- Escaping of database values
"""

from __future__ import annotations

from typing import Any, Callable, Dict

import pytest

from simplecrud.models import CrudSpec, RequestState
from simplecrud.query import QueryCompiler
from simplecrud.render import ResultRenderer, header_label, state_url


def _spec(**overrides: Any) -> CrudSpec:
    raw: Dict[str, Any] = {"prefix": "/users", "db_table": "users"}
    raw.update(overrides)
    return CrudSpec.model_validate(raw)


@pytest.fixture()
def renderer(compiler: QueryCompiler) -> ResultRenderer:
    return ResultRenderer(compiler)


def _list_html(
    compiler: QueryCompiler,
    renderer: ResultRenderer,
    spec: CrudSpec,
    can_edit: bool = True,
    **params: str,
) -> str:
    plan = compiler.compile(spec, RequestState.from_query(params))
    return str(renderer.render_list(plan, spec, spec.prefix, can_edit))


# ===================================================================
# Helpers
# ===================================================================


class TestHelpers:

    def test_header_label_precedence(self) -> None:
        spec = _spec(field_labels={"username": "Login"})
        assert header_label(spec, "username") == "Login"
        assert header_label(spec, "password") == "password"
        pretty = _spec(prettify_headers=True)
        assert header_label(pretty, "password") == "Password"
        assert header_label(pretty, "actions") == "actions"

    def test_state_url(self) -> None:
        assert state_url("/users", RequestState()) == "/users"
        state = RequestState(query_text="a b", order_column="id", order_direction="desc")
        assert state_url("/users", state) == "/users?q=a+b&searchtype=e&o=id&d=desc"


# ===================================================================
# Table
# ===================================================================


class TestTable:

    def test_headers_and_rows(
        self,
        compiler: QueryCompiler,
        renderer: ResultRenderer,
        table_of: Callable[[str], Any],
    ) -> None:
        table = table_of(_list_html(compiler, renderer, _spec(editable=False)))
        assert table.headers == ["id", "username", "password"]
        assert len(table.body) == 8
        assert table.body[0] == ["0", "nobody", "nobodyhasaplaintextpassword!"]

    def test_actions_column_when_editable(
        self,
        compiler: QueryCompiler,
        renderer: ResultRenderer,
        table_of: Callable[[str], Any],
    ) -> None:
        html = _list_html(compiler, renderer, _spec(deleteable=True))
        table = table_of(html)
        assert table.headers == ["id", "username", "password", "actions"]
        assert table.body[1][3] == "View Edit Delete"
        assert '<a href="/users/edit/1">Edit</a>' in html
        assert '<a href="/users/delete/1">Delete</a>' in html

    def test_view_only_actions_without_edit_permission(
        self,
        compiler: QueryCompiler,
        renderer: ResultRenderer,
        table_of: Callable[[str], Any],
    ) -> None:
        html = _list_html(compiler, renderer, _spec(deleteable=True), can_edit=False)
        assert table_of(html).body[1][3] == "View"
        assert "Add a new" not in html

    def test_add_link(self, compiler: QueryCompiler, renderer: ResultRenderer) -> None:
        html = _list_html(compiler, renderer, _spec(record_title="user"))
        assert '<a href="/users/add">Add a new user</a>' in html
        html = _list_html(compiler, renderer, _spec(addable=False))
        assert "/users/add" not in html

    def test_custom_columns(
        self,
        compiler: QueryCompiler,
        renderer: ResultRenderer,
        table_of: Callable[[str], Any],
    ) -> None:
        spec = _spec(
            editable=False,
            custom_columns=[
                {"name": "extra", "raw_column": "id", "format": "Extra: {value}"},
                {"name": "id", "raw_column": "id", "format": "Hello, id: {value}"},
            ],
        )
        table = table_of(_list_html(compiler, renderer, spec))
        assert table.headers == ["id", "username", "password", "extra"]
        assert table.body[0] == [
            "Hello, id: 0", "nobody", "nobodyhasaplaintextpassword!", "Extra: 0",
        ]

    def test_custom_transform_and_class(
        self,
        compiler: QueryCompiler,
        renderer: ResultRenderer,
        table_of: Callable[[str], Any],
    ) -> None:
        spec = _spec(
            editable=False,
            custom_columns=[{
                "name": "username", "raw_column": "username",
                "transform": lambda value, row: f"Username: {value}",
                "column_class": "classhere",
            }],
        )
        html = _list_html(compiler, renderer, spec)
        table = table_of(html)
        assert table.body[1][1] == "Username: sukria"
        assert table.cell_classes[1][1] == "classhere"
        assert '<td class="classhere">' in html

    def test_values_are_escaped(
        self, compiler: QueryCompiler, renderer: ResultRenderer
    ) -> None:
        spec = _spec(
            editable=False,
            custom_columns=[{"name": "username", "raw_column": "username",
                             "format": "<b>{value}</b>"}],
        )
        html = _list_html(compiler, renderer, spec)
        assert "&lt;b&gt;nobody&lt;/b&gt;" in html
        assert "<b>nobody</b>" not in html

    def test_table_class(self, compiler: QueryCompiler, renderer: ResultRenderer) -> None:
        html = _list_html(compiler, renderer, _spec(table_class="grid"))
        assert '<table class="grid">' in html

    def test_empty_result_message(
        self, compiler: QueryCompiler, renderer: ResultRenderer
    ) -> None:
        html = _list_html(compiler, renderer, _spec(record_title="user"), q="999")
        assert "No matching users found." in html


# ===================================================================
# Sorting links
# ===================================================================


class TestSortLinks:

    def test_active_column_toggles(
        self, compiler: QueryCompiler, renderer: ResultRenderer
    ) -> None:
        html = _list_html(compiler, renderer, _spec(editable=False))
        assert '<th class="sorted sorted-asc"><a href="/users?o=id&amp;d=desc">id</a></th>' in html
        assert '<a href="/users?o=username&amp;d=asc">username</a>' in html

    def test_descending_column_toggles_back(
        self, compiler: QueryCompiler, renderer: ResultRenderer
    ) -> None:
        html = _list_html(compiler, renderer, _spec(editable=False), o="username", d="desc")
        assert 'class="sorted sorted-desc"' in html
        assert '<a href="/users?o=username&amp;d=asc">username</a>' in html
        assert '<a href="/users?o=id&amp;d=asc">id</a>' in html

    def test_sort_links_keep_search(
        self, compiler: QueryCompiler, renderer: ResultRenderer
    ) -> None:
        html = _list_html(
            compiler, renderer, _spec(editable=False),
            q="b", searchfield="username", searchtype="c",
        )
        assert "/users?q=b&amp;searchfield=username&amp;searchtype=c&amp;o=username&amp;d=asc" in html

    def test_sort_links_keep_page(
        self, compiler: QueryCompiler, renderer: ResultRenderer
    ) -> None:
        html = _list_html(
            compiler, renderer, _spec(editable=False, paginate=2),
            p="2", q="o", searchtype="c",
        )
        assert (
            '<a href="/users?q=o&amp;searchtype=c&amp;o=username&amp;d=asc&amp;p=2">'
            "username</a>"
        ) in html
        assert '<a href="/users?q=o&amp;searchtype=c&amp;o=id&amp;d=desc&amp;p=2">' in html

    def test_no_links_when_not_sortable(
        self, compiler: QueryCompiler, renderer: ResultRenderer
    ) -> None:
        html = _list_html(compiler, renderer, _spec(editable=False, sortable=False))
        assert "<th>id</th>" in html
        assert "o=id" not in html


# ===================================================================
# Page furniture
# ===================================================================


class TestFurniture:

    def test_search_form(self, compiler: QueryCompiler, renderer: ResultRenderer) -> None:
        html = _list_html(compiler, renderer, _spec(), q="bob", searchfield="username")
        assert '<select name="searchfield">' in html
        assert '<option value="username" selected>username</option>' in html
        assert '<option value="c">Contains</option>' in html
        assert '<input type="text" name="q" value="bob">' in html
        assert "Reset search" in html

    def test_no_search_form_when_not_searchable(
        self, compiler: QueryCompiler, renderer: ResultRenderer
    ) -> None:
        html = _list_html(compiler, renderer, _spec(searchable=False))
        assert 'name="searchfield"' not in html

    def test_pagination_links(self, compiler: QueryCompiler, renderer: ResultRenderer) -> None:
        first = _list_html(compiler, renderer, _spec(paginate=3))
        assert 'rel="next"' in first and 'rel="prev"' not in first
        assert "/users?p=1" in first
        middle = _list_html(compiler, renderer, _spec(paginate=3), p="1")
        assert 'rel="next"' in middle and 'rel="prev"' in middle
        last = _list_html(compiler, renderer, _spec(paginate=3), p="2")
        assert 'rel="next"' not in last and 'rel="prev"' in last

    def test_download_links(self, compiler: QueryCompiler, renderer: ResultRenderer) -> None:
        html = _list_html(compiler, renderer, _spec(), q="2")
        for fmt in ("csv", "tabular", "json", "xml"):
            assert f"format={fmt}" in html
        assert "/users?q=2&amp;searchtype=e&amp;format=csv" in html
        assert "format=" not in _list_html(compiler, renderer, _spec(downloadable=False))


# ===================================================================
# Record view and delete confirmation
# ===================================================================


class TestRecordPages:

    def test_render_record(self, compiler: QueryCompiler, renderer: ResultRenderer) -> None:
        spec = _spec()
        content = renderer.render_record(compiler.compile_record(spec, "2"), spec)
        assert content is not None
        assert "<tr><th>username</th><td>bigpresh</td></tr>" in str(content)

    def test_render_missing_record(
        self, compiler: QueryCompiler, renderer: ResultRenderer
    ) -> None:
        spec = _spec()
        assert renderer.render_record(compiler.compile_record(spec, "100"), spec) is None

    def test_delete_confirmation(self, renderer: ResultRenderer) -> None:
        html = str(renderer.render_delete_confirmation(_spec(record_title="user"), "3", "/users"))
        assert "Do you really wish to delete user 3?" in html
        assert '<form method="post" action="/users/delete">' in html
        assert '<input type="hidden" name="record_id" value="3">' in html
