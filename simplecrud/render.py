# File: simplecrud/render.py
"""
SimpleCRUD - Result Renderer
=============================
Executes a compiled ``QueryPlan`` once and turns the rows into the HTML
fragments of the list page: search form, table, pagination and download
links.  Also renders the single-record view and the delete confirmation.

Markup assembly follows the ``List[str]`` + ``"\\n".join()`` pattern.
Every value that reaches the page goes through ``markupsafe.escape``;
a custom-column transform may return ``markupsafe.Markup`` to emit HTML
verbatim.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urlencode

from markupsafe import Markup, escape

from simplecrud.models import CrudSpec, ExportFormat, RequestState, SearchType
from simplecrud.query import ACTIONS_COLUMN, QueryCompiler, QueryPlan
from simplecrud.utils import to_title_human

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.render")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_FORMAT_LABELS: Dict[str, str] = {
    ExportFormat.CSV.value: "CSV",
    ExportFormat.TABULAR.value: "TSV",
    ExportFormat.JSON.value: "JSON",
    ExportFormat.XML.value: "XML",
}


def header_label(spec: CrudSpec, name: str) -> str:
    """Configured label, else prettified name (when enabled), else the raw name."""
    label: Optional[str] = spec.label_for(name)
    if label is not None:
        return label
    if spec.prettify_headers and name != ACTIONS_COLUMN:
        return to_title_human(name)
    return name


def state_url(base_path: str, state: RequestState) -> str:
    """Link to the list view carrying *state* in its query string."""
    items: List[Tuple[str, str]] = state.to_query_items()
    if not items:
        return base_path
    return f"{base_path}?{urlencode(items)}"


def _cell(value: Any) -> Markup:
    if value is None:
        return Markup("")
    return escape(value)


def _attr(value: Any) -> Markup:
    return escape("" if value is None else value)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class ResultRenderer:
    """Produces list-page and record-page HTML for one registered CRUD."""

    def __init__(self, compiler: QueryCompiler) -> None:
        self.compiler: QueryCompiler = compiler

    # -- List page ----------------------------------------------------------

    def render_list(
        self,
        plan: QueryPlan,
        spec: CrudSpec,
        base_path: str,
        can_edit: bool = False,
    ) -> Markup:
        """Full list-page body for *plan*."""
        table_html, row_count = self.render_table(plan, spec, base_path, can_edit)
        parts: List[str] = []
        if spec.searchable:
            parts.append(self.render_search_form(plan, spec, base_path))
        if spec.can_add and can_edit:
            parts.append(
                f'<p class="simplecrud-add"><a href="{_attr(base_path)}/add">'
                f"Add a new {escape(spec.record_title)}</a></p>"
            )
        parts.append(table_html)
        if row_count == 0:
            parts.append(
                f'<p class="simplecrud-empty">No matching '
                f"{escape(spec.record_title)}s found.</p>"
            )
        if plan.page_size is not None:
            parts.append(self.render_pagination(plan, base_path, row_count))
        if spec.downloadable:
            parts.append(self.render_downloads(plan, base_path))
        return Markup("\n".join(parts))

    def render_table(
        self,
        plan: QueryPlan,
        spec: CrudSpec,
        base_path: str,
        can_edit: bool = False,
    ) -> Tuple[str, int]:
        """Run *plan* and return ``(table_html, row_count)``."""
        lines: List[str] = []
        css_class: str = (
            f' class="{_attr(spec.table_css_class)}"' if spec.table_css_class else ""
        )
        lines.append(f"<table{css_class}>")
        lines.append("<thead>")
        lines.append("<tr>" + "".join(self._header_cells(plan, spec, base_path)) + "</tr>")
        lines.append("</thead>")
        lines.append("<tbody>")

        row_count: int = 0
        for row in self.compiler.run(plan):
            row_count += 1
            lines.append(
                "<tr>"
                + "".join(self._row_cells(plan, spec, row, base_path, can_edit))
                + "</tr>"
            )

        lines.append("</tbody>")
        lines.append("</table>")
        logger.debug("Rendered %d row(s) for %s.", row_count, spec.prefix)
        return "\n".join(lines), row_count

    def _header_cells(
        self, plan: QueryPlan, spec: CrudSpec, base_path: str
    ) -> Iterable[str]:
        for col in plan.select:
            text: Markup = escape(header_label(spec, col.alias))
            if not spec.sortable or col.kind == "actions":
                yield f"<th>{text}</th>"
                continue
            link_state: RequestState = plan.state.sort_toggle(
                col.alias, plan.order_column or "", plan.order_direction
            )
            href: Markup = _attr(state_url(base_path, link_state))
            th_class: str = ""
            if col.alias == plan.order_column:
                th_class = f' class="sorted sorted-{_attr(plan.order_direction)}"'
            yield f'<th{th_class}><a href="{href}">{text}</a></th>'

    def _row_cells(
        self,
        plan: QueryPlan,
        spec: CrudSpec,
        row: Mapping[str, Any],
        base_path: str,
        can_edit: bool,
    ) -> Iterable[str]:
        for col in plan.select:
            value: Any = row.get(col.alias)
            if col.kind == "actions":
                yield f"<td>{self._action_links(spec, value, base_path, can_edit)}</td>"
                continue
            if col.kind == "custom":
                custom = spec.custom_column(col.alias)
                if custom is not None:
                    value = custom.apply(value, row)
                    if custom.column_class:
                        yield f'<td class="{_attr(custom.column_class)}">{_cell(value)}</td>'
                        continue
            yield f"<td>{_cell(value)}</td>"

    def _action_links(
        self, spec: CrudSpec, record_id: Any, base_path: str, can_edit: bool
    ) -> str:
        rid: Markup = _attr(record_id)
        base: Markup = _attr(base_path)
        links: List[str] = [f'<a href="{base}/view/{rid}">View</a>']
        if can_edit:
            links.append(f'<a href="{base}/edit/{rid}">Edit</a>')
            if spec.deletable:
                links.append(f'<a href="{base}/delete/{rid}">Delete</a>')
        return " ".join(links)

    # -- Page furniture -----------------------------------------------------

    def render_search_form(
        self, plan: QueryPlan, spec: CrudSpec, base_path: str
    ) -> str:
        state: RequestState = plan.state
        columns: List[str] = self.compiler.introspector.column_names(spec.table)
        active_field: str = state.search_field or spec.key_column

        lines: List[str] = [
            f'<form method="get" action="{_attr(base_path)}" class="simplecrud-search">',
            "Find records where",
            '<select name="searchfield">',
        ]
        for name in columns:
            selected: str = " selected" if name == active_field else ""
            lines.append(
                f'<option value="{_attr(name)}"{selected}>'
                f"{escape(header_label(spec, name))}</option>"
            )
        lines.append("</select>")
        lines.append('<select name="searchtype">')
        for search_type in SearchType:
            selected = " selected" if search_type.value == state.search_type else ""
            lines.append(
                f'<option value="{search_type.value}"{selected}>'
                f"{escape(search_type.description)}</option>"
            )
        lines.append("</select>")
        lines.append(f'<input type="text" name="q" value="{_attr(state.query_text)}">')
        if state.order_column is not None:
            lines.append(f'<input type="hidden" name="o" value="{_attr(state.order_column)}">')
            lines.append(
                f'<input type="hidden" name="d" value="{_attr(state.order_direction)}">'
            )
        lines.append('<input type="submit" value="Search">')
        lines.append("</form>")
        if state.has_search:
            reset: RequestState = state.without_search().with_page(0).with_format(None)
            lines.append(
                f'<p class="simplecrud-reset"><a href="{_attr(state_url(base_path, reset))}">'
                "Reset search</a></p>"
            )
        return "\n".join(lines)

    def render_pagination(self, plan: QueryPlan, base_path: str, row_count: int) -> str:
        """Previous link past page 0; next link whenever this page came back full."""
        state: RequestState = plan.state.with_format(None)
        links: List[str] = []
        if plan.page_number > 0:
            prev_url: str = state_url(base_path, state.with_page(plan.page_number - 1))
            links.append(f'<a href="{_attr(prev_url)}" rel="prev">&larr; Previous</a>')
        if plan.page_size is not None and row_count >= plan.page_size:
            next_url: str = state_url(base_path, state.with_page(plan.page_number + 1))
            links.append(f'<a href="{_attr(next_url)}" rel="next">Next &rarr;</a>')
        return '<p class="simplecrud-pagination">' + " ".join(links) + "</p>"

    def render_downloads(self, plan: QueryPlan, base_path: str) -> str:
        links: List[str] = []
        for fmt in ExportFormat:
            url: str = state_url(base_path, plan.state.with_format(fmt.value))
            links.append(f'<a href="{_attr(url)}">{_FORMAT_LABELS[fmt.value]}</a>')
        return '<p class="simplecrud-download">Download as: ' + " | ".join(links) + "</p>"

    # -- Single record ------------------------------------------------------

    def render_record(self, plan: QueryPlan, spec: CrudSpec) -> Optional[Markup]:
        """Two-column label/value table, or None when the record is absent."""
        row: Optional[Dict[str, Any]] = None
        for found in self.compiler.run(plan):
            row = found
            break
        if row is None:
            return None
        css_class: str = (
            f' class="{_attr(spec.table_css_class)}"' if spec.table_css_class else ""
        )
        lines: List[str] = [f"<table{css_class}>"]
        for col in plan.select:
            lines.append(
                f"<tr><th>{escape(header_label(spec, col.alias))}</th>"
                f"<td>{_cell(row.get(col.alias))}</td></tr>"
            )
        lines.append("</table>")
        return Markup("\n".join(lines))

    def render_delete_confirmation(
        self, spec: CrudSpec, record_id: Any, base_path: str
    ) -> Markup:
        lines: List[str] = [
            f"<p>Do you really wish to delete {escape(spec.record_title)} "
            f"{escape(record_id)}?</p>",
            f'<form method="post" action="{_attr(base_path)}/delete">',
            f'<input type="hidden" name="record_id" value="{_attr(record_id)}">',
            '<input type="submit" value="Delete">',
            f'<a href="{_attr(base_path)}">Cancel</a>',
            "</form>",
        ]
        return Markup("\n".join(lines))


__all__: List[str] = ["ResultRenderer", "header_label", "state_url"]
