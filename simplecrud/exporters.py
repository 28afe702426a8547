# File: simplecrud/exporters.py
"""
SimpleCRUD - Export Serializer
===============================
Serialises the rows of the current list view for download.

Supported formats:
    csv      comma-separated, header row first
    tabular  tab-separated, header row first
    json     array of objects keyed by column name
    xml      ``<rows><row><column name="...">value</column></row></rows>``;
             characters XML cannot represent become U+FFFD

Values are exported raw, as selected from the database: custom-column
transforms are not applied and the ``actions`` column is omitted.  An
unknown format is not an exception; the result carries a textual error
that the route layer returns with status 200.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from simplecrud.models import ExportFormat, RequestState
from simplecrud.utils import sanitize_token

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("simplecrud.exporters")

# ---------------------------------------------------------------------------
# Format table
# ---------------------------------------------------------------------------

_CONTENT_TYPES: Dict[str, str] = {
    ExportFormat.CSV.value: "text/csv; charset=utf-8",
    ExportFormat.TABULAR.value: "text/tab-separated-values; charset=utf-8",
    ExportFormat.JSON.value: "application/json",
    ExportFormat.XML.value: "application/xml",
}

# Characters XML 1.0 cannot carry, even escaped.
_XML_ILLEGAL_RE: re.Pattern[str] = re.compile(
    r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]"
)

_EXTENSIONS: Dict[str, str] = {
    ExportFormat.CSV.value: "csv",
    ExportFormat.TABULAR.value: "tsv",
    ExportFormat.JSON.value: "json",
    ExportFormat.XML.value: "xml",
}


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExportResult:
    """
    Outcome of one export request.

    ``ok`` is False when the format was not recognised; ``error`` then
    holds the message and ``body`` repeats it as plain text.
    """

    body: str
    content_type: str
    filename: Optional[str] = None
    ok: bool = True
    error: Optional[str] = None

    @property
    def content_disposition(self) -> Optional[str]:
        if self.filename is None:
            return None
        return f'attachment; filename="{self.filename}"'


def build_filename_stem(table: str, state: RequestState) -> str:
    """
    File name (without extension) describing the exported slice.

    Examples:
        users
        users_username_desc_q_bob_page_2
    """
    parts: List[str] = [sanitize_token(table) or "export"]
    if state.order_column:
        parts.append(sanitize_token(state.order_column))
        parts.append(sanitize_token(state.order_direction))
    if state.query_text:
        query_token: str = sanitize_token(state.query_text)
        if query_token:
            parts.extend(["q", query_token])
    if state.page_number:
        parts.extend(["page", str(int(state.page_number))])
    return "_".join(p for p in parts if p)


def _plain(value: Any) -> Any:
    """JSON-native values pass through; everything else becomes a string."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _text(value: Any) -> str:
    plain: Any = _plain(value)
    return "" if plain is None else str(plain)


# ---------------------------------------------------------------------------
# Serializer
# ---------------------------------------------------------------------------


class ExportSerializer:
    """Stateless row serializer; one shared instance serves every request."""

    def serialize(
        self,
        rows: Iterable[Mapping[str, Any]],
        column_names: Sequence[str],
        fmt: str,
        filename_stem: str = "export",
    ) -> ExportResult:
        key: str = (fmt or "").strip().lower()
        writer = {
            ExportFormat.CSV.value: self._to_csv,
            ExportFormat.TABULAR.value: self._to_tabular,
            ExportFormat.JSON.value: self._to_json,
            ExportFormat.XML.value: self._to_xml,
        }.get(key)
        if writer is None:
            supported: str = ", ".join(f.value for f in ExportFormat)
            message: str = f"Unknown download format '{fmt}'. Supported formats: {supported}."
            logger.info("Rejected export format %r.", fmt)
            return ExportResult(
                body=message,
                content_type="text/plain; charset=utf-8",
                ok=False,
                error=message,
            )

        names: List[str] = list(column_names)
        body: str = writer(rows, names)
        filename: str = f"{sanitize_token(filename_stem) or 'export'}.{_EXTENSIONS[key]}"
        logger.debug("Exported %s as %s (%d bytes).", filename, key, len(body))
        return ExportResult(body=body, content_type=_CONTENT_TYPES[key], filename=filename)

    # -- Writers ------------------------------------------------------------

    def _delimited(
        self, rows: Iterable[Mapping[str, Any]], names: List[str], delimiter: str
    ) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
        writer.writerow(names)
        for row in rows:
            writer.writerow([_text(row.get(name)) for name in names])
        return buffer.getvalue()

    def _to_csv(self, rows: Iterable[Mapping[str, Any]], names: List[str]) -> str:
        return self._delimited(rows, names, ",")

    def _to_tabular(self, rows: Iterable[Mapping[str, Any]], names: List[str]) -> str:
        return self._delimited(rows, names, "\t")

    def _to_json(self, rows: Iterable[Mapping[str, Any]], names: List[str]) -> str:
        records: List[Dict[str, Any]] = [
            {name: _plain(row.get(name)) for name in names} for row in rows
        ]
        return json.dumps(records, indent=2, ensure_ascii=False)

    def _to_xml(self, rows: Iterable[Mapping[str, Any]], names: List[str]) -> str:
        root = ET.Element("rows")
        for row in rows:
            row_el = ET.SubElement(root, "row")
            for name in names:
                col_el = ET.SubElement(row_el, "column", {"name": name})
                col_el.text = _XML_ILLEGAL_RE.sub("\ufffd", _text(row.get(name)))
        return ET.tostring(root, encoding="unicode", xml_declaration=True)


__all__: List[str] = ["ExportResult", "ExportSerializer", "build_filename_stem"]
