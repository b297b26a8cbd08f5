"""Read-only data source backed by an ``.xlsx`` workbook."""

from __future__ import annotations

import re
import threading
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence
from zipfile import BadZipFile, ZipFile

from tiangong_lca_upstream.core.exceptions import DataSourceError, MisconfigurationError, TableNotFoundError
from tiangong_lca_upstream.core.logging import get_logger

from .base import Row, filter_and_project

LOGGER = get_logger(__name__)

_NS = {"s": "http://schemas.openxmlformats.org/spreadsheetml/2006/main"}
_PKG_REL_NS = {"r": "http://schemas.openxmlformats.org/package/2006/relationships"}
_DOC_REL_ID = "{http://schemas.openxmlformats.org/officeDocument/2006/relationships}id"
_CELL_REF_PATTERN = re.compile(r"([A-Z]+)")
_INT_PATTERN = re.compile(r"^-?\d+$")


@dataclass(slots=True)
class _Sheet:
    header: list[str]
    rows: list[dict[str, Any]]


class WorkbookDataSource:
    """Expose each worksheet as a table whose first row is the header.

    Sheets are parsed lazily on first access and cached for the lifetime of the instance.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        if not self._path.exists():
            raise MisconfigurationError(f"Workbook not found: {self._path}")
        self._lock = threading.Lock()
        self._sheet_targets: dict[str, str] | None = None
        self._shared_strings: list[str] | None = None
        self._sheets: dict[str, _Sheet] = {}

    def list_tables(self) -> list[str]:
        return list(self._targets())

    def query(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        projection: Sequence[str] | None = None,
    ) -> list[Row]:
        sheet = self._load_sheet(table)
        return filter_and_project(table, sheet.header, sheet.rows, filters, projection)

    def _targets(self) -> dict[str, str]:
        with self._lock:
            if self._sheet_targets is None:
                self._sheet_targets = self._read_sheet_targets()
            return self._sheet_targets

    def _load_sheet(self, table: str) -> _Sheet:
        targets = self._targets()
        if table not in targets:
            raise TableNotFoundError(table)
        with self._lock:
            cached = self._sheets.get(table)
            if cached is not None:
                return cached
            sheet = self._read_sheet(targets[table])
            self._sheets[table] = sheet
            LOGGER.debug("workbook.sheet_loaded", path=str(self._path), sheet=table, rows=len(sheet.rows))
            return sheet

    def _read_sheet_targets(self) -> dict[str, str]:
        try:
            with ZipFile(self._path) as zip_file:
                workbook_root = ET.fromstring(zip_file.read("xl/workbook.xml"))
                rels_root = ET.fromstring(zip_file.read("xl/_rels/workbook.xml.rels"))
        except (OSError, KeyError, BadZipFile, ET.ParseError) as exc:
            raise DataSourceError(f"Unable to read workbook {self._path}: {exc}") from exc
        relationships = {rel.get("Id"): rel.get("Target") or "" for rel in rels_root.findall("r:Relationship", _PKG_REL_NS)}
        targets: dict[str, str] = {}
        for sheet in workbook_root.findall("s:sheets/s:sheet", _NS):
            name = sheet.get("name")
            target = relationships.get(sheet.get(_DOC_REL_ID))
            if not name or not target:
                continue
            targets[name] = target.lstrip("/") if target.startswith("/") else f"xl/{target}"
        return targets

    def _read_sheet(self, member: str) -> _Sheet:
        try:
            with ZipFile(self._path) as zip_file:
                if self._shared_strings is None:
                    self._shared_strings = _read_shared_strings(zip_file)
                sheet_root = ET.fromstring(zip_file.read(member))
        except (OSError, KeyError, BadZipFile, ET.ParseError) as exc:
            raise DataSourceError(f"Unable to read worksheet {member}: {exc}") from exc

        header: dict[int, str] = {}
        rows: list[dict[str, Any]] = []
        for row in sheet_root.findall(".//s:sheetData/s:row", _NS):
            values = self._row_values(row)
            if not values:
                continue
            if not header:
                header = {index: str(value).strip() for index, value in values.items() if str(value).strip()}
                continue
            rows.append({header[index]: value for index, value in values.items() if index in header})
        return _Sheet(header=[header[index] for index in sorted(header)], rows=rows)

    def _row_values(self, row: ET.Element) -> dict[int, Any]:
        values: dict[int, Any] = {}
        for cell in row.findall("s:c", _NS):
            value = _cell_value(cell, self._shared_strings or [])
            if value is None or value == "":
                continue
            values[_column_index(cell.get("r") or "")] = value
        return values


def _read_shared_strings(zip_file: ZipFile) -> list[str]:
    try:
        shared_root = ET.fromstring(zip_file.read("xl/sharedStrings.xml"))
    except KeyError:
        return []
    return ["".join(node.text or "" for node in item.findall(".//s:t", _NS)) for item in shared_root.findall("s:si", _NS)]


def _cell_value(cell: ET.Element, shared_strings: list[str]) -> Any:
    cell_type = cell.get("t")
    if cell_type == "s":
        index_text = cell.findtext("s:v", default="", namespaces=_NS)
        try:
            index = int(index_text)
        except ValueError:
            return None
        return shared_strings[index] if 0 <= index < len(shared_strings) else None
    if cell_type == "inlineStr":
        return "".join(node.text or "" for node in cell.findall(".//s:t", _NS))
    raw = (cell.findtext("s:v", default="", namespaces=_NS) or "").strip()
    if cell_type == "str":
        return raw
    if cell_type == "b":
        return raw == "1"
    if cell_type == "e" or not raw:
        return None
    return _coerce_number(raw)


def _coerce_number(raw: str) -> Any:
    if _INT_PATTERN.match(raw):
        return int(raw)
    try:
        number = float(raw)
    except ValueError:
        return raw
    return int(number) if number.is_integer() else number


def _column_index(cell_ref: str) -> int:
    match = _CELL_REF_PATTERN.match(cell_ref.upper())
    if not match:
        return 0
    value = 0
    for char in match.group(1):
        value = value * 26 + (ord(char) - ord("A") + 1)
    return max(value - 1, 0)
