"""Selector-driven extraction of text, attributes and tables.

Parsing is delegated to BeautifulSoup; this module only decides how matched
nodes turn into ExtractedRecord values. A selector that matches nothing is
reported as an ExtractionError value so callers can tell "no such content"
apart from "content present but empty".
"""

from __future__ import annotations

import re
from typing import Dict, List, Set, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag
from soupsieve import SelectorSyntaxError

from .models import ExtractedRecord, ExtractionError, ExtractionKind, ExtractionSpec, FailureReason

Document = Union[str, bytes, BeautifulSoup]

DEFAULT_PARSER = "html.parser"

_WS_RE = re.compile(r"\s+")


def parse_document(content: Document, parser: str = DEFAULT_PARSER) -> BeautifulSoup:
    if isinstance(content, BeautifulSoup):
        return content
    return BeautifulSoup(content, parser)


def extract(
    content: Document,
    spec: ExtractionSpec,
    url: str = "",
    index: int = 0,
    parser: str = DEFAULT_PARSER,
) -> Union[List[ExtractedRecord], ExtractionError]:
    soup = parse_document(content, parser)
    try:
        nodes = soup.select(spec.selector)
    except SelectorSyntaxError as exc:
        return ExtractionError(selector=spec.selector, reason=FailureReason.NO_MATCH, detail=f"invalid selector: {exc}")
    if not nodes:
        return ExtractionError(selector=spec.selector, detail=f"no nodes match {spec.selector!r}")

    if spec.kind == ExtractionKind.TABLE:
        rows: List[Dict[str, str]] = []
        for node in nodes:
            rows.extend(table_rows(node))
    elif spec.kind == ExtractionKind.ATTRIBUTE:
        rows = _attribute_rows(nodes, spec, url)
    else:
        rows = [{spec.output_field: node_text(node)} for node in nodes]

    return [ExtractedRecord(url=url, fields=row, index=index) for row in rows]


def node_text(node: Tag) -> str:
    return _WS_RE.sub(" ", node.get_text(" ")).strip()


def _attribute_rows(nodes: List[Tag], spec: ExtractionSpec, url: str) -> List[Dict[str, str]]:
    rows = []
    for node in nodes:
        value = node.get(spec.attribute)
        if value is None:
            continue
        if isinstance(value, list):
            # multi-valued attributes such as class
            value = " ".join(value)
        value = value.strip()
        if spec.resolve_urls and url:
            value = urljoin(url, value)
        rows.append({spec.output_field: value})
    return rows


def _own_rows(table: Tag) -> List[Tag]:
    """Rows belonging to this table, skipping rows of nested tables."""
    return [tr for tr in table.find_all("tr") if tr.find_parent("table") is table]


def _top_level_tables(node: Tag) -> List[Tag]:
    """Tables inside node that are not nested in another table inside node."""
    tables = []
    for table in node.find_all("table"):
        outer = table.find_parent("table")
        if outer is None or not any(parent is node for parent in outer.parents):
            tables.append(table)
    return tables


def _row_cells(tr: Tag) -> List[str]:
    cells: List[str] = []
    for cell in tr.find_all(["th", "td"], recursive=False):
        text = node_text(cell)
        cells.extend([text] * _colspan(cell))
    return cells


def _colspan(cell: Tag) -> int:
    try:
        return max(1, int(cell.get("colspan", 1)))
    except (TypeError, ValueError):
        return 1


def _unique_name(name: str, used: Set[str]) -> str:
    candidate, n = name, 1
    while candidate in used:
        n += 1
        candidate = f"{name}_{n}"
    used.add(candidate)
    return candidate


def _rows_to_records(rows: List[Tag]) -> List[Dict[str, str]]:
    cell_rows = [cells for cells in (_row_cells(tr) for tr in rows) if cells]
    if not cell_rows:
        return []
    used: Set[str] = set()
    names = [_unique_name(raw or f"column_{i}", used) for i, raw in enumerate(cell_rows[0], start=1)]
    out: List[Dict[str, str]] = []
    for cells in cell_rows[1:]:
        while len(names) < len(cells):
            names.append(_unique_name(f"column_{len(names) + 1}", used))
        # zip stops at the shorter row, so short rows lack trailing fields
        out.append(dict(zip(names, cells)))
    return out


def table_rows(node: Tag) -> List[Dict[str, str]]:
    """Convert a table node into field dicts keyed by its first row.

    Short rows simply lack the trailing fields; cells past the header width
    are kept under positional ``column_N`` names. Field names are always
    distinct, so no cell overwrites another. A non-table node yields the
    rows of every top-level table inside it, each keyed by its own header."""
    if node.name == "table":
        return _rows_to_records(_own_rows(node))
    tables = _top_level_tables(node)
    if not tables:
        return _rows_to_records(node.find_all("tr"))
    out: List[Dict[str, str]] = []
    for table in tables:
        out.extend(_rows_to_records(_own_rows(table)))
    return out
