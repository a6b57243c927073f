from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from receiptparse.extract.layout_items import BoundingBox, LayoutOcrItem, rows_to_text


@dataclass(frozen=True)
class PageDimension:
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True)
class Table:
    header_rows: tuple[tuple[str, ...], ...] = ()
    body_rows: tuple[tuple[str, ...], ...] = ()
    page: int = 0


@dataclass(frozen=True)
class FormField:
    name: str
    value: str
    box: Optional[BoundingBox] = None
    page: int = 0


@dataclass(frozen=True)
class Document:
    """
    OCR output handed to the parsers.

    Only ``text`` is required; tables, form fields, page sizes and bbox tokens
    are optional layout hints.
    """

    text: str = ""
    tables: tuple[Table, ...] = ()
    form_fields: tuple[FormField, ...] = ()
    pages: tuple[PageDimension, ...] = ()
    tokens: tuple[LayoutOcrItem, ...] = ()

    @classmethod
    def from_text(cls, text: Optional[str]) -> "Document":
        return cls(text=text or "")

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "Document":
        """
        Build from a Document-AI style mapping.

        Accepts ``text`` plus either top-level ``tables``/``formFields`` or the
        per-page ``pages[].tables``/``pages[].formFields``/``pages[].tokens``
        nesting. Layout text comes from an inline ``text`` key or from
        ``textAnchor.textSegments`` offsets into the full text.
        """
        full = str(payload.get("text") or "")
        tables: List[Table] = []
        fields: List[FormField] = []
        pages: List[PageDimension] = []
        tokens: List[LayoutOcrItem] = []

        for t in payload.get("tables") or []:
            tables.append(_table(full, t, 0))
        for f in payload.get("formFields") or []:
            ff = _form_field(full, f, 0)
            if ff is not None:
                fields.append(ff)

        for page_no, page in enumerate(payload.get("pages") or []):
            dim = page.get("dimension") or {}
            pages.append(PageDimension(width=_num(dim.get("width")), height=_num(dim.get("height"))))
            for t in page.get("tables") or []:
                tables.append(_table(full, t, page_no))
            for f in page.get("formFields") or []:
                ff = _form_field(full, f, page_no)
                if ff is not None:
                    fields.append(ff)
            for tok in page.get("tokens") or []:
                layout = tok.get("layout") or tok
                text = _layout_text(full, layout)
                box = _bounding_box(layout)
                if text.strip() and box is not None:
                    tokens.append(LayoutOcrItem(box=[list(v) for v in box.vertices], text=text.strip()))

        if not full.strip() and tokens:
            full = rows_to_text(tokens)

        return cls(
            text=full,
            tables=tuple(tables),
            form_fields=tuple(fields),
            pages=tuple(pages),
            tokens=tuple(tokens),
        )

    @classmethod
    def load(cls, path: Path) -> "Document":
        """Plain text file, or a ``.json`` document dump."""
        raw = Path(path).read_text(encoding="utf-8")
        if Path(path).suffix.lower() == ".json":
            return cls.from_json(json.loads(raw))
        return cls.from_text(raw)

    def page_width(self, page: int = 0) -> float:
        if 0 <= page < len(self.pages):
            return self.pages[page].width
        return 0.0

    @property
    def has_layout(self) -> bool:
        return bool(self.tables or self.form_fields or self.tokens)


def _num(v: Any) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return 0.0


def _anchor_text(full: str, anchor: Mapping[str, Any]) -> str:
    parts: List[str] = []
    for seg in anchor.get("textSegments") or []:
        # int64 offsets arrive as strings; a missing start means 0
        start = max(0, int(_num(seg.get("startIndex", 0))))
        end = min(len(full), int(_num(seg.get("endIndex", 0))))
        if start < end:
            parts.append(full[start:end])
    return "".join(parts)


def _layout_text(full: str, layout: Optional[Mapping[str, Any]]) -> str:
    if not layout:
        return ""
    if isinstance(layout.get("text"), str):
        return layout["text"]
    anchor = layout.get("textAnchor")
    if anchor:
        return _anchor_text(full, anchor)
    return ""


def _bounding_box(layout: Optional[Mapping[str, Any]]) -> Optional[BoundingBox]:
    if not layout:
        return None
    poly = layout.get("boundingPoly") or {}
    norm = poly.get("normalizedVertices") or []
    if norm:
        return BoundingBox(
            vertices=tuple((_num(v.get("x")), _num(v.get("y"))) for v in norm),
            normalized=True,
        )
    px = poly.get("vertices") or []
    if px:
        return BoundingBox(vertices=tuple((_num(v.get("x")), _num(v.get("y"))) for v in px), normalized=False)
    return None


def _row_cells(full: str, row: Mapping[str, Any]) -> tuple[str, ...]:
    cells: List[str] = []
    for cell in row.get("cells") or []:
        if isinstance(cell, str):
            cells.append(cell.strip())
            continue
        layout = cell.get("layout") or cell
        cells.append(_layout_text(full, layout).strip())
    return tuple(cells)


def _rows(full: str, rows: Sequence[Any]) -> tuple[tuple[str, ...], ...]:
    out: List[tuple[str, ...]] = []
    for row in rows or []:
        if isinstance(row, (list, tuple)):
            out.append(tuple(str(c).strip() for c in row))
        else:
            out.append(_row_cells(full, row))
    return tuple(out)


def _table(full: str, t: Mapping[str, Any], page: int) -> Table:
    return Table(
        header_rows=_rows(full, t.get("headerRows") or []),
        body_rows=_rows(full, t.get("bodyRows") or []),
        page=page,
    )


def _form_field(full: str, f: Mapping[str, Any], page: int) -> Optional[FormField]:
    if "fieldName" in f or "fieldValue" in f:
        name_layout: Dict[str, Any] = f.get("fieldName") or {}
        name = _layout_text(full, name_layout)
        value = _layout_text(full, f.get("fieldValue") or {})
        box = _bounding_box(name_layout)
    else:
        name = str(f.get("name") or "")
        value = str(f.get("value") or "")
        box = _bounding_box(f)
    if not name.strip() and not value.strip():
        return None
    return FormField(name=name.strip(), value=value.strip(), box=box, page=int(f.get("page", page) or page))
