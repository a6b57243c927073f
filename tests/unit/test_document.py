from __future__ import annotations

import json

from receiptparse.extract.document import Document

PAYLOAD = {
    "text": "합계 1,000",
    "pages": [
        {
            "dimension": {"width": "800", "height": 600},
            "formFields": [
                {
                    "fieldName": {"textAnchor": {"textSegments": [{"endIndex": "2"}]}},
                    "fieldValue": {"text": "1,000"},
                }
            ],
            "tables": [{"headerRows": [["품명", "금액"]], "bodyRows": [{"cells": [{"text": "사과"}, "1,000"]}]}],
        }
    ],
}


def test_from_text() -> None:
    doc = Document.from_text(None)
    assert doc.text == ""
    assert not doc.has_layout


def test_from_json_pages() -> None:
    doc = Document.from_json(PAYLOAD)
    assert doc.text == "합계 1,000"
    assert doc.page_width(0) == 800.0
    assert doc.page_width(3) == 0.0
    assert [(f.name, f.value, f.page) for f in doc.form_fields] == [("합계", "1,000", 0)]
    assert doc.tables[0].header_rows == (("품명", "금액"),)
    assert doc.tables[0].body_rows == (("사과", "1,000"),)
    assert doc.has_layout


def test_load_text_and_json(tmp_path) -> None:
    txt = tmp_path / "r.txt"
    txt.write_text("GS25 강남점\n합계 1500", encoding="utf-8")
    assert Document.load(txt).text == "GS25 강남점\n합계 1500"

    js = tmp_path / "r.json"
    js.write_text(json.dumps(PAYLOAD, ensure_ascii=False), encoding="utf-8")
    assert Document.load(js).form_fields[0].name == "합계"
