from __future__ import annotations

from receiptparse.extract.document import Document, FormField, PageDimension
from receiptparse.extract.layout_items import BoundingBox
from receiptparse.parsers.statement import (
    Party,
    StatementItem,
    StatementTotals,
    TransactionStatementParser,
    apply_won_arity,
    build_item,
    canonical_unit,
    fill_party_from_lines,
    infer_unit_from_name,
    parse_header,
    parse_inline_row,
    parse_parties_from_form_fields,
    parse_totals,
    salvage_supplier_window,
    validate_item_row,
    Statement,
)

STATEMENT = """거래명세표
일자 2024년 3월 5일
등록번호 124-81-00998
상호 가나식품
성명 김철수
주소 서울시 강남구 역삼로 1
등록번호 220-81-62517
상호 다라급식
성명 이영희
품목(규격) 단위 수량 단가 공급가액 세액
깐마늘 kg 2 8,000 16,000 1,600
양파 박스 1 20,000 20,000 2,000
공급가액 ￦36,000
세액 ￦3,600
합계 ￦39,600
"""


def test_won_arity_three_values() -> None:
    t = StatementTotals()
    assert apply_won_arity(t, [10000, 1000, 11000]) == "3"
    assert (t.supply_total, t.tax_total, t.grand_total) == (10000, 1000, 11000)


def test_won_arity_four_values_that_add_up_downgrade() -> None:
    t = StatementTotals()
    assert apply_won_arity(t, [10000, 1000, 11000, 5000]) == "3"
    assert t.grand_total == 11000
    assert t.balance == 5000


def test_won_arity_four_values_with_balances() -> None:
    t = StatementTotals()
    assert apply_won_arity(t, [10000, 11000, 3000, 14000]) == "4"
    assert (t.supply_total, t.grand_total, t.prev_balance, t.balance) == (10000, 11000, 3000, 14000)
    assert t.tax_total == 1000


def test_won_arity_keeps_labeled_values() -> None:
    t = StatementTotals(supply_total=9999)
    assert apply_won_arity(t, [1, 2, 3, 4, 5]) == "5"
    assert t.supply_total == 9999
    assert t.balance == 5
    assert apply_won_arity(StatementTotals(), [1, 2]) == ""


def test_build_item_arity() -> None:
    it = build_item("양파(박스)", None, ["2", "15,000", "30,000", "3,000"])
    assert (it.unit, it.qty, it.unit_price, it.supply_amt, it.tax_amt) == ("박스", 2.0, 15000, 30000, 3000)
    it = build_item("대파", "kg", ["3,000", "3,000"])
    assert (it.unit, it.qty) == ("kg", 1.0)
    assert build_item("대파", None, ["1"]) is None


def test_parse_inline_row() -> None:
    it = parse_inline_row("깐마늘 kg 2 8,000 16,000 1,600")
    assert it is not None
    assert (it.name, it.unit, it.qty, it.unit_price, it.supply_amt, it.tax_amt) == (
        "깐마늘", "kg", 2.0, 8000, 16000, 1600,
    )
    assert parse_inline_row("합계 kg 2 1,000") is None
    assert parse_inline_row("비고 1,000") is None


def test_validate_item_row_tolerates_vat_exclusive_supply() -> None:
    assert validate_item_row(StatementItem(name="양파", qty=2, unit_price=15000, supply_amt=30000)) is True
    assert validate_item_row(StatementItem(name="양파", qty=2, unit_price=15000, supply_amt=27273)) is True
    assert validate_item_row(StatementItem(name="양파", qty=2, unit_price=15000, supply_amt=10000)) is False
    assert validate_item_row(StatementItem(name="양파", qty=2, unit_price=None, supply_amt=10000)) is False


def test_units() -> None:
    assert canonical_unit("K G") == "kg"
    assert canonical_unit("ea") == "EA"
    assert canonical_unit("리터") is None
    assert infer_unit_from_name("양파(박스)") == "박스"
    assert infer_unit_from_name("쌀 10 kg") == "kg"
    assert infer_unit_from_name("사과") is None


def test_parse_header() -> None:
    st = Statement()
    parse_header("일자 2024년 3월 5일 -0012-", st)
    assert st.issue_date == "2024-03-05"
    assert st.doc_no == "0012"

    st = Statement()
    parse_header("2024년 12월 1일", st)
    assert st.issue_date == "2024-12-01"
    assert st.doc_no is None


def test_parse_totals_labeled_with_balances() -> None:
    text = "품목\n공급가액 ￦100,000\n세액 ￦10,000\n합계 ￦110,000\n전미수 ￦50,000\n미수금 ￦160,000"
    t = parse_totals(text)
    assert (t.supply_total, t.tax_total, t.grand_total) == (100000, 10000, 110000)
    assert (t.prev_balance, t.balance) == (50000, 160000)


def test_parse_totals_positional_won_only() -> None:
    t = parse_totals("￦100,000 ￦10,000 ￦110,000")
    assert (t.supply_total, t.tax_total, t.grand_total) == (100000, 10000, 110000)


def test_fill_party_from_lines() -> None:
    p = Party()
    fill_party_from_lines(p, ["등록번호 124-81-00998", "상호 가나식품", "성명 김철수", "주소 서울시 강남구", "역삼로 1"])
    assert p.name == "가나식품"
    assert p.ceo == "김철수"
    assert p.address == "서울시 강남구 역삼로 1"


def test_transaction_statement_end_to_end() -> None:
    r = TransactionStatementParser().parse(STATEMENT)
    assert r.merchant.name == "가나식품"
    assert r.merchant.biz_no == "124-81-00998"
    assert r.meta.sale_date == "2024-03-05"
    assert [(it.name, it.qty, it.unit_price, it.amount) for it in r.items] == [
        ("깐마늘", 2, 8000, 16000),
        ("양파", 1, 20000, 20000),
    ]
    assert (r.totals.subtotal, r.totals.vat, r.totals.total) == (36000, 3600, 39600)
    assert r.extra["parserType"] == "TRANSACTION"
    assert r.extra["buyer"]["name"] == "다라급식"
    assert r.extra["buyer"]["bizNo"] == "220-81-62517"
    assert r.extra["supplier"]["ceo"] == "김철수"
    assert r.extra["itemDetails"][0]["taxAmt"] == 1600


def test_normalize_repairs_thousands_dot_before_won() -> None:
    out = TransactionStatementParser().normalize("합계 ￦22.000원")
    assert "22,000원" in out


def _field(name: str, value: str, x0: float, x1: float) -> FormField:
    box = BoundingBox(vertices=((x0, 0.2), (x1, 0.2), (x1, 0.25), (x0, 0.25)), normalized=True)
    return FormField(name=name, value=value, box=box)


PARTY_TEXT = "거래명세표\n등록번호 124-81-00998 등록번호 220-81-62517"


def test_form_fields_split_by_column_not_reading_order() -> None:
    # reading order interleaves the two columns
    doc = Document(
        text=PARTY_TEXT,
        form_fields=(
            _field("상호", "다라급식", 0.60, 0.80),
            _field("상호", "가나식품", 0.10, 0.30),
            _field("성명", "이영희", 0.60, 0.80),
            _field("성명", "김철수", 0.10, 0.30),
            _field("주소", "서울시 강남구 역삼로 1", 0.05, 0.45),
        ),
    )
    st = Statement()
    assert parse_parties_from_form_fields(doc, doc.text, st) is True
    assert (st.supplier.name, st.supplier.ceo, st.supplier.biz_no) == ("가나식품", "김철수", "124-81-00998")
    assert (st.buyer.name, st.buyer.ceo, st.buyer.biz_no) == ("다라급식", "이영희", "220-81-62517")
    assert st.supplier.address == "서울시 강남구 역삼로 1"
    assert st.buyer.address is None


def test_form_fields_pixel_boxes_use_page_width() -> None:
    box_left = BoundingBox(vertices=((100, 10), (300, 10)), normalized=False)
    box_right = BoundingBox(vertices=((700, 10), (900, 10)), normalized=False)
    doc = Document(
        text=PARTY_TEXT,
        form_fields=(
            FormField(name="상호", value="다라급식", box=box_right),
            FormField(name="상호", value="가나식품", box=box_left),
        ),
        pages=(PageDimension(width=1000, height=1400),),
    )
    st = Statement()
    assert parse_parties_from_form_fields(doc, doc.text, st) is True
    assert (st.supplier.name, st.buyer.name) == ("가나식품", "다라급식")


def test_form_fields_without_party_labels_fall_back() -> None:
    doc = Document(text=PARTY_TEXT, form_fields=(_field("비고", "월말 정산", 0.1, 0.3),))
    st = Statement()
    assert parse_parties_from_form_fields(doc, doc.text, st) is False
    assert st.supplier.is_empty() and st.buyer.is_empty()


def test_salvage_supplier_window_reads_labels_near_biz_no() -> None:
    text = "\n".join(
        ["거래명세표", "124-81-00998", "상호 가나식품", "대표 김철수", "등록번호 220-81-62517", "상호 다라급식", "품목(규격) 단위 수량"]
    )
    st = Statement()
    st.supplier.biz_no = "124-81-00998"
    st.buyer.biz_no = "220-81-62517"
    salvage_supplier_window(text, st)
    assert (st.supplier.name, st.supplier.ceo) == ("가나식품", "김철수")


def test_salvage_supplier_window_guesses_company_line() -> None:
    st = Statement()
    st.buyer.biz_no = "220-81-62517"
    salvage_supplier_window("124-81-00998\n(주)한빛유통\n220-81-62517\n상호 다라급식", st)
    assert st.supplier.name == "(주)한빛유통"
    assert st.supplier.ceo is None


def test_salvage_supplier_window_keeps_resolved_supplier() -> None:
    st = Statement()
    st.supplier.name = "가나식품"
    salvage_supplier_window("124-81-00998\n상호 다른회사\n대표 박민수", st)
    assert st.supplier.name == "가나식품"
    assert st.supplier.ceo is None
