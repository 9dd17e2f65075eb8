from __future__ import annotations

from datetime import date

import pytest

from dental_crm.schemas.quotations import QuotationItemIn
from dental_crm.services.quotations import (
    build_items,
    compute_line_total,
    compute_totals,
    expiry_date,
    format_payment_terms,
    round_half_up,
)


@pytest.mark.parametrize(
    "value,expected",
    [(2.5, 3), (2.49, 2), (0, 0), (-2.5, -2), (1234.5, 1235)],
)
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_line_total_applies_discount():
    assert compute_line_total(3, 1000, 10) == 2700
    assert compute_line_total(1, 999, 0) == 999
    assert compute_line_total(2, 1250.25, None) == 2501


def test_totals_with_iva():
    subtotal, tax, total = compute_totals([2700, 1300], 0.19)
    assert (subtotal, tax, total) == (4000, 760, 4760)


def test_tax_is_rounded_half_up():
    # 105 * 0.19 = 19.95
    subtotal, tax, total = compute_totals([105], 0.19)
    assert tax == 20
    assert total == 125


def test_empty_quotation_totals():
    assert compute_totals([], 0.19) == (0, 0, 0)


class TestPaymentTerms:
    def test_json_with_days(self):
        assert format_payment_terms('{"type": "CREDITO", "days": 30}') == "CREDITO - 30 DÍAS"

    def test_json_without_days(self):
        assert format_payment_terms('{"type": "CONTADO", "days": 0}') == "CONTADO"
        assert format_payment_terms('{"type": "CONTADO"}') == "CONTADO"

    def test_plain_text_is_kept(self):
        assert format_payment_terms("30 días fecha factura") == "30 días fecha factura"
        assert format_payment_terms("30") == "30"

    def test_empty(self):
        assert format_payment_terms(None) == ""
        assert format_payment_terms("") == ""


def test_expiry_is_fifteen_days_after_issue():
    assert expiry_date(date(2024, 1, 20)) == date(2024, 2, 4)
    assert expiry_date(date(2024, 1, 20), validity_days=30) == date(2024, 2, 19)


def test_build_items_numbers_lines_and_totals():
    items = build_items(
        [
            QuotationItemIn(code="RES-01", detail="Resina A2", qty=2, price=15000, discount=5),
            QuotationItemIn(detail="Guantes nitrilo M", qty=10, price=4990),
        ]
    )
    assert [i.line_no for i in items] == [1, 2]
    assert items[0].total == 28500
    assert items[1].total == 49900
    assert items[1].unit == "UN"
