from decimal import Decimal

import pytest

from amc_manager.models import POItem, line_total, order_totals, to_money


@pytest.mark.parametrize(
    "value,expected",
    [
        ("0.125", "0.13"),
        ("2.675", "2.68"),
        ("0.005", "0.01"),
        (None, "0.00"),
        (10, "10.00"),
    ],
)
def test_to_money_rounds_half_up(value, expected):
    assert to_money(value) == Decimal(expected)


def test_line_total_rounds_half_up():
    assert line_total(Decimal("3"), Decimal("0.125")) == Decimal("0.38")
    assert line_total(Decimal("0"), Decimal("5")) == Decimal("0.00")


@pytest.mark.parametrize(
    "vat_rate,expected",
    [
        (None, ("351.50", "0.00", "351.50")),
        (Decimal("18"), ("351.50", "63.27", "414.77")),
        (Decimal("0.18"), ("351.50", "63.27", "414.77")),
        (Decimal("100"), ("351.50", "351.50", "703.00")),
    ],
)
def test_order_totals(vat_rate, expected):
    totals = order_totals([Decimal("200.00"), Decimal("151.50")], vat_rate)
    assert totals == tuple(Decimal(v) for v in expected)


def test_item_display_keeps_stored_precision():
    item = POItem(line_no=1, description="Grease", quantity=Decimal("1.005"), unit_price=Decimal("0.1250"))
    data = item.to_dict()
    assert data["quantity"] == "1.005"
    assert data["unit_price"] == "0.125"
    assert data["line_total"] == "0.13"

    item = POItem(line_no=2, description="Filter", quantity=Decimal("2.000"), unit_price=Decimal("100.0000"))
    assert item.to_dict()["quantity"] == "2.00"
    assert item.to_dict()["unit_price"] == "100.00"
