# tests/test_invoice_validation.py
from decimal import Decimal

import pytest

from clinicdesk.exceptions import ApiError
from clinicdesk.services.invoice_service import to_minor_units, validate_invoice_amounts


def item(description="Therapy session", quantity=2, unit_price=50, total=100):
    return {"description": description, "quantity": quantity, "unit_price": unit_price, "total": total}


def test_matching_amounts_are_accepted():
    validate_invoice_amounts([item()], Decimal("100"), Decimal("10"), Decimal("110"))


def test_total_off_by_one_is_rejected():
    with pytest.raises(ApiError) as exc:
        validate_invoice_amounts([item()], Decimal("100"), Decimal("10"), Decimal("111"))
    assert exc.value.status_code == 400
    assert exc.value.message == "Total does not match subtotal + tax"


def test_line_total_mismatch_names_the_item():
    with pytest.raises(ApiError) as exc:
        validate_invoice_amounts([item(description="Assessment", total=90)], 90, 0, 90)
    assert exc.value.message == "Item total mismatch for 'Assessment'"


def test_subtotal_must_equal_sum_of_lines():
    lines = [item(), item(description="Report", quantity=1, unit_price=25, total=25)]
    with pytest.raises(ApiError) as exc:
        validate_invoice_amounts(lines, 120, 0, 120)
    assert exc.value.message == "Subtotal does not match sum of item totals"


def test_one_cent_tolerance():
    lines = [item(quantity=3, unit_price=Decimal("33.33"), total=Decimal("100.00"))]
    validate_invoice_amounts(lines, Decimal("100.00"), Decimal("0"), Decimal("100.01"))


def test_beyond_tolerance_is_rejected():
    lines = [item(quantity=3, unit_price=Decimal("33.33"), total=Decimal("100.00"))]
    with pytest.raises(ApiError):
        validate_invoice_amounts(lines, Decimal("100.00"), Decimal("0"), Decimal("100.02"))


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("110")) == 11000
    assert to_minor_units("19.995") == 2000
    assert to_minor_units(0.1) == 10
