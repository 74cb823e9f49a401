import pytest
from decimal import Decimal

from loyalty_ledger.core import (
    ManualLedgerEntry,
    MonthlyMilesRecord,
    add_months,
    as_decimal,
    as_int,
    format_money,
    is_valid_month,
    month_range,
    parse_iso_date,
    status_rank,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, 0),
        (True, 0),
        (12, 12),
        (12.6, 13),
        (float("nan"), 0),
        (float("inf"), 0),
        ("1,250", 1250),
        ("  300 ", 300),
        ("abc", 0),
        ("NaN", 0),
        (Decimal("7.4"), 7),
    ],
)
def test_as_int_coerces_bad_input_to_zero(raw, expected):
    assert as_int(raw) == expected


def test_as_decimal_quantizes_and_rejects_garbage():
    assert as_decimal("19.999") == Decimal("20.00")
    assert as_decimal(float("-inf")) == Decimal("0.00")
    assert as_decimal("n/a") == Decimal("0.00")


def test_month_helpers():
    assert is_valid_month("2025-03")
    assert not is_valid_month("2025-13")
    assert not is_valid_month("2025-3")
    assert add_months("2024-11", 11) == "2025-10"
    assert add_months("2025-01", -1) == "2024-12"
    assert month_range("2024-11", "2025-02") == ["2024-11", "2024-12", "2025-01", "2025-02"]


def test_parse_iso_date_rejects_impossible_dates():
    assert parse_iso_date("2025-02-29") is None
    assert parse_iso_date("10/03/2025") is None
    assert parse_iso_date("2024-02-29").day == 29


def test_status_rank_places_ultimate_with_platinum():
    assert status_rank("Explorer") < status_rank("Silver") < status_rank("Gold") < status_rank("Platinum")
    assert status_rank("Ultimate") == status_rank("Platinum")
    assert status_rank("Bogus") == 0


def test_record_properties():
    record = MonthlyMilesRecord(
        month="2025-03",
        miles_subscription=1000,
        miles_card=200,
        miles_flight=300,
        miles_debit=50,
        cost_subscription=Decimal("25.00"),
        cost_card=Decimal("1.50"),
    )
    assert record.id == "miles-2025-03"
    assert record.earned == 1500
    assert record.cost == Decimal("26.50")

    entry = ManualLedgerEntry(card_xp=10, correction_xp=-4)
    assert entry.total == 6
    assert not entry.is_empty()
    assert ManualLedgerEntry().is_empty()


def test_format_money():
    assert format_money(Decimal("1234.5")) == "EUR 1,234.50"
    assert format_money(None) == "n/a"
