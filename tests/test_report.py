from datetime import date

from loyalty_ledger.report import build_status_report, report_to_markdown
from loyalty_ledger.state import LedgerState


def test_status_report_for_imported_state(imported_state, as_of):
    report = build_status_report(imported_state, as_of=as_of)

    assert report["current_status"] == "Silver"
    assert report["flight_count"] == 4
    assert report["miles"]["balance"] == 7500
    assert report["miles"]["earned_to_date"] == 19500
    assert report["miles"]["burned_to_date"] == 12000
    assert report["miles"]["cost_to_date"] == 25.0
    assert report["cycles"][0]["points"] == 140
    assert report["cycles"][0]["is_current"] is True
    assert [row["month"] for row in report["ledger"]] == ["2025-03", "2025-04", "2025-05", "2025-06"]


def test_status_report_for_empty_state():
    report = build_status_report(LedgerState(), as_of=date(2025, 1, 15))
    assert report["current_status"] == "Explorer"
    assert report["ledger"] == []
    assert report["miles"]["cost_per_mile"] == 0.0


def test_markdown_report(imported_state, as_of):
    markdown = report_to_markdown(build_status_report(imported_state, as_of=as_of))

    assert markdown.startswith("# Loyalty Status Report")
    assert "Current status: **Silver**" in markdown
    assert "| 2025 (current) | 2024-11 to 2025-10 | Silver | 140 |" in markdown
    assert "Cost to date: EUR 25.00" in markdown
