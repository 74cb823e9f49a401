"""
CLI Entry Point: loyalty-status

Prints the member's qualification cycles and miles balance, optionally
writing the status report as JSON, Markdown and a monthly ledger CSV.
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any

from loyalty_ledger.config import SessionConfig, load_program_rules
from loyalty_ledger.core import parse_iso_date
from loyalty_ledger.report import build_status_report, report_to_markdown
from loyalty_ledger.session import LedgerSession
from loyalty_ledger.utils.console import print_step, print_table
from loyalty_ledger.utils.contracts import ContractError

LEDGER_FIELDS = [
    "month",
    "miles_subscription",
    "miles_card",
    "miles_flight",
    "miles_other",
    "miles_debit",
    "miles_correction",
    "cost_total",
    "flight_count",
    "flight_xp",
    "saf_xp",
    "uxp",
]


def write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def write_markdown(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def write_ledger_csv(path: Path, ledger: list[dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not ledger:
        path.write_text("", encoding="utf-8")
        return

    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=LEDGER_FIELDS)
        writer.writeheader()
        for row in ledger:
            writer.writerow(row)


def print_report(report: dict[str, Any]) -> None:
    print_step(f"Status as of {report['as_of']}: {report['current_status']}")
    rows = []
    for cycle in report["cycles"]:
        uxp = str(cycle["ultimate"]["uxp"]) if cycle["ultimate"] else "0"
        rows.append(
            [
                f"{cycle['qualification_year']}{' *' if cycle['is_current'] else ''}",
                f"{cycle['start_month']} to {cycle['end_month']}",
                cycle["starting_status"],
                str(cycle["points"]),
                cycle["display_status"],
                cycle["ending_status"],
                str(cycle["rollover_out"]),
                uxp,
            ]
        )
    print_table(
        "Qualification Cycles",
        ["Year", "Window", "Start", "XP", "Status", "Ends As", "Rollover", "UXP"],
        rows,
    )
    miles = report["miles"]
    print_table(
        "Miles",
        ["Balance", "Projected", "Earned", "Burned", "Cost/Mile"],
        [
            [
                f"{miles['balance']:,}",
                f"{miles['projected_balance']:,}",
                f"{miles['earned_to_date']:,}",
                f"{miles['burned_to_date']:,}",
                f"{miles['cost_per_mile']:.4f}",
            ]
        ],
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Show loyalty status, qualification cycles and miles balance.")
    parser.add_argument("--data-dir", type=Path, default=Path("data"), help="Directory holding the ledger tables.")
    parser.add_argument("--user", default="local", help="User id the ledger belongs to.")
    parser.add_argument("--rules", type=Path, default=None, help="Optional program rules JSON.")
    parser.add_argument("--as-of", default=None, help="Evaluate status on this date (YYYY-MM-DD). Defaults to today.")
    parser.add_argument("--json", action="store_true", help="Output machine-readable JSON.")
    parser.add_argument("--report-json-out", type=Path, default=None, help="JSON output path for the status report.")
    parser.add_argument("--report-md-out", type=Path, default=None, help="Markdown output path for the status report.")
    parser.add_argument("--ledger-csv-out", type=Path, default=None, help="CSV output path for the monthly ledger.")
    parser.add_argument("--verbose", action="store_true", help="Log ledger loading details.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    as_of: date | None = None
    if args.as_of:
        as_of = parse_iso_date(args.as_of)
        if as_of is None:
            sys.exit(f"Invalid --as-of date: {args.as_of}")

    try:
        rules = load_program_rules(args.rules)
    except (FileNotFoundError, ContractError, ValueError) as e:
        sys.exit(f"Invalid program rules: {e}")

    try:
        session = LedgerSession.open(SessionConfig(user_id=args.user, data_dir=args.data_dir), rules=rules)
        report = build_status_report(session.state, rules=rules, as_of=as_of)
    except ContractError as e:
        sys.exit(f"Invalid ledger data: {e}")

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        print_report(report)

    if args.report_json_out:
        write_json(args.report_json_out, report)
    if args.report_md_out:
        write_markdown(args.report_md_out, report_to_markdown(report))
    if args.ledger_csv_out:
        write_ledger_csv(args.ledger_csv_out, report["ledger"])


if __name__ == "__main__":
    main()
