#!/usr/bin/env python3

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from loyalty_ledger.config import DEFAULT_RULES, ProgramRules
from loyalty_ledger.core import as_float, format_money, format_points, month_of
from loyalty_ledger.ledger import build_ledger_rows, calculate_miles_stats
from loyalty_ledger.qualification import QualificationCycle, current_status
from loyalty_ledger.serialization import settings_to_dict
from loyalty_ledger.state import LedgerState
from loyalty_ledger.utils.contracts import validate_output

REPORT_SCHEMA_VERSION = "1.0"


def cycle_summary(cycle: QualificationCycle) -> dict[str, Any]:
    ultimate = cycle.ultimate
    return {
        "qualification_year": cycle.qualification_year,
        "start_month": cycle.start_month,
        "end_month": cycle.end_month,
        "starting_status": cycle.starting_status,
        "rollover_in": cycle.rollover_in,
        "points": cycle.points,
        "peak_points": cycle.peak_points,
        "achieved_status": cycle.achieved_status,
        "actual_status": cycle.actual_status,
        "display_status": cycle.display_status,
        "ending_status": cycle.ending_status,
        "rollover_out": cycle.rollover_out,
        "points_to_next": cycle.points_to_next,
        "reset_occurred": cycle.reset_occurred,
        "is_current": cycle.is_current,
        "is_complete": cycle.is_complete,
        "ultimate": None
        if ultimate is None
        else {
            "uxp": ultimate.uxp,
            "rollover_in": ultimate.rollover_in,
            "qualified": ultimate.qualified,
            "active": ultimate.active,
            "rollover_out": ultimate.rollover_out,
        },
    }


def build_status_report(
    state: LedgerState,
    rules: ProgramRules = DEFAULT_RULES,
    as_of: date | None = None,
) -> dict[str, Any]:
    as_of = as_of or date.today()
    ledger = state.computed_ledger()
    cycles = state.cycles(rules=rules, as_of=as_of)
    stats = calculate_miles_stats(ledger.miles, month_of(as_of), state.target_value_per_point)

    report: dict[str, Any] = {
        "schema_version": REPORT_SCHEMA_VERSION,
        "as_of": as_of.isoformat(),
        "currency": state.currency,
        "current_status": current_status(cycles, as_of=as_of),
        "qualification_settings": settings_to_dict(state.qualification_settings),
        "flight_count": len(state.flights),
        "miles": {
            "earned_to_date": stats.earned_past,
            "burned_to_date": stats.burned_past,
            "balance": stats.net_current,
            "projected_balance": stats.net_projected,
            "correction_total": stats.correction_total,
            "cost_to_date": as_float(stats.cost_past),
            "cost_per_mile": float(stats.cost_per_mile_current.quantize(Decimal("0.0001"))),
            "savings_to_date": as_float(stats.savings_current),
        },
        "cycles": [cycle_summary(cycle) for cycle in cycles],
        "ledger": build_ledger_rows(ledger),
    }
    validate_output(report, "status_report", mode="STRICT")
    return report


def report_to_markdown(report: dict[str, Any]) -> str:
    miles = report["miles"]
    currency = report["currency"]

    lines: list[str] = []
    lines.append("# Loyalty Status Report")
    lines.append("")
    lines.append(f"- As of: {report['as_of']}")
    lines.append(f"- Current status: **{report['current_status']}**")
    lines.append(f"- Flights on record: {report['flight_count']}")
    lines.append("")

    lines.append("## Miles")
    lines.append(f"- Balance: {format_points(miles['balance'])}")
    lines.append(f"- Projected balance: {format_points(miles['projected_balance'])}")
    lines.append(f"- Earned to date: {format_points(miles['earned_to_date'])}")
    lines.append(f"- Burned to date: {format_points(miles['burned_to_date'])}")
    lines.append(f"- Cost to date: {format_money(Decimal(str(miles['cost_to_date'])), currency)}")
    lines.append("")

    lines.append("## Qualification Cycles")
    lines.append("| Year | Window | Start | XP | Achieved | Status | Ends As | Rollover | UXP |")
    lines.append("| :--- | :--- | :--- | ---: | :--- | :--- | :--- | ---: | ---: |")
    for cycle in report["cycles"]:
        marker = " (current)" if cycle["is_current"] else ""
        uxp = cycle["ultimate"]["uxp"] if cycle["ultimate"] else 0
        lines.append(
            f"| {cycle['qualification_year']}{marker} | {cycle['start_month']} to {cycle['end_month']} "
            f"| {cycle['starting_status']} | {cycle['points']} | {cycle['achieved_status']} "
            f"| {cycle['display_status']} | {cycle['ending_status']} | {cycle['rollover_out']} | {uxp} |"
        )
    resets = [c for c in report["cycles"] if c["reset_occurred"]]
    if resets:
        lines.append("")
        lines.append("### Resets")
        for cycle in resets:
            lines.append(f"- {cycle['qualification_year']}: a negative correction reset the XP counter.")
    lines.append("")

    return "\n".join(lines)

