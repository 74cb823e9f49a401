#!/usr/bin/env python3
"""
Ledger state <-> JSON document conversion.

Documents carry `schema_version`; loading migrates legacy documents first and
then validates against `schemas/state_document.json`.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from loyalty_ledger.config import DEFAULT_RULES, ProgramRules
from loyalty_ledger.core import (
    FlightRecord,
    ManualLedgerEntry,
    MonthlyMilesRecord,
    MonthlyPointsRecord,
    QualificationSettings,
    as_float,
    as_int,
    is_valid_month,
)
from loyalty_ledger.normalizer import normalize_flight, normalize_miles_record, normalize_settings
from loyalty_ledger.state import DEFAULT_TARGET_VALUE_PER_POINT, LedgerState, sort_flights
from loyalty_ledger.utils.contracts import validate_output
from loyalty_ledger.utils.migration import CURRENT_SCHEMA_VERSION, migrate_state_document


def flight_to_dict(flight: FlightRecord) -> dict[str, Any]:
    return {
        "id": flight.id,
        "date": flight.date,
        "route": flight.route,
        "airline": flight.airline,
        "cabin": flight.cabin,
        "earned_miles": flight.earned_miles,
        "earned_xp": flight.earned_xp,
        "saf_xp": flight.saf_xp,
        "uxp": flight.uxp,
        "flight_number": flight.flight_number,
        "ticket_price": as_float(flight.ticket_price),
        "import_source": flight.import_source,
        "imported_at": flight.imported_at,
    }


def miles_record_to_dict(record: MonthlyMilesRecord) -> dict[str, Any]:
    return {
        "month": record.month,
        "miles_subscription": record.miles_subscription,
        "miles_card": record.miles_card,
        "miles_flight": record.miles_flight,
        "miles_other": record.miles_other,
        "miles_debit": record.miles_debit,
        "miles_correction": record.miles_correction,
        "cost_subscription": as_float(record.cost_subscription),
        "cost_card": as_float(record.cost_card),
        "cost_flight": as_float(record.cost_flight),
        "cost_other": as_float(record.cost_other),
    }


def points_record_to_dict(record: MonthlyPointsRecord) -> dict[str, Any]:
    return {
        "month": record.month,
        "flight_xp": record.flight_xp,
        "saf_xp": record.saf_xp,
        "uxp": record.uxp,
        "flight_count": record.flight_count,
    }


def manual_ledger_to_dict(ledger: Mapping[str, ManualLedgerEntry]) -> dict[str, dict[str, int]]:
    return {
        month: {
            "card_xp": entry.card_xp,
            "bonus_saf_xp": entry.bonus_saf_xp,
            "misc_xp": entry.misc_xp,
            "correction_xp": entry.correction_xp,
        }
        for month, entry in sorted(ledger.items())
    }


def settings_to_dict(settings: QualificationSettings | None) -> dict[str, Any] | None:
    if settings is None:
        return None
    return {
        "cycle_start_month": settings.cycle_start_month,
        "cycle_start_date": settings.cycle_start_date,
        "starting_status": settings.starting_status,
        "starting_xp": settings.starting_xp,
        "starting_uxp": settings.starting_uxp,
        "ultimate_cycle_type": settings.ultimate_cycle_type,
    }


def profile_to_dict(state: LedgerState) -> dict[str, Any]:
    return {
        "qualification_settings": settings_to_dict(state.qualification_settings),
        "points_records": [points_record_to_dict(r) for r in state.points_records],
        "rollover": state.rollover,
        "currency": state.currency,
        "target_value_per_point": str(state.target_value_per_point),
    }


def state_to_document(state: LedgerState) -> dict[str, Any]:
    document: dict[str, Any] = {
        "schema_version": CURRENT_SCHEMA_VERSION,
        "flights": [flight_to_dict(f) for f in state.flights],
        "monthly_miles_records": [miles_record_to_dict(r) for r in state.miles_records],
        "manual_ledger": manual_ledger_to_dict(state.manual_ledger),
    }
    document.update(profile_to_dict(state))
    return document


def parse_target_value(value: Any) -> Decimal:
    if value is None:
        return DEFAULT_TARGET_VALUE_PER_POINT
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        return DEFAULT_TARGET_VALUE_PER_POINT
    return parsed if parsed.is_finite() and parsed >= 0 else DEFAULT_TARGET_VALUE_PER_POINT


def state_from_document(document: dict[str, Any], rules: ProgramRules = DEFAULT_RULES) -> LedgerState:
    """
    Build a `LedgerState` from a stored document.

    Raises:
        ContractError: If the (migrated) document violates the state schema.
    """
    document = migrate_state_document(dict(document))
    validate_output(document, "state_document", mode="STRICT")

    flights = [normalize_flight(raw, rules=rules) for raw in document.get("flights", [])]
    miles = [normalize_miles_record(raw) for raw in document.get("monthly_miles_records", [])]
    points = [
        MonthlyPointsRecord(
            month=raw["month"],
            flight_xp=as_int(raw.get("flight_xp")),
            saf_xp=as_int(raw.get("saf_xp")),
            uxp=as_int(raw.get("uxp")),
            flight_count=as_int(raw.get("flight_count")),
        )
        for raw in document.get("points_records", [])
        if is_valid_month(raw.get("month"))
    ]
    manual = {
        month: ManualLedgerEntry(
            card_xp=as_int(entry.get("card_xp")),
            bonus_saf_xp=as_int(entry.get("bonus_saf_xp")),
            misc_xp=as_int(entry.get("misc_xp")),
            correction_xp=as_int(entry.get("correction_xp")),
        )
        for month, entry in sorted(document.get("manual_ledger", {}).items())
        if is_valid_month(month)
    }

    return LedgerState(
        flights=sort_flights([f for f in flights if f is not None]),
        miles_records=tuple(sorted((r for r in miles if r is not None), key=lambda r: r.month)),
        points_records=tuple(sorted(points, key=lambda r: r.month)),
        manual_ledger=manual,
        qualification_settings=normalize_settings(document.get("qualification_settings")),
        rollover=max(0, as_int(document.get("rollover"))),
        currency=str(document.get("currency") or "EUR"),
        target_value_per_point=parse_target_value(document.get("target_value_per_point")),
    )
