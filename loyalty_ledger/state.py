#!/usr/bin/env python3
"""
Explicit ledger state and the reducers that transition it.

Every reducer is pure: it takes a `LedgerState`, never mutates it, and returns
a `MutationResult` holding either the new state plus the persistence tables
it touched, or the reason the change was refused.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any, Mapping

from loyalty_ledger.config import DEFAULT_RULES, ProgramRules
from loyalty_ledger.core import (
    FlightRecord,
    ManualLedgerEntry,
    MonthlyMilesRecord,
    MonthlyPointsRecord,
    QualificationSettings,
    as_int,
    is_valid_month,
)
from loyalty_ledger.ledger import ComputedLedger, rebuild_ledger
from loyalty_ledger.normalizer import normalize_flight, normalize_miles_record, normalize_settings
from loyalty_ledger.qualification import QualificationCycle, calculate_qualification_cycles

FLIGHTS_TABLE = "flights"
MILES_TABLE = "miles_records"
MANUAL_TABLE = "manual_ledger"
PROFILE_TABLE = "profile"
TABLES = (FLIGHTS_TABLE, MILES_TABLE, MANUAL_TABLE, PROFILE_TABLE)

DEFAULT_TARGET_VALUE_PER_POINT = Decimal("0.012")
DERIVED_MILES_FIELDS = ("miles_flight", "cost_flight", "milesFlight", "costFlight")


@dataclass(frozen=True)
class LedgerState:
    flights: tuple[FlightRecord, ...] = ()
    miles_records: tuple[MonthlyMilesRecord, ...] = ()
    points_records: tuple[MonthlyPointsRecord, ...] = ()
    manual_ledger: dict[str, ManualLedgerEntry] = field(default_factory=dict)
    qualification_settings: QualificationSettings | None = None
    rollover: int = 0
    currency: str = "EUR"
    target_value_per_point: Decimal = DEFAULT_TARGET_VALUE_PER_POINT

    def computed_ledger(self) -> ComputedLedger:
        return rebuild_ledger(self.miles_records, self.points_records, self.flights)

    def cycles(self, rules: ProgramRules = DEFAULT_RULES, as_of: date | None = None) -> list[QualificationCycle]:
        return calculate_qualification_cycles(
            self.computed_ledger(),
            manual_ledger=self.manual_ledger,
            rollover=self.rollover,
            settings=self.qualification_settings,
            rules=rules,
            as_of=as_of,
            flights=self.flights,
        )

    def flight_by_id(self, flight_id: str) -> FlightRecord | None:
        for flight in self.flights:
            if flight.id == flight_id:
                return flight
        return None


@dataclass(frozen=True)
class MutationResult:
    ok: bool
    state: LedgerState
    error: str | None = None
    changed_tables: tuple[str, ...] = ()

    @classmethod
    def success(cls, state: LedgerState, *tables: str) -> "MutationResult":
        return cls(ok=True, state=state, changed_tables=tables)

    @classmethod
    def failure(cls, state: LedgerState, error: str) -> "MutationResult":
        return cls(ok=False, state=state, error=error)


def sort_flights(flights: list[FlightRecord]) -> tuple[FlightRecord, ...]:
    """Newest flight first; ties keep a stable route order."""
    return tuple(sorted(flights, key=lambda f: (f.date, f.route), reverse=True))


def add_flight(
    state: LedgerState,
    raw: Mapping[str, Any] | FlightRecord,
    rules: ProgramRules = DEFAULT_RULES,
) -> MutationResult:
    flight = raw if isinstance(raw, FlightRecord) else normalize_flight(raw, rules=rules)
    if flight is None:
        return MutationResult.failure(state, "Flight needs a valid YYYY-MM-DD date.")
    if not flight.route:
        return MutationResult.failure(state, "Flight needs a route.")
    if any(existing.dedup_key == flight.dedup_key for existing in state.flights):
        return MutationResult.failure(state, f"A flight on {flight.date} {flight.route} already exists.")
    if state.flight_by_id(flight.id) is not None:
        return MutationResult.failure(state, f"Flight id {flight.id} already exists.")

    new_state = replace(state, flights=sort_flights([*state.flights, flight]))
    return MutationResult.success(new_state, FLIGHTS_TABLE)


def update_flight(
    state: LedgerState,
    flight_id: str,
    changes: Mapping[str, Any],
    rules: ProgramRules = DEFAULT_RULES,
) -> MutationResult:
    current = state.flight_by_id(flight_id)
    if current is None:
        return MutationResult.failure(state, f"Unknown flight id: {flight_id}")

    merged = {**asdict(current), **changes, "id": flight_id}
    updated = normalize_flight(merged, rules=rules)
    if updated is None:
        return MutationResult.failure(state, "Flight needs a valid YYYY-MM-DD date.")
    for other in state.flights:
        if other.id != flight_id and other.dedup_key == updated.dedup_key:
            return MutationResult.failure(state, f"A flight on {updated.date} {updated.route} already exists.")

    flights = [updated if flight.id == flight_id else flight for flight in state.flights]
    return MutationResult.success(replace(state, flights=sort_flights(flights)), FLIGHTS_TABLE)


def remove_flight(state: LedgerState, flight_id: str) -> MutationResult:
    if state.flight_by_id(flight_id) is None:
        return MutationResult.failure(state, f"Unknown flight id: {flight_id}")
    flights = tuple(flight for flight in state.flights if flight.id != flight_id)
    return MutationResult.success(replace(state, flights=flights), FLIGHTS_TABLE)


def upsert_miles_record(state: LedgerState, raw: Mapping[str, Any]) -> MutationResult:
    """Replace one month's miles record. Flight miles and flight cost are derived and cannot be edited."""
    for key in DERIVED_MILES_FIELDS:
        if as_int(raw.get(key)):
            return MutationResult.failure(state, f"{key} is derived from flights and cannot be edited.")

    record = normalize_miles_record(raw)
    if record is None:
        return MutationResult.failure(state, f"Invalid month: {raw.get('month')!r}")

    records = {existing.month: existing for existing in state.miles_records}
    records[record.month] = record
    ordered = tuple(records[month] for month in sorted(records))
    return MutationResult.success(replace(state, miles_records=ordered), MILES_TABLE)


def set_manual_entry(state: LedgerState, month: str, entry: ManualLedgerEntry | Mapping[str, Any]) -> MutationResult:
    if not is_valid_month(month):
        return MutationResult.failure(state, f"Invalid month: {month!r}")
    if not isinstance(entry, ManualLedgerEntry):
        entry = ManualLedgerEntry(
            card_xp=as_int(entry.get("card_xp", entry.get("amexXp"))),
            bonus_saf_xp=as_int(entry.get("bonus_saf_xp", entry.get("bonusSafXp"))),
            misc_xp=as_int(entry.get("misc_xp", entry.get("miscXp"))),
            correction_xp=as_int(entry.get("correction_xp", entry.get("correctionXp"))),
        )

    ledger = dict(state.manual_ledger)
    if entry.is_empty():
        ledger.pop(month, None)
    else:
        ledger[month] = entry
    return MutationResult.success(replace(state, manual_ledger=dict(sorted(ledger.items()))), MANUAL_TABLE)


def set_qualification_settings(
    state: LedgerState,
    settings: QualificationSettings | Mapping[str, Any] | None,
) -> MutationResult:
    """Explicit user action: the only path besides the first-ever import that may replace settings."""
    if settings is not None and not isinstance(settings, QualificationSettings):
        normalized = normalize_settings(settings)
        if normalized is None:
            return MutationResult.failure(state, "Qualification settings need a valid cycle start month (YYYY-MM).")
        settings = normalized
    return MutationResult.success(replace(state, qualification_settings=settings), PROFILE_TABLE)


def set_rollover(state: LedgerState, rollover: int) -> MutationResult:
    if rollover < 0:
        return MutationResult.failure(state, "Rollover cannot be negative.")
    return MutationResult.success(replace(state, rollover=rollover), PROFILE_TABLE)


def set_preferences(
    state: LedgerState,
    currency: str | None = None,
    target_value_per_point: Decimal | None = None,
) -> MutationResult:
    if target_value_per_point is not None and target_value_per_point < 0:
        return MutationResult.failure(state, "Target value per point cannot be negative.")
    return MutationResult.success(
        replace(
            state,
            currency=(currency or state.currency).upper(),
            target_value_per_point=state.target_value_per_point
            if target_value_per_point is None
            else target_value_per_point,
        ),
        PROFILE_TABLE,
    )


def start_over(state: LedgerState) -> MutationResult:
    """Clear all ledger data and settings; display preferences survive."""
    cleared = LedgerState(currency=state.currency, target_value_per_point=state.target_value_per_point)
    return MutationResult.success(cleared, *TABLES)
