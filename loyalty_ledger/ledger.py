#!/usr/bin/env python3

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Iterable

from loyalty_ledger.core import (
    ZERO_MONEY,
    FlightRecord,
    MonthlyMilesRecord,
    MonthlyPointsRecord,
    as_float,
)


@dataclass(frozen=True)
class FlightMonthAggregate:
    miles: int = 0
    xp: int = 0
    saf_xp: int = 0
    uxp: int = 0
    count: int = 0


@dataclass(frozen=True)
class ComputedLedger:
    miles: tuple[MonthlyMilesRecord, ...]
    points: tuple[MonthlyPointsRecord, ...]

    def miles_for(self, month: str) -> MonthlyMilesRecord | None:
        for record in self.miles:
            if record.month == month:
                return record
        return None

    def points_for(self, month: str) -> MonthlyPointsRecord | None:
        for record in self.points:
            if record.month == month:
                return record
        return None

    @property
    def months(self) -> list[str]:
        return sorted({r.month for r in self.miles} | {r.month for r in self.points})


def aggregate_flights_by_month(flights: Iterable[FlightRecord]) -> dict[str, FlightMonthAggregate]:
    aggregates: dict[str, FlightMonthAggregate] = {}
    for flight in flights:
        prev = aggregates.get(flight.month, FlightMonthAggregate())
        aggregates[flight.month] = FlightMonthAggregate(
            miles=prev.miles + flight.earned_miles,
            xp=prev.xp + flight.earned_xp,
            saf_xp=prev.saf_xp + flight.saf_xp,
            uxp=prev.uxp + flight.uxp,
            count=prev.count + 1,
        )
    return aggregates


def rebuild_ledger(
    miles_records: Iterable[MonthlyMilesRecord],
    points_records: Iterable[MonthlyPointsRecord],
    flights: Iterable[FlightRecord],
) -> ComputedLedger:
    """
    Fold flights into the monthly miles and points records.

    Flight-derived fields are recomputed from scratch for every month, so a
    month whose flights were all removed drops back to zero flight miles and
    feeding the output back in with the same flights yields the same ledger.
    Flight miles never carry an acquisition cost. Inputs are never mutated.
    """
    miles_by_month = {record.month: record for record in miles_records}
    points_by_month = {record.month: record for record in points_records}
    aggregates = aggregate_flights_by_month(flights)
    empty = FlightMonthAggregate()

    for month in set(miles_by_month) | set(aggregates):
        agg = aggregates.get(month, empty)
        base_miles = miles_by_month.get(month, MonthlyMilesRecord(month=month))
        miles_by_month[month] = replace(base_miles, miles_flight=agg.miles, cost_flight=ZERO_MONEY)

    for month in set(points_by_month) | set(aggregates):
        agg = aggregates.get(month, empty)
        base_points = points_by_month.get(month, MonthlyPointsRecord(month=month))
        points_by_month[month] = replace(
            base_points,
            flight_xp=agg.xp,
            saf_xp=agg.saf_xp,
            uxp=agg.uxp,
            flight_count=agg.count,
        )

    return ComputedLedger(
        miles=tuple(miles_by_month[month] for month in sorted(miles_by_month)),
        points=tuple(points_by_month[month] for month in sorted(points_by_month)),
    )


@dataclass(frozen=True)
class MilesStats:
    earned_past: int
    burned_past: int
    net_current: int
    earned_all: int
    burned_all: int
    net_projected: int
    correction_total: int
    cost_past: Decimal
    cost_all: Decimal
    cost_per_mile_current: Decimal
    cost_per_mile_projected: Decimal
    savings_current: Decimal
    savings_projected: Decimal


def calculate_miles_stats(
    miles_records: Iterable[MonthlyMilesRecord],
    current_month: str,
    target_value_per_point: Decimal = Decimal("0.012"),
) -> MilesStats:
    earned_past = burned_past = earned_all = burned_all = correction_total = 0
    cost_past = cost_all = ZERO_MONEY

    for record in miles_records:
        earned_all += record.earned
        burned_all += record.miles_debit
        cost_all += record.cost
        correction_total += record.miles_correction
        if record.month <= current_month:
            earned_past += record.earned
            burned_past += record.miles_debit
            cost_past += record.cost

    cpm_current = cost_past / earned_past if earned_past else Decimal("0")
    cpm_projected = cost_all / earned_all if earned_all else Decimal("0")

    return MilesStats(
        earned_past=earned_past,
        burned_past=burned_past,
        net_current=earned_past - burned_past + correction_total,
        earned_all=earned_all,
        burned_all=burned_all,
        net_projected=earned_all - burned_all + correction_total,
        correction_total=correction_total,
        cost_past=cost_past,
        cost_all=cost_all,
        cost_per_mile_current=cpm_current,
        cost_per_mile_projected=cpm_projected,
        savings_current=((target_value_per_point - cpm_current) * earned_past).quantize(Decimal("0.01")),
        savings_projected=((target_value_per_point - cpm_projected) * earned_all).quantize(Decimal("0.01")),
    )


def build_ledger_rows(ledger: ComputedLedger) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for month in ledger.months:
        miles = ledger.miles_for(month) or MonthlyMilesRecord(month=month)
        points = ledger.points_for(month) or MonthlyPointsRecord(month=month)
        rows.append(
            {
                "month": month,
                "miles_subscription": miles.miles_subscription,
                "miles_card": miles.miles_card,
                "miles_flight": miles.miles_flight,
                "miles_other": miles.miles_other,
                "miles_debit": miles.miles_debit,
                "miles_correction": miles.miles_correction,
                "cost_total": as_float(miles.cost),
                "flight_count": points.flight_count,
                "flight_xp": points.flight_xp,
                "saf_xp": points.saf_xp,
                "uxp": points.uxp,
            }
        )
    return rows
